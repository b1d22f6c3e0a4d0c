import pytest

from urlredir.context import ContextKey, RequestContext
from urlredir.exceptions import MissingUser, NoTransaction


def test_put_returns_new_context_and_leaves_receiver_untouched() -> None:
    tx = object()
    empty = RequestContext()

    granted = empty.put(ContextKey.TRANSACTION, tx)

    assert granted is not empty
    assert granted.transaction is tx
    assert empty.transaction is None


def test_put_accepts_plain_key_names() -> None:
    ctx = RequestContext().put("user", "alice")  # type: ignore[arg-type]
    assert ctx.get(ContextKey.USER) == ("alice", True)


def test_get_reports_absent_keys() -> None:
    ctx = RequestContext()
    assert ctx.get(ContextKey.TRANSACTION) == (None, False)
    assert ctx.get(ContextKey.USER) == (None, False)


def test_empty_user_is_granted() -> None:
    ctx = RequestContext().put(ContextKey.USER, "")
    assert ctx.get(ContextKey.USER) == ("", True)
    assert ctx.require_user() == ""


def test_require_transaction_without_one_raises_no_transaction() -> None:
    with pytest.raises(NoTransaction, match="no tx"):
        RequestContext().require_transaction()


def test_require_user_without_one_raises_missing_user() -> None:
    with pytest.raises(MissingUser, match="missing user"):
        RequestContext().require_user()


def test_context_is_immutable() -> None:
    ctx = RequestContext()
    with pytest.raises(AttributeError):
        ctx.user = "mallory"  # type: ignore[misc]


def test_unknown_key_is_rejected() -> None:
    with pytest.raises(ValueError):
        RequestContext().put("session", object())  # type: ignore[arg-type]
