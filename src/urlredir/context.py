"""Request-scoped context.

A ``RequestContext`` is created empty for every inbound request and replaced,
never mutated, as the chain grants capabilities. Absent means "not granted":
``require_*`` turns that into a typed error instead of a ``None`` surprise.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from urlredir.exceptions import MissingUser, NoTransaction

if TYPE_CHECKING:
    from urlredir.db.store import Transaction


class ContextKey(StrEnum):
    TRANSACTION = "transaction"
    USER = "user"


@dataclass(frozen=True, slots=True)
class RequestContext:
    transaction: Transaction | None = None
    # "" is a granted but empty user (e.g. a proxy header that was not sent)
    user: str | None = None

    def put(self, key: ContextKey, value: Any) -> RequestContext:
        """Return a copy with ``key`` set; ``self`` is left untouched."""
        return replace(self, **{ContextKey(key).value: value})

    def get(self, key: ContextKey) -> tuple[Any, bool]:
        value = getattr(self, ContextKey(key).value)
        return value, value is not None

    def require_transaction(self) -> Transaction:
        tx, found = self.get(ContextKey.TRANSACTION)
        if not found:
            raise NoTransaction()
        return tx  # type: ignore[no-any-return]

    def require_user(self) -> str:
        user, found = self.get(ContextKey.USER)
        if not found:
            raise MissingUser()
        return user  # type: ignore[no-any-return]
