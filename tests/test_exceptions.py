from collections.abc import MutableMapping
from typing import Any

import pytest
from starlette.requests import Request
from structlog.testing import capture_logs

from tests.factories import make_request
from urlredir.context import RequestContext
from urlredir.exceptions import (
    FailedRollback,
    HTTPError,
    InvalidIP,
    InvalidURL,
    MissingName,
    MissingURL,
    MissingUser,
    NoTransaction,
    NotFoundError,
    Unknown,
    render_error,
    resolve_error,
)
from urlredir.middleware import recover_panics
from urlredir.pipeline import Outcome


@pytest.mark.parametrize(
    "error, message",
    [
        (InvalidIP(), "invalid IP"),
        (InvalidURL(), "invalid URL"),
        (MissingName(), "missing name"),
        (MissingURL(), "missing URL"),
        (MissingUser(), "missing user"),
        (NoTransaction(), "no tx"),
        (Unknown(), "unknown error"),
        (FailedRollback(), "failed rollback"),
    ],
    ids=lambda value: type(value).__name__ if isinstance(value, Exception) else None,
)
def test_sentinel_messages(error: Exception, message: str) -> None:
    assert str(error) == message


def test_explicit_status_is_used_verbatim() -> None:
    assert resolve_error(HTTPError(400, "missing URL", MissingURL())) == (400, "missing URL")


def test_explicit_status_defaults_message_to_reason_phrase() -> None:
    assert resolve_error(HTTPError(403)) == (403, "Forbidden")


def test_explicit_status_wins_over_wrapped_not_found() -> None:
    assert resolve_error(HTTPError(500, cause=NotFoundError("url", "foo"))) == (
        500,
        "Internal Server Error",
    )


def test_not_found_maps_to_404() -> None:
    assert resolve_error(NotFoundError("url", "foo")) == (404, "Not Found")


@pytest.mark.parametrize("error", [RuntimeError("db exploded"), InvalidIP(), FailedRollback()])
def test_everything_else_is_a_generic_500(error: Exception) -> None:
    status, message = resolve_error(error)
    assert status == 500
    assert message == "Internal Server Error"


def test_http_error_keeps_cause() -> None:
    cause = MissingName()
    assert HTTPError(400, cause=cause).__cause__ is cause


def test_render_error_writes_plain_text_without_the_cause() -> None:
    response = render_error(make_request(), RuntimeError("password=hunter2"))

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("text/plain")
    assert response.body == b"Internal Server Error"


def test_http_error_renders_itself() -> None:
    response = HTTPError(400, "missing name", MissingName()).render(make_request("POST", "/_admin"))

    assert response.status_code == 400
    assert response.body == b"missing name"


# ---------------------------------------------------------------------------
# Audit trail: every resolution is logged with the same fields
# ---------------------------------------------------------------------------
def only_resolution(logs: list[MutableMapping[str, Any]]) -> MutableMapping[str, Any]:
    entries = [entry for entry in logs if entry["event"] == "error_resolved"]
    assert len(entries) == 1
    return entries[0]


def test_not_found_is_logged_as_warning() -> None:
    with capture_logs() as logs:
        render_error(make_request("GET", "/nope"), NotFoundError("url", "nope"))

    entry = only_resolution(logs)
    assert entry["log_level"] == "warning"
    assert entry["method"] == "GET"
    assert entry["path"] == "/nope"
    assert entry["remote"] == "127.0.0.1"
    assert entry["status"] == 404
    assert entry["cause"] == "NotFoundError: url 'nope' not found"
    assert "exc_info" not in entry


def test_http_error_logs_its_wrapped_cause() -> None:
    request = make_request("POST", "/_admin", client=("192.0.2.7", 4000))

    with capture_logs() as logs:
        HTTPError(400, "missing name", MissingName()).render(request)

    entry = only_resolution(logs)
    assert entry["log_level"] == "warning"
    assert entry["method"] == "POST"
    assert entry["path"] == "/_admin"
    assert entry["remote"] == "192.0.2.7"
    assert entry["status"] == 400
    assert entry["cause"] == "MissingName: missing name"


@pytest.mark.asyncio
async def test_recovered_panic_is_logged_as_error_with_traceback() -> None:
    async def exploding(request: Request, ctx: RequestContext) -> Outcome:
        raise RuntimeError("db exploded")

    with capture_logs() as logs:
        outcome = await recover_panics(exploding)(make_request("GET", "/foo"), RequestContext())

    entry = only_resolution(logs)
    assert entry["log_level"] == "error"
    assert entry["method"] == "GET"
    assert entry["path"] == "/foo"
    assert entry["remote"] == "127.0.0.1"
    assert entry["status"] == 500
    assert entry["cause"] == "Unknown: db exploded"
    assert entry["exc_info"] is outcome.error


def test_nonstandard_status_falls_back_to_a_generic_message() -> None:
    error = HTTPError(599)

    assert resolve_error(error) == (599, "Error")
    assert render_error(make_request(), error).body == b"Error"
