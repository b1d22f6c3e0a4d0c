"""Error taxonomy and its mapping onto HTTP responses.

Handlers escalate these to signal expected rejections; storage raises
``NotFoundError`` and ``ConflictError``. ``resolve_error`` is the single place
where any exception becomes a status code and a client-safe message, and
``render_error`` is the single place where that resolution is logged.
"""

from http import HTTPStatus

from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from urlredir.logging import get_logger

logger = get_logger(__name__)


class RedirError(Exception):
    """Base class for all urlredir exceptions."""

    default_message = "urlredir error"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidIP(RedirError):
    default_message = "invalid IP"


class InvalidURL(RedirError):
    default_message = "invalid URL"


class MissingName(RedirError):
    default_message = "missing name"


class MissingURL(RedirError):
    default_message = "missing URL"


class MissingUser(RedirError):
    default_message = "missing user"


class NoTransaction(RedirError):
    default_message = "no tx"


class Unknown(RedirError):
    default_message = "unknown error"


class FailedRollback(RedirError):
    default_message = "failed rollback"


def reason_phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


class HTTPError(RedirError):
    """An error that already knows its HTTP status.

    The wrapped cause is kept as ``__cause__`` so it shows up in the logged
    traceback but never in the response body.
    """

    def __init__(self, status: int, message: str = "", cause: BaseException | None = None) -> None:
        self.status = status
        super().__init__(message or reason_phrase(status))
        self.__cause__ = cause

    def render(self, request: Request) -> Response:
        return render_error(request, self)


class NotFoundError(RedirError):
    """The "no rows" sentinel raised by the storage layer."""

    def __init__(self, entity: str, identifier: object) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} {identifier!r} not found")


class ConflictError(RedirError):
    """Raised when an insert violates a uniqueness constraint."""


class TransactionClosed(RedirError):
    """Raised when committing or rolling back an already finished transaction."""

    default_message = "transaction has already been committed or rolled back"


def resolve_error(exc: BaseException) -> tuple[int, str]:
    """Map any exception onto (status, message).

    Explicit statuses win, storage misses are 404, everything else is a 500
    whose message says nothing about the cause.
    """
    if isinstance(exc, HTTPError):
        return exc.status, exc.message
    if isinstance(exc, NotFoundError):
        return HTTPStatus.NOT_FOUND, HTTPStatus.NOT_FOUND.phrase
    return HTTPStatus.INTERNAL_SERVER_ERROR, HTTPStatus.INTERNAL_SERVER_ERROR.phrase


def client_address(request: Request) -> str:
    return request.client.host if request.client else ""


def render_error(request: Request, exc: BaseException) -> Response:
    """Log the resolution of ``exc`` and render it as a plain-text response."""
    status, message = resolve_error(exc)
    cause = exc.__cause__ if isinstance(exc, HTTPError) and exc.__cause__ else exc
    fields = {
        "method": request.method,
        "path": request.url.path,
        "remote": client_address(request),
        "status": int(status),
        "cause": f"{type(cause).__name__}: {cause}",
    }
    if status >= HTTPStatus.INTERNAL_SERVER_ERROR:
        logger.error("error_resolved", exc_info=exc, **fields)
    else:
        logger.warning("error_resolved", **fields)
    return PlainTextResponse(message, status_code=status)
