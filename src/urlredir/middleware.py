"""Request interceptors.

``RequestIDMiddleware`` is ordinary Starlette middleware wrapping the whole
app. Everything else here is a pipeline ``Middleware`` (see
``urlredir.pipeline``) composed per route by ``build_chain`` in this order:

    recover_panics -> log_requests -> manage_transaction -> real_ip -> user -> handler

so a failure anywhere below is caught, and the transaction is rolled back
before the failure is reported.
"""

import time
import uuid
from contextlib import suppress
from http import HTTPStatus
from typing import Protocol, runtime_checkable

import anyio
import structlog
from starlette.datastructures import Headers, MutableHeaders
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from urlredir.config import Settings
from urlredir.context import ContextKey, RequestContext
from urlredir.db.store import Transaction, TransactionStore
from urlredir.exceptions import (
    FailedRollback,
    HTTPError,
    RedirError,
    TransactionClosed,
    Unknown,
    client_address,
    render_error,
)
from urlredir.logging import get_logger
from urlredir.pipeline import Action, Handler, Middleware, Outcome, chain

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware:
    """Plain ASGI middleware that gives every HTTP exchange a request ID.

    The ID comes from the client's X-Request-ID or is a fresh UUID. It is
    bound into structlog contextvars for the rest of the request and echoed
    on the response. ``receive`` is passed through untouched, so handlers
    still see ``http.disconnect`` as the server delivers it.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = Headers(scope=scope).get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        async def send_with_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        await self.app(scope, receive, send_with_id)


@runtime_checkable
class RendersHTTP(Protocol):
    def render(self, request: Request) -> Response: ...


def recover_panics(next_handler: Handler) -> Handler:
    """Outermost safety net: any exception below becomes a logged 500."""

    async def handler(request: Request, ctx: RequestContext) -> Outcome:
        try:
            return await next_handler(request, ctx)
        except Exception as exc:
            error: RedirError
            if isinstance(exc, RedirError):
                error = exc
            else:
                error = Unknown(str(exc))
                error.__cause__ = exc
            failure = HTTPError(HTTPStatus.INTERNAL_SERVER_ERROR, cause=error)
            return Outcome.escalate(failure).with_response(failure.render(request))

    return handler


def log_requests(next_handler: Handler) -> Handler:
    """Log method, path, remote address, status and latency of every request."""

    async def handler(request: Request, ctx: RequestContext) -> Outcome:
        start = time.perf_counter()
        try:
            outcome = await next_handler(request, ctx)
        except Exception:
            logger.warning(
                "request_failed",
                method=request.method,
                path=request.url.path,
                remote=client_address(request),
                duration_ms=round((time.perf_counter() - start) * 1000, 1),
            )
            raise

        status = outcome.response.status_code if outcome.response is not None else None
        log = logger.warning if status is None or status >= 400 else logger.info
        log(
            "request_completed",
            method=request.method,
            path=request.url.path,
            remote=client_address(request),
            status=status,
            action=outcome.action.value,
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
        )
        return outcome

    return handler


async def _client_gone(request: Request) -> bool:
    """Poll the receive channel without blocking for an ``http.disconnect``.

    Body the handler left unread is drained; a channel with nothing pending
    means the client is still there.
    """
    with anyio.CancelScope() as scope:
        scope.cancel()
        while True:
            message = await request.receive()
            if message["type"] == "http.disconnect":
                return True
            if message["type"] != "http.request":
                return False
    return False


async def _roll_back(tx: Transaction) -> None:
    try:
        with suppress(TransactionClosed):
            await tx.rollback()
    except Exception as exc:
        raise FailedRollback() from exc


def manage_transaction(store: TransactionStore) -> Middleware:
    """Run the inner chain inside one transaction and settle it by outcome.

    COMMIT commits unless the client has disconnected in the meantime;
    ROLLBACK and ESCALATE roll back. An exception from below, including
    cancellation, rolls back and is re-raised unless the rollback itself
    fails, in which case FailedRollback is raised instead. A commit failure
    propagates. Settling a transaction that is already finished is a no-op.
    """

    def middleware(next_handler: Handler) -> Handler:
        async def handler(request: Request, ctx: RequestContext) -> Outcome:
            tx = await store.begin()
            try:
                outcome = await next_handler(request, ctx.put(ContextKey.TRANSACTION, tx))
            except BaseException as exc:
                with anyio.CancelScope(shield=True):
                    await _roll_back(tx)
                logger.info("transaction_rolled_back", reason=type(exc).__name__)
                raise

            if outcome.action is Action.COMMIT and await _client_gone(request):
                logger.info("client_disconnected", method=request.method, path=request.url.path)
                await _roll_back(tx)
            elif outcome.action is Action.COMMIT:
                with suppress(TransactionClosed):
                    await tx.commit()
            else:
                await _roll_back(tx)
            return outcome

        return handler

    return middleware


def real_ip(header: str) -> Middleware:
    """Take the client address from a header set by a trusted reverse proxy."""

    def middleware(next_handler: Handler) -> Handler:
        async def handler(request: Request, ctx: RequestContext) -> Outcome:
            if address := request.headers.get(header, "").strip():
                port = request.client.port if request.client else 0
                request.scope["client"] = (address, port)
            return await next_handler(request, ctx)

        return handler

    return middleware


def static_user(user: str) -> Middleware:
    """Grant the same user to every request, e.g. for testing."""

    def middleware(next_handler: Handler) -> Handler:
        async def handler(request: Request, ctx: RequestContext) -> Outcome:
            return await next_handler(request, ctx.put(ContextKey.USER, user))

        return handler

    return middleware


def remote_user(header: str) -> Middleware:
    """Grant the user named in a header set by a trusted reverse proxy.

    A missing header grants the empty user; handlers decide whether that is
    acceptable.
    """

    def middleware(next_handler: Handler) -> Handler:
        async def handler(request: Request, ctx: RequestContext) -> Outcome:
            user = request.headers.get(header, "")
            return await next_handler(request, ctx.put(ContextKey.USER, user))

        return handler

    return middleware


def handle_errors(next_handler: Handler) -> Handler:
    """Render escalated errors into responses.

    Errors that know how to render themselves do so; anything else goes
    through the generic resolution.
    """

    async def handler(request: Request, ctx: RequestContext) -> Outcome:
        outcome = await next_handler(request, ctx)
        if outcome.error is None or outcome.response is not None:
            return outcome
        if isinstance(outcome.error, RendersHTTP):
            return outcome.with_response(outcome.error.render(request))
        return outcome.with_response(render_error(request, outcome.error))

    return handler


def build_chain(settings: Settings, store: TransactionStore) -> Middleware:
    """The production chain, outermost first."""
    layers: list[Middleware] = [recover_panics, log_requests, manage_transaction(store)]
    if settings.real_ip_header:
        layers.append(real_ip(settings.real_ip_header))
    if settings.remote_user_header:
        layers.append(remote_user(settings.remote_user_header))
    else:
        layers.append(static_user(settings.static_user))
    return chain(*layers)
