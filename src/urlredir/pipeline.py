"""Request pipeline primitives.

Every layer of the chain and every handler has the same shape: an async
callable taking the request and its ``RequestContext`` and returning an
``Outcome``. The outcome tells the transaction layer what to do with the
unit of work and carries the response to send.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from functools import reduce

from starlette.requests import Request
from starlette.responses import Response

from urlredir.context import RequestContext


class Action(StrEnum):
    COMMIT = "commit"
    ROLLBACK = "rollback"
    ESCALATE = "escalate"


@dataclass(frozen=True)
class Outcome:
    """Result of handling one request.

    ESCALATE outcomes carry an ``error`` and get their ``response`` filled in
    by the error-rendering layer.
    """

    action: Action
    response: Response | None = None
    error: BaseException | None = None

    @classmethod
    def commit(cls, response: Response) -> Outcome:
        return cls(Action.COMMIT, response=response)

    @classmethod
    def rollback(cls, response: Response) -> Outcome:
        return cls(Action.ROLLBACK, response=response)

    @classmethod
    def escalate(cls, error: BaseException) -> Outcome:
        return cls(Action.ESCALATE, error=error)

    def with_response(self, response: Response) -> Outcome:
        return replace(self, response=response)


Handler = Callable[[Request, RequestContext], Awaitable[Outcome]]
Middleware = Callable[[Handler], Handler]


def chain(*middlewares: Middleware) -> Middleware:
    """Compose middlewares so that ``chain(a, b, c)(h) == a(b(c(h)))``.

    The first middleware sees the request first and the outcome last.
    """

    def compose(handler: Handler) -> Handler:
        return reduce(lambda inner, middleware: middleware(inner), reversed(middlewares), handler)

    return compose


def as_endpoint(handler: Handler) -> Callable[[Request], Awaitable[Response]]:
    """Adapt a composed handler to a Starlette endpoint.

    Each request starts from an empty context. The outermost layer must
    guarantee a response, so a missing one is a wiring bug.
    """

    async def endpoint(request: Request) -> Response:
        outcome = await handler(request, RequestContext())
        if outcome.response is None:
            raise RuntimeError(f"{outcome.action} outcome reached the endpoint without a response")
        return outcome.response

    return endpoint
