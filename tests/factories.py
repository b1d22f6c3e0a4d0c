"""Factory functions for creating model instances and requests in tests."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

import anyio
from httpx import AsyncClient
from starlette.requests import Request
from starlette.types import Message

from urlredir.models import Url

# Returned by the make_client fixture: settings overrides in, async client context out
ClientFactory = Callable[..., AbstractAsyncContextManager[AsyncClient]]


def make_url(
    *,
    name: str = "foo",
    url: str = "https://example.com/foo",
    user: str = "test",
    hits: int = 0,
) -> Url:
    return Url(name=name, url=url, user=user, hits=hits)


def make_scope(
    method: str = "GET",
    path: str = "/foo",
    *,
    headers: dict[str, str] | None = None,
    client: tuple[str, int] | None = ("127.0.0.1", 50000),
) -> dict[str, object]:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
        "server": ("test", 80),
    }


async def connected_receive() -> Message:
    """Receive channel of a client that sent an empty body and is still waiting."""
    await anyio.sleep_forever()
    raise AssertionError("unreachable")


async def disconnected_receive() -> Message:
    """Receive channel of a client that has gone away."""
    return {"type": "http.disconnect"}


def make_request(
    method: str = "GET",
    path: str = "/foo",
    *,
    headers: dict[str, str] | None = None,
    client: tuple[str, int] | None = ("127.0.0.1", 50000),
    disconnected: bool = False,
) -> Request:
    """A bare Starlette request, enough for handlers and middleware outside an app."""
    scope = make_scope(method, path, headers=headers, client=client)
    scope["path_params"] = {"name": path.lstrip("/")}
    return Request(scope, disconnected_receive if disconnected else connected_receive)
