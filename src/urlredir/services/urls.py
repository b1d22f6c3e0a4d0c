"""URL business logic.

Each handler reads its capabilities from the request context, talks to the
transaction it was lent, and says how that transaction should end by the
kind of Outcome it returns. Expected rejections are escalated as typed
errors; broken invariants (missing context, an unparseable remote address)
are raised.
"""

from datetime import UTC, datetime, timedelta
from email.utils import format_datetime
from http import HTTPStatus
from ipaddress import IPv4Address, IPv6Address, ip_address
from pathlib import Path
from urllib.parse import SplitResult, urlsplit

from fastapi.templating import Jinja2Templates
from starlette.datastructures import FormData
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from urlredir.context import RequestContext
from urlredir.exceptions import (
    ConflictError,
    HTTPError,
    InvalidIP,
    InvalidURL,
    MissingName,
    MissingURL,
    MissingUser,
    NotFoundError,
    client_address,
)
from urlredir.logging import get_logger
from urlredir.pipeline import Outcome
from urlredir.schemas.url import AdminForm

logger = get_logger(__name__)

ADMIN_PATH = "/_admin"
CACHE_SECONDS = 90

templates = Jinja2Templates(directory=Path(__file__).resolve().parent.parent / "templates")

def parse_ip(address: str) -> IPv4Address | IPv6Address:
    """Parse a client address that may carry a port (``host:port``, ``[v6]:port``)."""
    host = address
    if address.startswith("["):
        host = address[1:].partition("]")[0]
    elif address.count(":") == 1:
        host = address.partition(":")[0]
    try:
        return ip_address(host)
    except ValueError as exc:
        raise InvalidIP(f"couldn't parse IP: {address!r}") from exc


def parse_url(url: str) -> SplitResult:
    """Parse a URL or relative reference, rejecting only what is malformed.

    Scheme-less and relative forms such as ``example.com/foo`` are accepted;
    a leading colon, control characters, a broken IPv6 host or a
    non-numeric port are not.
    """
    if url.startswith(":") or any(ord(ch) < 0x20 or ch == "\x7f" for ch in url):
        raise InvalidURL()
    try:
        parts = urlsplit(url)
        parts.port  # noqa: B018
    except ValueError as exc:
        raise InvalidURL() from exc
    return parts


def validate_admin_form(form: FormData) -> AdminForm:
    """Check the admin form; name, URL, URL syntax and user, in that order."""
    name = str(form.get("name") or "")
    url = str(form.get("url") or "")
    user = str(form.get("user") or "")

    if not name:
        raise MissingName()
    if not url:
        raise MissingURL()
    parse_url(url)
    if not user:
        raise MissingUser()
    return AdminForm(name=name, url=url, user=user)


async def redirect(request: Request, ctx: RequestContext) -> Outcome:
    """Redirect to the URL registered under the path and record the hit."""
    tx = ctx.require_transaction()
    name = request.path_params["name"]

    try:
        url, url_id = await tx.lookup_and_increment_hit(name)
    except NotFoundError as exc:
        return Outcome.escalate(exc)

    # 301 combined with a short private cache lifetime
    expires = datetime.now(UTC) + timedelta(seconds=CACHE_SECONDS)
    response = RedirectResponse(
        url,
        status_code=HTTPStatus.MOVED_PERMANENTLY,
        headers={
            "Cache-Control": f"private, max-age={CACHE_SECONDS}",
            "Expires": format_datetime(expires, usegmt=True),
            "Content-Type": "text/html",
        },
    )

    remote = client_address(request)
    ip = parse_ip(remote)
    agent = request.headers.get("user-agent", "")
    referrer = request.headers.get("referer") or None
    await tx.record_hit(url_id, ip, agent, referrer)

    logger.info("hit_recorded", remote=remote, agent=agent, referrer=referrer, name=name, url=url)
    return Outcome.commit(response)


async def delete(request: Request, ctx: RequestContext) -> Outcome:
    """Remove the URL registered under the path if the caller owns it."""
    tx = ctx.require_transaction()
    user = ctx.require_user()

    if not user:
        missing = MissingUser()
        return Outcome.escalate(HTTPError(HTTPStatus.BAD_REQUEST, missing.message, missing))

    name = request.path_params["name"]
    try:
        _, owner = await tx.lookup_owner(name)
    except NotFoundError as exc:
        return Outcome.escalate(exc)

    if user != owner:
        return Outcome.escalate(HTTPError(HTTPStatus.FORBIDDEN))

    await tx.delete_mapping(name)

    logger.info("url_deleted", remote=client_address(request), name=name, user=user)
    return Outcome.commit(Response(status_code=HTTPStatus.OK))


async def admin_page(request: Request, ctx: RequestContext) -> Outcome:
    """List the caller's URLs. Read-only, so the transaction is discarded."""
    tx = ctx.require_transaction()
    user = ctx.require_user()

    urls = await tx.list_mappings_for_user(user)
    response = templates.TemplateResponse(
        request,
        "admin.html",
        {"path": request.url.path, "user": user, "urls": urls},
    )
    return Outcome.rollback(response)


async def admin_add(request: Request, ctx: RequestContext) -> Outcome:
    """Register a new URL from the admin form and go back to the admin page."""
    tx = ctx.require_transaction()
    ctx.require_user()

    form = await request.form()
    try:
        submitted = validate_admin_form(form)
    except (MissingName, MissingURL, InvalidURL, MissingUser) as exc:
        return Outcome.escalate(HTTPError(HTTPStatus.BAD_REQUEST, exc.message, exc))

    try:
        await tx.insert_mapping(submitted.name, submitted.url, submitted.user)
    except ConflictError as exc:
        return Outcome.escalate(exc)

    logger.info("url_added", name=submitted.name, url=submitted.url, user=submitted.user)
    return Outcome.commit(RedirectResponse(ADMIN_PATH, status_code=HTTPStatus.SEE_OTHER))
