"""URL data-access layer.

Pure query functions with no business logic or HTTP concerns.
Each function takes a session and returns scalars or schema dataclasses.
Misses raise NotFoundError; nothing here commits.
"""

from ipaddress import IPv4Address, IPv6Address

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from urlredir.exceptions import ConflictError, NotFoundError
from urlredir.models import Hit, Url
from urlredir.schemas.url import UrlSummary


async def increment_hits(db: AsyncSession, name: str) -> tuple[str, int]:
    """Bump the hit counter of ``name`` and return its (url, id).

    A single UPDATE ... RETURNING, so concurrent increments cannot be lost.
    """
    stmt = (
        update(Url)
        .where(Url.name == name)
        .values(hits=Url.hits + 1)
        .returning(Url.url, Url.id)
        .execution_options(synchronize_session=False)
    )
    row = (await db.execute(stmt)).one_or_none()
    if row is None:
        raise NotFoundError("url", name)
    return row.url, row.id


async def get_owner(db: AsyncSession, name: str) -> tuple[int, str]:
    """Return (id, user) of ``name``."""
    row = (await db.execute(select(Url.id, Url.user).where(Url.name == name))).one_or_none()
    if row is None:
        raise NotFoundError("url", name)
    return row.id, row.user


async def add_hit(
    db: AsyncSession,
    url_id: int,
    ip: IPv4Address | IPv6Address,
    agent: str,
    referrer: str | None,
) -> None:
    db.add(Hit(url_id=url_id, remotehost=str(ip), agent=agent, referrer=referrer))
    await db.flush()


async def add_url(db: AsyncSession, name: str, url: str, user: str) -> None:
    db.add(Url(name=name, url=url, user=user))
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError(f"url {name!r} already exists") from exc


async def remove_url(db: AsyncSession, name: str) -> None:
    await db.execute(delete(Url).where(Url.name == name))


async def list_urls_for_user(db: AsyncSession, user: str) -> list[UrlSummary]:
    """Return every URL owned by ``user``, ordered by name."""
    stmt = select(Url.name, Url.url, Url.hits).where(Url.user == user).order_by(Url.name)
    result = await db.execute(stmt)
    return [UrlSummary(name=row.name, url=row.url, hits=row.hits) for row in result.all()]
