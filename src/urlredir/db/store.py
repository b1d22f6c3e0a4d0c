"""Transaction store.

The pipeline only knows the ``TransactionStore`` and ``Transaction``
protocols. ``SQLTransactionStore`` backs them with one ``AsyncSession`` per
transaction and delegates row work to ``urlredir.repositories.url``.
"""

from enum import StrEnum
from ipaddress import IPv4Address, IPv6Address
from typing import Protocol

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from urlredir.exceptions import TransactionClosed
from urlredir.repositories import url as repo
from urlredir.schemas.url import UrlSummary


class Transaction(Protocol):
    """A unit of work bound to exactly one request."""

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...

    async def lookup_and_increment_hit(self, name: str) -> tuple[str, int]: ...

    async def lookup_owner(self, name: str) -> tuple[int, str]: ...

    async def record_hit(
        self,
        url_id: int,
        remote_ip: IPv4Address | IPv6Address,
        user_agent: str,
        referrer: str | None,
    ) -> None: ...

    async def insert_mapping(self, name: str, url: str, user: str) -> None: ...

    async def delete_mapping(self, name: str) -> None: ...

    async def list_mappings_for_user(self, user: str) -> list[UrlSummary]: ...


class TransactionStore(Protocol):
    async def begin(self) -> Transaction: ...

    async def ping(self) -> None: ...


class TxState(StrEnum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class SQLTransaction:
    """``Transaction`` over a single ``AsyncSession``.

    The session is closed on the first terminal transition; any later use,
    including a second commit or rollback, raises ``TransactionClosed``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.state = TxState.OPEN

    @property
    def session(self) -> AsyncSession:
        if self.state is not TxState.OPEN:
            raise TransactionClosed()
        return self._session

    async def commit(self) -> None:
        session = self.session
        # A failed commit leaves nothing behind; close() discards the work.
        self.state = TxState.ROLLED_BACK
        try:
            await session.commit()
            self.state = TxState.COMMITTED
        finally:
            await session.close()

    async def rollback(self) -> None:
        session = self.session
        self.state = TxState.ROLLED_BACK
        try:
            await session.rollback()
        finally:
            await session.close()

    async def lookup_and_increment_hit(self, name: str) -> tuple[str, int]:
        return await repo.increment_hits(self.session, name)

    async def lookup_owner(self, name: str) -> tuple[int, str]:
        return await repo.get_owner(self.session, name)

    async def record_hit(
        self,
        url_id: int,
        remote_ip: IPv4Address | IPv6Address,
        user_agent: str,
        referrer: str | None,
    ) -> None:
        await repo.add_hit(self.session, url_id, remote_ip, user_agent, referrer)

    async def insert_mapping(self, name: str, url: str, user: str) -> None:
        await repo.add_url(self.session, name, url, user)

    async def delete_mapping(self, name: str) -> None:
        await repo.remove_url(self.session, name)

    async def list_mappings_for_user(self, user: str) -> list[UrlSummary]:
        return await repo.list_urls_for_user(self.session, user)


class SQLTransactionStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def begin(self) -> SQLTransaction:
        # The session autobegins on its first statement
        return SQLTransaction(self._sessionmaker())

    async def ping(self) -> None:
        async with self._sessionmaker() as session:
            await session.execute(text("SELECT 1"))
