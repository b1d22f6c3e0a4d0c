"""Operational endpoints. Must be mounted before the short-name catch-all."""

from fastapi import APIRouter

from urlredir.dependencies import AppSettings, Store
from urlredir.schemas.url import DebugVars

router = APIRouter(prefix="/_debug")


@router.get("/health")
async def health(store: Store) -> dict[str, str]:
    """Returns 200 OK only if the database responds to a ping query."""
    await store.ping()
    return {"status": "ok"}


@router.get("/vars", response_model=DebugVars)
async def debug_vars(settings: AppSettings) -> DebugVars:
    """Build metadata and non-secret configuration."""
    return DebugVars(gitrev=settings.git_rev, revdate=settings.rev_date, config=settings.public_vars())
