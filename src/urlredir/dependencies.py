"""Shared FastAPI dependencies.

The store and settings live on ``app.state`` (set by ``create_app``), so
endpoints outside the pipeline reach them through these aliases.
"""

from typing import Annotated, cast

from fastapi import Depends, Request

from urlredir.config import Settings
from urlredir.db.store import TransactionStore


def get_store(request: Request) -> TransactionStore:
    return cast(TransactionStore, request.app.state.store)


def get_settings(request: Request) -> Settings:
    return cast(Settings, request.app.state.settings)


Store = Annotated[TransactionStore, Depends(get_store)]
AppSettings = Annotated[Settings, Depends(get_settings)]
