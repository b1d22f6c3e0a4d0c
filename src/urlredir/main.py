from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response

from urlredir.config import Settings
from urlredir.db.session import create_engine, create_sessionmaker, shutdown
from urlredir.db.store import SQLTransactionStore, TransactionStore
from urlredir.exceptions import render_error
from urlredir.logging import configure_logging, get_logger
from urlredir.middleware import RequestIDMiddleware, build_chain
from urlredir.routers import debug
from urlredir.routers.urls import create_router

logger = get_logger(__name__)


def create_app(settings: Settings | None = None, store: TransactionStore | None = None) -> FastAPI:
    """Build the application.

    Without an injected store, one is built on an engine created from
    ``settings``; that engine belongs to the app and is disposed on shutdown.
    """
    settings = settings or Settings()
    configure_logging()

    engine = None
    if store is None:
        engine = create_engine(settings)
        store = SQLTransactionStore(create_sessionmaker(engine))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "startup",
            gitrev=settings.git_rev,
            revdate=settings.rev_date,
            listen=f"{settings.host}:{settings.port}",
        )
        yield
        if engine is not None:
            await shutdown(engine)
        logger.info("shutdown")

    # No generated docs: every top-level path is a potential short name.
    app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.store = store
    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
        """Failures outside the pipeline get the same resolution as those inside it."""
        return render_error(request, exc)

    app.include_router(debug.router)
    app.include_router(create_router(build_chain(settings, store)))
    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = Settings()
    uvicorn.run(
        "urlredir.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
