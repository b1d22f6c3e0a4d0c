"""URL endpoints.

Every route is a handler from ``urlredir.services.urls`` behind the same
pipeline, so routing is the only thing decided here. The admin routes are
registered first; everything else under ``/`` is a short name.
"""

from fastapi import APIRouter

from urlredir.middleware import handle_errors
from urlredir.pipeline import Handler, Middleware, as_endpoint
from urlredir.services import urls
from urlredir.services.urls import ADMIN_PATH


def create_router(pipeline: Middleware) -> APIRouter:
    router = APIRouter(include_in_schema=False)

    def route(path: str, handler: Handler, method: str) -> None:
        router.add_api_route(path, as_endpoint(pipeline(handle_errors(handler))), methods=[method])

    route(ADMIN_PATH, urls.admin_page, "GET")
    route(ADMIN_PATH, urls.admin_add, "POST")
    route("/{name:path}", urls.redirect, "GET")
    route("/{name:path}", urls.delete, "DELETE")
    return router
