"""
Web Module Initialization

Exports the BFF router, its dependencies and the route gate middleware.
"""

from rejimde.web.access import (
    RouteGateMiddleware,
    resolve_redirect,
)
from rejimde.web.routes import (
    router as api_router,
    get_http_session,
    get_progress_guard,
    get_session,
)

__all__ = [
    "api_router",
    "RouteGateMiddleware",
    "resolve_redirect",
    "get_http_session",
    "get_progress_guard",
    "get_session",
]
