"""
Route Gating

Cookie-based access rules for site pages. A request carrying no
``jwt_token`` cookie is sent to the login page for protected paths; the
``user_role`` cookie decides between the member and expert dashboards.
"""

import logging
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse, Response

from rejimde.session import PRO_ROLE, TOKEN_KEY, USER_ROLE_KEY

logger = logging.getLogger(__name__)

PUBLIC_PATHS = (
    "/", "/login", "/register", "/forgot-password", "/blog", "/experts",
    "/sozluk", "/diets", "/exercises", "/tools", "/about", "/calculators",
    "/clans", "/leagues", "/profile", "/privacy", "/contact",
)

# Paths the gate never looks at
UNGATED_PREFIXES = ("/api", "/_next/static", "/_next/image", "/favicon.ico")
SERVICE_PATHS = ("/health", "/info", "/docs", "/redoc")

PRO_DASHBOARD_ROLES = (PRO_ROLE, "administrator", "editor")


def _matches(pathname: str, prefix: str) -> bool:
    return pathname == prefix or pathname.startswith(prefix + "/")


def is_gated(pathname: str) -> bool:
    """False for API calls, static assets and anything that looks like a file."""
    if any(_matches(pathname, prefix) for prefix in UNGATED_PREFIXES + SERVICE_PATHS):
        return False
    last_segment = pathname.rsplit("/", 1)[-1]
    return "." not in last_segment


def is_public(pathname: str) -> bool:
    return any(_matches(pathname, path) for path in PUBLIC_PATHS)


def resolve_redirect(pathname: str, token: Optional[str], role: Optional[str]) -> Optional[str]:
    """
    Where a page request must be redirected, or None to let it through.

    Args:
        pathname: Request path
        token: Value of the jwt_token cookie
        role: Value of the user_role cookie

    Example:
        >>> resolve_redirect("/dashboard/pro", "jwt", "rejimde_user")
        '/dashboard'
    """
    if is_public(pathname):
        if token and pathname in ("/login", "/register"):
            return "/dashboard/pro" if role == PRO_ROLE else "/dashboard"
        return None

    if not token:
        return "/login"

    if pathname.startswith("/dashboard/pro") and role not in PRO_DASHBOARD_ROLES:
        return "/dashboard"

    if _matches(pathname, "/dashboard") and role == PRO_ROLE and not pathname.startswith("/dashboard/pro"):
        return "/dashboard/pro"

    if pathname == "/settings" and role == PRO_ROLE:
        return "/dashboard/pro/settings"

    return None


class RouteGateMiddleware(BaseHTTPMiddleware):
    """Redirects page requests according to resolve_redirect."""

    async def dispatch(self, request: Request, call_next) -> Response:
        pathname = request.url.path
        if not is_gated(pathname):
            return await call_next(request)

        target = resolve_redirect(
            pathname,
            request.cookies.get(TOKEN_KEY),
            request.cookies.get(USER_ROLE_KEY),
        )
        if target is None:
            return await call_next(request)

        logger.debug(f"🔒 Redirecting {pathname} -> {target}")
        return RedirectResponse(url=target, status_code=307)
