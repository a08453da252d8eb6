"""
Authentication middleware for API route protection.
"""

import logging
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from src.auth.jwt import get_token_from_request, verify_token

logger = logging.getLogger(__name__)

# Routes that don't require authentication
PUBLIC_ROUTES = {
    "/",
    "/api/auth/login",
    "/api/health",
    "/api/health/ready",
    "/api/health/live",
}

# Route prefixes that don't require authentication
PUBLIC_PREFIXES = (
    "/docs",
    "/redoc",
    "/openapi.json",
)


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Rejects unauthenticated /api/* requests before routing.

    Only the token is checked here; whether the user still exists and is
    active, and what they may do, is decided by the route dependencies.
    The /ws endpoint authenticates during its own handshake.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        path = request.url.path

        if path in PUBLIC_ROUTES or path.startswith(PUBLIC_PREFIXES):
            return await call_next(request)

        if path.startswith("/api/"):
            token = get_token_from_request(request)
            if not token or not verify_token(token):
                return JSONResponse(
                    status_code=401,
                    content={"error": True, "message": "Not authenticated"},
                )

        return await call_next(request)
