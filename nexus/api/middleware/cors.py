"""Permissive CORS for the single dashboard origin."""
from fastapi import Request
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware

from nexus.core.logging import get_logger

logger = get_logger(__name__)

ALLOWED_METHODS = "GET, POST, DELETE, OPTIONS"
ALLOWED_HEADERS = "Content-Type, Authorization"


class CORSMiddleware(BaseHTTPMiddleware):
    """Adds CORS headers to every response and answers any preflight with 200."""

    def __init__(self, app, allowed_origin: str = "*"):
        super().__init__(app)
        self.allowed_origin = allowed_origin

    def _cors_headers(self) -> dict:
        return {
            "Access-Control-Allow-Origin": self.allowed_origin,
            "Access-Control-Allow-Methods": ALLOWED_METHODS,
            "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        }

    async def dispatch(self, request: Request, call_next):
        # Preflight never reaches the routers, whatever the path
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=self._cors_headers())

        response = await call_next(request)
        response.headers.update(self._cors_headers())
        return response
