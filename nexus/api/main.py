"""FastAPI application entry point."""
import contextvars
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from nexus.api.middleware.cors import CORSMiddleware
from nexus.api.routes import chat, market, portfolio, session, trade
from nexus.core.config import get_settings
from nexus.core.errors import ErrorCode, NexusError
from nexus.core.logging import get_logger, setup_logging

# Async-safe request ID propagation via contextvars
_request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar('request_id', default='')


class RequestIDFilter(logging.Filter):
    """Logging filter that injects request_id from contextvars into log records."""
    def filter(self, record):
        record.request_id = _request_id_ctx.get('')
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, visible in logs and as X-Request-ID."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        token = _request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            _request_id_ctx.reset(token)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "") or _request_id_ctx.get("")


async def nexus_error_handler(request: Request, exc: NexusError):
    """Structured errors keep their own status code and body."""
    request_id = _request_id(request)
    logger.warning(
        "%s on %s %s: %s", exc.error_code.value, request.method, request.url.path, exc.message,
        extra={"http_status": exc.status_code, "error_class": type(exc).__name__},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={**exc.to_dict(), "request_id": request_id},
        headers={"X-Request-ID": request_id},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    request_id = _request_id(request)
    message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": message, "code": f"HTTP_{exc.status_code}", "request_id": request_id},
        headers={"X-Request-ID": request_id, **(exc.headers or {})},
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = _request_id(request)
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request body",
            "code": ErrorCode.VALIDATION_ERROR.value,
            "request_id": request_id,
        },
        headers={"X-Request-ID": request_id},
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and return JSON error response."""
    request_id = _request_id(request)
    logger.error(
        "Unhandled exception: %s | %s %s", type(exc).__name__, request.method, request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"error": "An internal error occurred", "code": "INTERNAL_ERROR", "request_id": request_id},
        headers={"X-Request-ID": request_id},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    # Fail fast on an unknown scheme; missing credentials only fail the calls that need them
    settings.validate_auth_scheme()

    presence = settings.credential_presence()
    logger.info(
        "Coinbase auth scheme=%s hasKey=%s hasSecret=%s",
        settings.coinbase_auth_scheme.lower(), presence["hasKey"], presence["hasSecret"],
    )
    if not (presence["hasKey"] and presence["hasSecret"]):
        logger.warning("Coinbase credentials not configured; brokerage routes will return 500")

    app = FastAPI(title="Nexus Portfolio Agent API", version="1.0.0")

    app.add_exception_handler(NexusError, nexus_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # Last added runs first: request id wraps CORS
    app.add_middleware(CORSMiddleware, allowed_origin=settings.allowed_origin)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(market.router, tags=["market"])
    app.include_router(portfolio.router, tags=["portfolio"])
    app.include_router(trade.router, tags=["trade"])
    app.include_router(chat.router, tags=["chat"])
    app.include_router(session.router, tags=["session"])

    @app.get("/health")
    async def health():
        current = get_settings()
        return {
            "status": "ok",
            "auth_scheme": current.coinbase_auth_scheme.lower(),
            "coinbase": current.credential_presence(),
            "text_generation": {"hasKey": bool(current.anthropic_api_key and current.anthropic_api_key.strip())},
        }

    return app


setup_logging(get_settings().log_level)
# On the handlers: propagated records skip logger-level filters
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIDFilter())
logger = get_logger(__name__)

app = create_app()
