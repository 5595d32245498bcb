"""Error envelope for token market failures"""
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from assetx.services.errors import TokenMarketError

logger = structlog.get_logger()


async def token_market_exception_handler(request: Request, exc: TokenMarketError) -> JSONResponse:
    """Render typed service failures as {"error", "message", "detail"}."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request failed",
        error=exc.code,
        message=exc.message,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Put HTTPExceptions in the same envelope; plain-string detail is kept as-is."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": f"http_{exc.status_code}",
            "message": str(exc.detail),
            "detail": exc.detail,
        },
        headers=dict(exc.headers or {}),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a generic 500 envelope."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
            "detail": None,
        },
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(TokenMarketError, token_market_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
