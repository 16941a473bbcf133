"""FastAPI application factory with domain-error to HTTP-status mapping."""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from feetracker.api import routes
from feetracker.exceptions import NotFoundError, UpstreamError, ValidationError
from feetracker.logging import get_logger

logger = get_logger(__name__)


async def _not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(content={"detail": str(exc)}, status_code=404)


async def _validation_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(content={"detail": str(exc)}, status_code=400)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = [
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return JSONResponse(content={"detail": "; ".join(messages)}, status_code=400)


async def _upstream_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("upstream_error", path=request.url.path, error=str(exc))
    return JSONResponse(content={"detail": str(exc)}, status_code=502)


def create_app(lifespan: Any = None, prefix: str = "/api/v1") -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.
        prefix: Path prefix for every route.

    Returns:
        Configured FastAPI application with routes and error handlers.
    """
    app = FastAPI(title="Pool Fee Tracker", lifespan=lifespan)

    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(ValidationError, _validation_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(UpstreamError, _upstream_handler)

    app.include_router(routes.router, prefix=prefix)

    return app
