"""Global error handlers: domain errors to consistent JSON responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from engagement_service.exceptions import InvalidAction, InvalidEvent, NotFound, StoreUnavailable

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register exception handlers for the engagement domain errors."""

    @app.exception_handler(InvalidEvent)
    async def invalid_event_handler(request: Request, exc: InvalidEvent) -> JSONResponse:
        content = {"detail": str(exc)}
        if isinstance(exc, InvalidAction):
            content["action"] = str(exc.action)
        logger.info("Rejected activity event", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(NotFound)
    async def not_found_handler(_request: Request, exc: NotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error("Activity store unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=503, content={"detail": "Activity store unavailable"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions, always JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
