"""
Main FastAPI application entry point.

This module sets up the FastAPI app with all middleware, routes, and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.capirelay.api import analytics_router
from src.capirelay.api.analytics import resolve_client_ip
from src.capirelay.config import get_settings, Settings
from src.capirelay.core.dispatch import BackgroundDispatcher, Dispatcher
from src.capirelay.core.exceptions import RelayException
from src.capirelay.core.forwarder import CapiForwarder
from src.capirelay.models.responses import ErrorResponse


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # Silence the verbose watchfiles logger
    logging.getLogger("watchfiles").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def log_configuration(settings: Settings) -> None:
    """Warn about incomplete configuration; the service starts regardless."""
    logger = structlog.get_logger(__name__)

    fb = settings.facebook
    if fb.is_configured:
        logger.info(
            "Facebook CAPI configured",
            pixel_id=fb.pixel_id,
            api_version=fb.api_version,
            test_event_code=fb.test_event_code or "not set",
        )
    else:
        logger.warning(
            "Facebook CAPI is not fully configured",
            missing=fb.missing_fields,
        )

    if settings.cors.is_restricted:
        logger.info("CORS enabled for specific origins", origins=settings.cors.origins)
    else:
        logger.warning("ALLOWED_ORIGINS not set, allowing all origins")


def create_lifespan_handler(
    settings: Settings,
    dispatcher_factory: Callable[[], Dispatcher] = BackgroundDispatcher,
) -> Any:
    """Create a lifespan handler with access to settings."""
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Opens the forwarder's HTTP session on startup and closes it on shutdown.
        """
        logger = structlog.get_logger(__name__)
        logger.info("Starting CAPI relay", version=app.version, port=settings.port)
        log_configuration(settings)

        forwarder = CapiForwarder(
            settings.facebook,
            include_payload_in_logs=settings.is_development,
        )
        app.state.forwarder = forwarder
        await forwarder.start()

        dispatcher = dispatcher_factory()
        app.state.dispatcher = dispatcher

        try:
            logger.info("CAPI relay started successfully")
            yield
        finally:
            logger.info("Shutting down CAPI relay")

            await dispatcher.shutdown()
            await forwarder.stop()

            logger.info("CAPI relay shutdown complete")

    return lifespan


def _error_response(status_code: int, error: str, requested_url: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=error, requested_url=requested_url)
    return JSONResponse(status_code=status_code, content=body.to_content())


def register_exception_handlers(app: FastAPI) -> None:
    """Map every failure onto the {success: false, error} envelope."""

    @app.exception_handler(RelayException)
    async def relay_exception_handler(request: Request, exc: RelayException) -> JSONResponse:
        """Handle custom relay exceptions."""
        logger = structlog.get_logger(__name__)
        log_method = logger.warning if exc.status_code < 500 else logger.error
        log_method(
            "Relay exception occurred",
            error=str(exc),
            error_code=exc.error_code,
            status_code=exc.status_code,
            path=request.url.path,
            method=request.method,
        )
        return _error_response(exc.status_code, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle framework-level request validation errors."""
        logger = structlog.get_logger(__name__)
        logger.warning("Request validation failed", errors=exc.errors(), path=request.url.path)
        return _error_response(400, "Invalid request.")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle 404s and other framework HTTP errors."""
        logger = structlog.get_logger(__name__)
        if exc.status_code == 404:
            logger.warning("404 Not Found", method=request.method, path=request.url.path)
            return _error_response(404, "Not Found", requested_url=request.url.path)

        logger.warning(
            "HTTP error",
            status_code=exc.status_code,
            detail=exc.detail,
            method=request.method,
            path=request.url.path,
        )
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger = structlog.get_logger(__name__)
        logger.error(
            "Unexpected exception occurred",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
            exc_info=True,
        )
        return _error_response(500, "Internal Server Error")


def create_app(
    settings: Optional[Settings] = None,
    dispatcher_factory: Callable[[], Dispatcher] = BackgroundDispatcher,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Settings are injected so tests can supply their own configuration
    without touching the environment.
    """
    if settings is None:
        settings = get_settings()

    configure_logging(settings.log_level)

    lifespan = create_lifespan_handler(settings, dispatcher_factory)

    app = FastAPI(
        title="CAPI Relay",
        description="Conversion events → Facebook Conversions API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins,
        allow_credentials=settings.cors.is_restricted,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        """Log every inbound request."""
        logger = structlog.get_logger(__name__)
        logger.info(
            "HTTP Request",
            method=request.method,
            path=request.url.path,
            ip=resolve_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        return await call_next(request)

    register_exception_handlers(app)

    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["analytics"])

    @app.get("/", include_in_schema=False, response_class=PlainTextResponse)
    async def root() -> str:
        """Root banner."""
        return "Analytics Microservice is up and running!"

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.capirelay.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )
