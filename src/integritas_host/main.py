"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from integritas_host import __version__
from integritas_host.api.ratelimit import limiter, rate_limit_exceeded_handler
from integritas_host.api.router import api_router
from integritas_host.config import get_settings
from integritas_host.mcp.client import connect_tool_server
from integritas_host.observability.metrics import setup_metrics
from integritas_host.shared.exceptions import (
    ConfigurationError,
    IntegritasHostError,
    ToolServerError,
    ValidationError,
)
from integritas_host.shared.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan - startup and shutdown events."""
    # Startup
    setup_logging()
    logger.info("integritas_host_starting", version=__version__)

    settings = get_settings()
    async with AsyncExitStack() as stack:
        # Tests inject a fake tool server before startup.
        if getattr(app.state, "tool_server", None) is None:
            app.state.tool_server = await connect_tool_server(settings, stack)

        yield

        # Shutdown
        logger.info("integritas_host_stopping")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Integritas MCP Host",
        description="Chat orchestration between LLM providers and the Integritas MCP server",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # CORS middleware
    if settings.is_production:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "X-API-Key", "X-User-ID", "X-Request-ID"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Exception handlers
    register_exception_handlers(app)

    # Include routers
    app.include_router(api_router)

    # Observability
    setup_metrics(app)

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        _ = request
        return JSONResponse(
            status_code=400,
            content={
                "error": "validation_error",
                "message": exc.message,
                "details": exc.details,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        _ = request
        return JSONResponse(
            status_code=422,
            content={
                "error": "validation_error",
                "message": "Request validation failed",
                "details": {"errors": exc.errors()},
            },
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        _ = request
        logger.warning("configuration_error", error=exc.message, details=exc.details)
        return JSONResponse(
            status_code=400,
            content={
                "error": "configuration_error",
                "message": exc.message,
                "details": exc.details,
            },
        )

    @app.exception_handler(ToolServerError)
    async def tool_server_error_handler(request: Request, exc: ToolServerError) -> JSONResponse:
        _ = request
        logger.error("tool_server_unavailable", error=exc.message)
        return JSONResponse(
            status_code=503,
            content={
                "error": "tool_server_unavailable",
                "message": exc.message,
            },
        )

    @app.exception_handler(IntegritasHostError)
    async def host_error_handler(request: Request, exc: IntegritasHostError) -> JSONResponse:
        _ = request
        logger.error("unhandled_error", error=exc.message, details=exc.details)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An internal error occurred",
            },
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        _ = request
        logger.exception("unexpected_error", error=str(exc))
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An unexpected error occurred",
            },
        )


# Create app instance
app = create_app()
