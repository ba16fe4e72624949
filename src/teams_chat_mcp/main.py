"""FastAPI application for the Teams Chat REST API."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import error_status, router as chat_router
from .config import get_settings
from .graph.exceptions import GraphToolError
from .graph.http_client import close_http_client, get_http_client
from .observability.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings = get_settings()

    configure_logging(
        environment=settings.environment,
        log_level="DEBUG" if settings.debug else settings.log_level,
    )

    # Warm up HTTP client (creates connection pool)
    get_http_client()

    logger.info("%s v%s started", settings.app_name, settings.app_version)
    logger.info("Environment: %s", settings.environment)
    logger.info("Graph API: %s", settings.graph_base_url)

    yield

    # Shutdown
    await close_http_client()
    logger.info("HTTP client closed")


async def graph_error_handler(request: Request, exc: GraphToolError) -> JSONResponse:
    status = error_status(exc)
    if status >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = {}
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers["Retry-After"] = str(int(retry_after))
    return JSONResponse(
        status_code=status,
        content={"success": False, "error": exc.to_dict()},
        headers=headers,
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Microsoft Teams chats over Microsoft Graph",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GraphToolError, graph_error_handler)
    app.include_router(chat_router, prefix="/api/chat", tags=["chat"])

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    return app


# Create app instance
app = create_app()


def run():
    """Console entry point for the REST API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "teams_chat_mcp.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    run()
