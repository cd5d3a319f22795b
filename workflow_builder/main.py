"""FastAPI application entry point."""
import structlog
from fastapi import FastAPI

from workflow_builder import __version__
from workflow_builder.api import resources, tools
from workflow_builder.config import get_settings

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    description="Workflow tools for n8n: build, normalize and manage workflows",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Include routers
app.include_router(tools.router, prefix="/api", tags=["tools"])
app.include_router(resources.router, prefix="/api", tags=["resources"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "n8n_configured": settings.has_n8n_credentials(),
    }


@app.on_event("startup")
async def startup_event():
    """Application startup handler."""
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        debug=settings.debug,
        n8n_host=settings.n8n_host or None,
        n8n_api_key_set=bool(settings.n8n_api_key),
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown handler."""
    logger.info("application_shutdown")
