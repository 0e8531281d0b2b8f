import signal
import asyncio
import logging
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# IMPORT ROUTERS
from app.routers.health import router as health_router
from app.routers.reports import router as reports_router
from app.routers.industries import router as industries_router
load_dotenv()

from app.config import settings
from app.core.logging_config import configure_logging
from app.services.text_generation import get_text_generation_service
from app.shutdown import set_shutdown

logger = logging.getLogger(__name__)


# SWAGGER UI: tag display order
_OPENAPI_TAGS = [
    {"name": "Root"},
    {"name": "health"},
    {"name": "reports"},
    {"name": "industries"},
]

# FASTAPI APPLICATION CONFIGURATION
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    openapi_tags=_OPENAPI_TAGS,
)

app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

# REGISTER ROUTERS (order matches _OPENAPI_TAGS / Swagger UI display order)
app.include_router(health_router)       # Health
app.include_router(reports_router)      # Reports
app.include_router(industries_router)   # Industries


# ROOT ENDPOINT
@app.get("/", tags=["Root"], summary="Root endpoint")
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": {
            "swagger": "/docs",
            "redoc": "/redoc"
        },
        "status": "running"
    }


# STARTUP EVENT
@app.on_event("startup")
async def startup_event():
    configure_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.APP_ENV})...")

    # Missing credentials are fatal here rather than on the first request
    get_text_generation_service()

    # Register signal handlers for graceful shutdown (Ctrl+C / kill)
    loop = asyncio.get_running_loop()

    def _signal_handler(sig):
        logger.warning(f"⚠️  Received {sig.name}, stopping after the current report...")
        set_shutdown()

    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler, sig)
    except NotImplementedError:
        logger.warning("⚠️  Signal handlers not supported on this platform; relying on shutdown event")


# SHUTDOWN EVENT
@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"Shutting down {settings.APP_NAME}...")
    set_shutdown()  # Ensure flag is set even if signal handler didn't fire
