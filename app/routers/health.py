"""
Health Check Router - Report Insight Platform
app/routers/health.py

Returns health status of storage, Redis and the text generation
configuration.
"""
import os
import tempfile
from datetime import datetime, timezone
from typing import Dict

import redis
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.core.exceptions import ConfigurationException
from app.services.text_generation import resolve_api_key

router = APIRouter(tags=["health"])


#  Schemas


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    dependencies: Dict[str, str]


#  Dependency Health Checks


def check_storage() -> str:
    """DATA_DIR must exist (or be creatable) and be writable."""
    try:
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=settings.DATA_DIR, prefix=".health."):
            pass
        return f"healthy (Path: {settings.DATA_DIR})"
    except OSError as e:
        return f"unhealthy: {e.strerror or e}"


def check_redis() -> str:
    """Redis is optional; unavailability only disables response caching."""
    try:
        client = redis.from_url(settings.REDIS_URL, decode_responses=True, socket_connect_timeout=5)
        client.ping()
        client.close()
        return "healthy"
    except (redis.RedisError, ConnectionError) as e:
        msg = str(e)[:100] + "..." if len(str(e)) > 100 else str(e)
        return f"degraded: {msg}"


def check_text_generation() -> str:
    try:
        resolve_api_key(settings.DEFAULT_LLM_MODEL)
        return f"healthy (Model: {settings.DEFAULT_LLM_MODEL})"
    except ConfigurationException as e:
        return f"unhealthy: {e}"


#  Main Health Check Route


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        200: {"description": "Required dependencies healthy"},
        503: {"description": "Storage or text generation unavailable"},
    },
    summary="Health check",
)
def health_check():
    """Check health of all dependencies."""
    dependencies = {
        "storage": check_storage(),
        "redis": check_redis(),
        "text_generation": check_text_generation(),
    }

    required_ok = all(
        dependencies[name].startswith("healthy") for name in ("storage", "text_generation")
    )
    all_healthy = required_ok and dependencies["redis"].startswith("healthy")

    response = HealthResponse(
        status="healthy" if all_healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=settings.APP_VERSION,
        dependencies=dependencies,
    )

    if required_ok:
        return response
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json"),
    )


@router.get("/health/env-check", summary="Check environment variables")
def health_env_check():
    """Check if environment variables are loaded (doesn't expose values)."""
    return {
        "variables": {
            name: "✅ Set" if getattr(settings, name) is not None else "❌ Missing"
            for name in ("GOOGLE_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY")
        } | {
            "REDIS_URL": "✅ Set" if os.getenv("REDIS_URL") else "⚪ Using default",
            "REPORT_FEED_URL": "✅ Set" if settings.REPORT_FEED_URL else "⚪ Not configured",
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
