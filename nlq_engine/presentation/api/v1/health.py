from fastapi import APIRouter
from typing import Dict, Any
import psutil
import os

from nlq_engine.presentation.api.dependencies import (
    get_relational_repository,
    use_memory_stores,
    get_cache_store,
    get_schema_catalog,
    get_vector_store,
    get_embedding_service
)

router = APIRouter()


def check_database() -> str:
    """
    Check the relational database. In memory mode without DATABASE_URL
    there is nothing to check.
    """
    db = get_relational_repository()
    if db is None:
        return "skipped" if use_memory_stores() else "error: DATABASE_URL is not configured"

    try:
        with db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
        return "ok"
    except Exception as e:
        return f"error: {str(e)}"


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """
    Comprehensive health check
    """
    health_status = {
        "status": "healthy",
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "checks": {}
    }

    database = check_database()
    health_status["checks"]["database"] = database
    if database.startswith("error"):
        health_status["status"] = "degraded"

    checks = {
        "schema_catalog": get_schema_catalog,
        "cache_store": get_cache_store,
        "vector_store": get_vector_store,
        "embedding_service": get_embedding_service,
    }

    for name, provider in checks.items():
        try:
            provider()
            health_status["checks"][name] = "ok"
        except Exception as e:
            health_status["checks"][name] = f"error: {str(e)}"
            health_status["status"] = "degraded"

    # System metrics
    health_status["metrics"] = {
        "cpu_percent": psutil.cpu_percent(),
        "memory_percent": psutil.virtual_memory().percent,
        "disk_percent": psutil.disk_usage('/').percent
    }

    return health_status


@router.get("/ready")
async def readiness_check():
    """
    Simple readiness check
    """
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    """
    Simple liveness check
    """
    return {"alive": True}
