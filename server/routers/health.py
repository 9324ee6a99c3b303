"""
Health check endpoints.

Provides:
- /health - Liveness check
- /ready - Readiness check (database, Redis)
- /metrics - Game and cache counts for monitoring
"""

import json
import logging
from datetime import datetime, timezone

import asyncpg
from fastapi import APIRouter, Response
from redis.exceptions import RedisError

from stores.state_cache import StateCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_db_pool = None
_redis_client = None
_game_store = None


def set_health_dependencies(
    db_pool=None,
    redis_client=None,
    game_store=None,
):
    """Set dependencies for health checks."""
    global _db_pool, _redis_client, _game_store
    _db_pool = db_pool
    _redis_client = redis_client
    _game_store = game_store


@router.get("/health")
async def health_check():
    """Liveness check; 200 whenever the process is up."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check.

    Returns 503 if a configured database or Redis is unreachable.
    """
    checks = {}
    overall_healthy = True

    if _db_pool is not None:
        try:
            async with _db_pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            checks["database"] = {"status": "ok"}
        except (asyncpg.PostgresError, OSError) as e:
            logger.warning(f"Database health check failed: {e}")
            checks["database"] = {"status": "error", "message": str(e)}
            overall_healthy = False
    else:
        checks["database"] = {"status": "not_configured"}

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            checks["redis"] = {"status": "ok"}
        except RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            checks["redis"] = {"status": "error", "message": str(e)}
            overall_healthy = False
    else:
        checks["redis"] = {"status": "not_configured"}

    status_code = 200 if overall_healthy else 503
    return Response(
        content=json.dumps({
            "status": "ok" if overall_healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
        status_code=status_code,
        media_type="application/json",
    )


@router.get("/metrics")
async def metrics():
    """Operational counts for dashboards."""
    metrics_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    # In-memory store exposes its size directly
    game_count = getattr(_game_store, "game_count", None)
    if game_count is not None:
        metrics_data["games_in_memory"] = game_count

    if _db_pool is not None:
        try:
            async with _db_pool.acquire() as conn:
                metrics_data["games_total"] = await conn.fetchval(
                    "SELECT COUNT(*) FROM darts_games"
                )
                metrics_data["games_in_progress"] = await conn.fetchval(
                    "SELECT COUNT(*) FROM darts_games WHERE status = 'InProgress'"
                )
                metrics_data["turns_today"] = await conn.fetchval(
                    "SELECT COUNT(*) FROM darts_turns WHERE created_at > NOW() - INTERVAL '1 day'"
                )
        except (asyncpg.PostgresError, OSError) as e:
            logger.warning(f"Failed to collect database metrics: {e}")

    if _redis_client is not None:
        # Listing also prunes games whose snapshot has expired
        metrics_data["cached_games"] = len(await StateCache(_redis_client).get_active_games())

    return metrics_data
