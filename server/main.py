"""FastAPI server for darts scoring."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from config import config
from game import (
    GameCompletedError,
    GameHaltedError,
    GameNotFoundError,
    InconsistentStateError,
    TurnValidationError,
)
from logging_config import setup_logging
from middleware.request_id import RequestIDMiddleware
from routers.games import router as games_router, set_game_service
from routers.health import router as health_router, set_health_dependencies
from services.game_service import GameService, set_game_service as set_global_game_service
from stores.base import ConcurrencyError
from stores.memory_store import InMemoryGameStore
from stores.state_cache import close_state_cache, get_state_cache
from stores.turn_store import close_game_store, get_game_store

setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


async def _init_store():
    """PostgreSQL store when configured, otherwise in-memory."""
    if config.POSTGRES_URL:
        store = await get_game_store(config.POSTGRES_URL)
        logger.info("Game store: PostgreSQL")
        return store
    logger.warning("POSTGRES_URL not set - games are kept in memory only")
    return InMemoryGameStore()


async def _init_cache():
    if not config.REDIS_URL:
        return None
    try:
        return await get_state_cache(
            config.REDIS_URL, timedelta(hours=config.STATE_CACHE_TTL_HOURS)
        )
    except (RedisError, OSError) as e:
        logger.warning(f"Redis connection failed: {e} - state cache disabled")
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the store, cache and game service."""
    store = await _init_store()
    cache = await _init_cache()

    service = GameService(store, cache, enforce_cork=config.ENFORCE_CORK)
    set_global_game_service(service)
    set_game_service(service)
    set_health_dependencies(
        db_pool=getattr(store, "pool", None),
        redis_client=cache.redis if cache else None,
        game_store=store,
    )
    logger.info("Game service initialized")

    yield

    logger.info("Shutting down...")
    set_game_service(None)
    set_global_game_service(None)
    await close_state_cache()
    await close_game_store()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Darts Scoring API",
    description="Turn-by-turn scoring for X01, Cricket, Shanghai and Round the World",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestIDMiddleware)


# =============================================================================
# Error mapping
# =============================================================================


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(TurnValidationError)
async def turn_validation_handler(request: Request, exc: TurnValidationError):
    return _error(400, exc)


@app.exception_handler(GameNotFoundError)
async def not_found_handler(request: Request, exc: GameNotFoundError):
    return _error(404, exc)


@app.exception_handler(GameCompletedError)
async def completed_handler(request: Request, exc: GameCompletedError):
    return _error(409, exc)


@app.exception_handler(ConcurrencyError)
async def concurrency_handler(request: Request, exc: ConcurrencyError):
    return _error(409, exc)


@app.exception_handler(InconsistentStateError)
async def inconsistent_state_handler(request: Request, exc: InconsistentStateError):
    logger.error(f"Inconsistent state on {request.url.path}: {exc}")
    return _error(409, exc)


@app.exception_handler(GameHaltedError)
async def halted_handler(request: Request, exc: GameHaltedError):
    return _error(423, exc)


app.include_router(health_router)
app.include_router(games_router)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting darts server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
