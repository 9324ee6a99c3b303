"""
Redis-backed derived state cache.

Caches the folded DerivedGameState of live games so reads of the scoreboard
do not replay the turn log each time.

This is a CACHE, not the source of truth. Turns in the game store are
authoritative. A cached snapshot is only used when its last_turn_number
matches the store; anything else is rebuilt from turns. Redis failures are
logged and treated as cache misses.

Key patterns:
- darts:game:{game_id}:state  -> JSON (DerivedGameState snapshot)
- darts:games:active          -> Set (game IDs with a cached snapshot; pruned
                                 of expired snapshots when listed)
"""

import json
import logging
from datetime import timedelta
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class StateCache:
    """Redis-backed derived state cache."""

    # Key patterns
    STATE_KEY = "darts:game:{game_id}:state"
    ACTIVE_GAMES_KEY = "darts:games:active"

    def __init__(self, redis_client: redis.Redis, ttl: timedelta = timedelta(hours=24)):
        """
        Initialize state cache with Redis client.

        Args:
            redis_client: Async Redis client.
            ttl: Expiry for cached snapshots.
        """
        self.redis = redis_client
        self.ttl = ttl

    @classmethod
    async def create(cls, redis_url: str, ttl: timedelta = timedelta(hours=24)) -> "StateCache":
        """
        Create a StateCache with a new Redis connection.

        Args:
            redis_url: Redis connection URL.
            ttl: Expiry for cached snapshots.

        Returns:
            Configured StateCache instance.
        """
        client = redis.from_url(redis_url, decode_responses=False)
        # Test connection
        await client.ping()
        logger.info("StateCache connected to Redis")
        return cls(client, ttl)

    async def close(self) -> None:
        """Close the Redis connection."""
        await self.redis.close()

    # -------------------------------------------------------------------------
    # Derived State
    # -------------------------------------------------------------------------

    async def save_state(self, game_id: str, state: dict) -> None:
        """
        Save a derived state snapshot.

        Args:
            game_id: Game ID.
            state: DerivedGameState.to_dict() output.
        """
        try:
            pipe = self.redis.pipeline()
            pipe.set(
                self.STATE_KEY.format(game_id=game_id),
                json.dumps(state),
                ex=int(self.ttl.total_seconds()),
            )
            pipe.sadd(self.ACTIVE_GAMES_KEY, game_id)
            await pipe.execute()
        except RedisError as e:
            logger.warning(f"Failed to cache state for game {game_id}: {e}")

    async def get_state(self, game_id: str) -> Optional[dict]:
        """
        Get a cached snapshot.

        Args:
            game_id: Game ID.

        Returns:
            Snapshot dict, or None if missing or Redis is unavailable.
        """
        try:
            data = await self.redis.get(self.STATE_KEY.format(game_id=game_id))
        except RedisError as e:
            logger.warning(f"Failed to read cached state for game {game_id}: {e}")
            return None
        if not data:
            return None
        if isinstance(data, bytes):
            data = data.decode()
        return json.loads(data)

    async def delete_state(self, game_id: str) -> None:
        """
        Drop a cached snapshot.

        Args:
            game_id: Game ID.
        """
        try:
            await self.redis.delete(self.STATE_KEY.format(game_id=game_id))
            await self.redis.srem(self.ACTIVE_GAMES_KEY, game_id)
        except RedisError as e:
            logger.warning(f"Failed to drop cached state for game {game_id}: {e}")

    async def get_active_games(self) -> set[str]:
        """
        IDs of games with a cached snapshot.

        Members whose snapshot has expired are removed from the set as they
        are found.
        """
        try:
            members = await self.redis.smembers(self.ACTIVE_GAMES_KEY)
            active = set()
            expired = []
            for member in members:
                game_id = member.decode() if isinstance(member, bytes) else member
                if await self.redis.exists(self.STATE_KEY.format(game_id=game_id)):
                    active.add(game_id)
                else:
                    expired.append(member)
            if expired:
                await self.redis.srem(self.ACTIVE_GAMES_KEY, *expired)
                logger.debug(f"Pruned {len(expired)} expired game(s) from the active set")
        except RedisError as e:
            logger.warning(f"Failed to list cached games: {e}")
            return set()
        return active


# Global state cache instance (initialized on first use)
_state_cache: Optional[StateCache] = None


async def get_state_cache(redis_url: str, ttl: timedelta = timedelta(hours=24)) -> StateCache:
    """
    Get or create the global state cache instance.

    Args:
        redis_url: Redis connection URL.
        ttl: Expiry for cached snapshots.

    Returns:
        StateCache instance.
    """
    global _state_cache
    if _state_cache is None:
        _state_cache = await StateCache.create(redis_url, ttl)
    return _state_cache


async def close_state_cache() -> None:
    """Close the global state cache connection."""
    global _state_cache
    if _state_cache is not None:
        await _state_cache.close()
        _state_cache = None
