"""Stores package for darts persistence."""

from .base import GameStore, ConcurrencyError
from .memory_store import InMemoryGameStore
from .turn_store import PostgresGameStore, get_game_store, close_game_store
from .state_cache import StateCache, get_state_cache, close_state_cache

__all__ = [
    # Interface
    "GameStore",
    "ConcurrencyError",
    # Stores
    "InMemoryGameStore",
    "PostgresGameStore",
    "get_game_store",
    "close_game_store",
    # State cache
    "StateCache",
    "get_state_cache",
    "close_state_cache",
]
