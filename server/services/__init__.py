"""Services package for darts game operations."""

from .game_service import GameService, SubmitResult, get_game_service, set_game_service

__all__ = [
    "GameService",
    "SubmitResult",
    "get_game_service",
    "set_game_service",
]
