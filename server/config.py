"""
Centralized configuration for the darts scoring server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.game_defaults.x01_target)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class GameDefaults:
    """Default settings applied when a game is created without them."""
    x01_target: int = 501
    double_in: bool = False
    double_out: bool = True
    rtw_mode: str = "1to20"  # "1to20", "20to1", or "Random"
    max_players_per_side: int = 4


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Persistence (empty = in-memory store / no cache)
    POSTGRES_URL: str = ""
    REDIS_URL: str = ""
    STATE_CACHE_TTL_HOURS: int = 24

    # Refuse turns in odd-numbered games until the cork order is set
    ENFORCE_CORK: bool = False

    game_defaults: GameDefaults = field(default_factory=GameDefaults)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            POSTGRES_URL=get_env("POSTGRES_URL", ""),
            REDIS_URL=get_env("REDIS_URL", ""),
            STATE_CACHE_TTL_HOURS=get_env_int("STATE_CACHE_TTL_HOURS", 24),
            ENFORCE_CORK=get_env_bool("ENFORCE_CORK", False),
            game_defaults=GameDefaults(
                x01_target=get_env_int("DEFAULT_X01_TARGET", 501),
                double_in=get_env_bool("DEFAULT_DOUBLE_IN", False),
                double_out=get_env_bool("DEFAULT_DOUBLE_OUT", True),
                rtw_mode=get_env("DEFAULT_RTW_MODE", "1to20"),
                max_players_per_side=get_env_int("MAX_PLAYERS_PER_SIDE", 4),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
