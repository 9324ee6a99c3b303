"""
Logging setup for the darts scoring server.

JSON lines in production, colored single lines elsewhere. Both formats carry
the request, game, player and side context when it is known.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
game_id_var: ContextVar[Optional[str]] = ContextVar("game_id", default=None)

# Record attributes copied into log output when present
CONTEXT_FIELDS = ("request_id", "game_id", "player_id", "side_id")


def _collect_context(record: logging.LogRecord) -> dict:
    context = {}
    request_id = request_id_var.get()
    if request_id:
        context["request_id"] = request_id
    game_id = game_id_var.get()
    if game_id:
        context["game_id"] = game_id
    for field in CONTEXT_FIELDS:
        value = getattr(record, field, None)
        if value:
            context[field] = value
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(_collect_context(record))

        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Human-readable colored output."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    # Short labels and how much of each ID to show
    LABELS = {"request_id": ("req", 8), "game_id": ("game", 8),
              "player_id": ("player", 12), "side_id": ("side", 12)}

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        parts = []
        for field, value in _collect_context(record).items():
            label, width = self.LABELS[field]
            parts.append(f"{label}={str(value)[:width]}")
        context = f" [{', '.join(parts)}]" if parts else ""

        output = (
            f"{timestamp} {color}{record.levelname:8}{reset} "
            f"{record.name}{context} - {record.getMessage()}"
        )
        if record.exc_info:
            output += "\n" + self.formatException(record.exc_info)
        return output


def setup_logging(level: str = "INFO", environment: str = "development") -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name.
        environment: "production" selects JSON output.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if environment == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={level}, environment={environment}"
    )


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that attaches game context to each record.

    Usage:
        logger = get_logger(__name__)
        logger.with_context(game_id=game_id, player_id="p1").info("Turn recorded")
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        super().__init__(logger, extra or {})

    def with_context(self, **kwargs) -> "ContextLogger":
        return ContextLogger(self.logger, {**self.extra, **kwargs})

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """Context-aware logger for a module."""
    return ContextLogger(logging.getLogger(name))
