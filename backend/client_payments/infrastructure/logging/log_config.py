"""Logging setup for the records backend.

Levels come from Settings, one field per logger family, so SQL echo and
outbound HTTP chatter can be turned up while the records pipeline stays at
INFO (or the other way round).

Usage:
    from client_payments.infrastructure.logging.log_config import setup_logging
    setup_logging()   # once, from the FastAPI lifespan
"""

import logging
import sys

from client_payments.config import Settings, get_settings

_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Settings field -> logger names it controls.
_LOGGER_FAMILIES: dict[str, tuple[str, ...]] = {
    "log_level_sql": ("sqlalchemy.engine", "sqlalchemy.pool", "asyncpg", "aiosqlite"),
    "log_level_http": ("httpx", "httpcore"),
    "log_level_uvicorn": ("uvicorn", "uvicorn.access", "uvicorn.error"),
    "log_level_records": (
        "RecordStore",
        "RecordsService",
        "client_payments.application",
        "client_payments.infrastructure.database",
        "client_payments.infrastructure.notifications",
        "client_payments.infrastructure.http",
        "client_payments.infrastructure.scheduling",
        "client_payments.presentation",
    ),
}

_handler: logging.Handler | None = None


def setup_logging(settings: Settings | None = None) -> dict[str, int]:
    """Apply root and per-family levels; returns the level chosen for each logger.

    Safe to call more than once: the stderr handler is installed only when the
    root logger has none, and only the first time.
    """
    global _handler
    settings = settings or get_settings()

    root = logging.getLogger()
    root.setLevel(_parse_level(settings.log_level))
    if _handler is None and not root.handlers:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(_handler)

    applied: dict[str, int] = {}
    for field_name, logger_names in _LOGGER_FAMILIES.items():
        level = _parse_level(getattr(settings, field_name, "INFO"))
        for name in logger_names:
            logging.getLogger(name).setLevel(level)
            applied[name] = level

    logging.getLogger(__name__).debug(
        "Logging configured: root=%s sql=%s http=%s uvicorn=%s records=%s",
        settings.log_level,
        settings.log_level_sql,
        settings.log_level_http,
        settings.log_level_uvicorn,
        settings.log_level_records,
    )
    return applied


def _parse_level(raw: str) -> int:
    """Level name to logging constant; unknown names fall back to INFO."""
    numeric = getattr(logging, str(raw).strip().upper(), None)
    return numeric if isinstance(numeric, int) else logging.INFO
