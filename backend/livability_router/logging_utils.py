from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings


LOGGER_NAME = "livability_router"
LOG_FILE_NAME = "routing.log.jsonl"

# Attributes owned by logging.LogRecord; structured fields must not shadow them.
_RESERVED_RECORD_KEYS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}

_configure_lock = threading.Lock()
_configured = False


def _parse_level(name: str) -> int:
    level = logging.getLevelName(str(name or "").upper())
    return level if isinstance(level, int) else logging.INFO


def _log_dir_candidates(configured_out_dir: str) -> Iterator[Path]:
    if configured_out_dir:
        yield Path(configured_out_dir) / "logs"
    yield Path.cwd() / "out" / "logs"
    yield Path(gettempdir()) / "livability-router" / "logs"


def _resolve_log_dir(configured_out_dir: str) -> Path | None:
    """First candidate directory we can actually create and write into."""
    for log_dir in _log_dir_candidates(configured_out_dir):
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            probe = log_dir / ".writetest"
            probe.touch(exist_ok=True)
            probe.unlink(missing_ok=True)
        except OSError:
            continue
        return log_dir
    return None


def _formatter() -> jsonlogger.JsonFormatter:
    return jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger"},
    )


def configure_logging(*, level: str | None = None, out_dir: str | None = None) -> logging.Logger:
    """(Re)attach the JSON stream and file handlers to the package logger.

    Safe to call more than once; earlier handlers are closed and replaced, so a
    test or script can point the JSONL sink at another directory.
    """
    global _configured
    logger = logging.getLogger(LOGGER_NAME)
    with _configure_lock:
        for handler in list(logger.handlers):
            if getattr(handler, "_livability_router", False):
                logger.removeHandler(handler)
                handler.close()

        logger.setLevel(_parse_level(level or settings.log_level))
        logger.propagate = False
        formatter = _formatter()

        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        stream._livability_router = True  # type: ignore[attr-defined]
        logger.addHandler(stream)

        log_dir = _resolve_log_dir(out_dir if out_dir is not None else settings.out_dir)
        if log_dir is not None:
            try:
                file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
            except OSError:
                file_handler = None
            if file_handler is not None:
                file_handler.setFormatter(formatter)
                file_handler._livability_router = True  # type: ignore[attr-defined]
                logger.addHandler(file_handler)

        _configured = True
    return logger


def get_logger() -> logging.Logger:
    if _configured:
        return logging.getLogger(LOGGER_NAME)
    return configure_logging()


def _record_fields(event: str, fields: dict[str, Any]) -> dict[str, Any]:
    extra: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        if value is None:
            continue
        extra[f"field_{key}" if key in _RESERVED_RECORD_KEYS else key] = value
    return extra


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one structured event; ``event`` is both the message and a top-level key."""
    logger = get_logger()
    if not logger.isEnabledFor(level):
        return
    logger.log(level, event, extra=_record_fields(event, fields))
