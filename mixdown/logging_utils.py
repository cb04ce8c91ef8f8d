from __future__ import annotations

import logging
import os
import traceback
from datetime import datetime
from pathlib import Path

_LOGGER = logging.getLogger("mixdown.logging")
_ROOT_LOGGER = "mixdown"
_LOG_DIR_ENV = "MIXDOWN_LOG_DIR"
_LOG_LEVEL_ENV = "MIXDOWN_LOG_LEVEL"
_LOG_FILE = "mixdown.log"


def _level_from_env() -> int | None:
    raw = os.environ.get(_LOG_LEVEL_ENV, "").strip()
    if not raw:
        return None
    level = logging.getLevelName(raw.upper())
    if isinstance(level, int):
        return level
    _LOGGER.warning("Ignoring unknown %s value: %s", _LOG_LEVEL_ENV, raw)
    return None


def configure_logging() -> None:
    """Attach a NullHandler to the package logger and apply MIXDOWN_LOG_LEVEL."""
    logger = logging.getLogger(_ROOT_LOGGER)
    if not any(isinstance(handler, logging.NullHandler) for handler in logger.handlers):
        logger.addHandler(logging.NullHandler())
    level = _level_from_env()
    if level is not None:
        logger.setLevel(level)


def get_log_dir() -> Path:
    configured = os.environ.get(_LOG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".cache" / "mixdown" / "logs"


def get_log_path() -> Path:
    return get_log_dir() / _LOG_FILE


def format_failure(context: str, exc: BaseException) -> str:
    stamp = datetime.now().isoformat(timespec="seconds")
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return f"[{stamp}] {context} ({type(exc).__name__}): {exc}\n{trace}\n"


def log_exception(context: str, exc: BaseException) -> Path | None:
    """Append a failure entry to the mixdown log file.

    Returns the log path, or None when the file cannot be written.
    """
    path = get_log_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(format_failure(context, exc))
    except OSError as log_exc:
        _LOGGER.warning("Could not append to %s: %s", path, log_exc, exc_info=True)
        return None
    _LOGGER.debug("Recorded %s failure in %s", context, path)
    return path
