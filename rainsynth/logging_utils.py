"""
Logging setup for rainsynth.

Records go to the ``rainsynth`` logger tree: a console handler on stderr
(DEBUG when ``RAINSYNTH_DEBUG`` is set) and an append-only ``rainsynth.log``
under ``RAINSYNTH_LOG_DIR``. ``log_stage`` times one render stage.
"""

from __future__ import annotations

import logging
import os
import sys
import time
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

_LOGGER = logging.getLogger("rainsynth.logging")

LOG_DIR_ENV = "RAINSYNTH_LOG_DIR"
DEBUG_ENV = "RAINSYNTH_DEBUG"
LOG_FILE = "rainsynth.log"

_CONSOLE_FORMAT = "%(levelname)-7s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_logging_configured = False


def debug_enabled() -> bool:
    return bool(os.environ.get(DEBUG_ENV))


def get_log_dir() -> Path:
    configured = os.environ.get(LOG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".cache" / "rainsynth" / "logs"


def get_log_path() -> Path:
    return get_log_dir() / LOG_FILE


def _open_log_file() -> Path:
    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    return get_log_path()


def configure_logging(*, force: bool = False) -> None:
    """Attach console and file handlers to the ``rainsynth`` logger once.

    The console handler is skipped when the root logger already has handlers
    (an application or pytest owns the console), unless ``force`` is set.
    """
    global _logging_configured
    if _logging_configured and not force:
        return

    logger = logging.getLogger("rainsynth")
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers) if force else ():
        logger.removeHandler(handler)
        handler.close()

    if force or not logging.getLogger().handlers:
        console = logging.StreamHandler(stream=sys.__stderr__)
        console.setLevel(logging.DEBUG if debug_enabled() else logging.INFO)
        console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        logger.addHandler(console)

    try:
        file_handler = logging.FileHandler(_open_log_file(), encoding="utf-8")
    except OSError as exc:
        _LOGGER.warning("File logging disabled: %s", exc)
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)

    # caplog captures through the root logger.
    logger.propagate = True
    _logging_configured = True


@contextmanager
def log_stage(logger: logging.Logger, stage: str, **context: Any) -> Iterator[None]:
    """Log ``stage`` with its wall time at DEBUG once the block exits.

    A stage that raises is logged at WARNING with its elapsed time and the
    exception propagates unchanged.
    """
    details = " ".join(f"{key}={value}" for key, value in context.items())
    started = time.perf_counter()
    try:
        yield
    except Exception as exc:
        elapsed = time.perf_counter() - started
        logger.warning("%s failed after %.3fs: %s %s", stage, elapsed, exc, details)
        raise
    elapsed = time.perf_counter() - started
    logger.debug("%s took %.3fs %s", stage, elapsed, details)


def log_exception(context: str, exc: BaseException) -> Path | None:
    """Append ``exc`` with its traceback to the log file; return the file path."""
    try:
        path = _open_log_file()
        with path.open("a", encoding="utf-8") as handle:
            handle.write(
                f"[{datetime.now().isoformat()}] {context} failed: {type(exc).__name__}: {exc}\n"
            )
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=handle)
            handle.write("\n")
    except OSError as log_exc:
        _LOGGER.warning("Could not append to log file: %s", log_exc)
        return None
    return path
