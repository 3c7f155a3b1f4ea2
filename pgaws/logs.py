"""Driver logger setup driven by connection properties."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Mapping

from .properties import LOGGER_FILE, LOGGER_LEVEL

PARENT_LOGGER = logging.getLogger("pgaws")
TRACE = 5

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_LEVELS = {"DEBUG": logging.DEBUG, "TRACE": TRACE}

_lock = threading.Lock()
_handler: logging.Handler | None = None
_handler_file: str | None = None

logging.addLevelName(TRACE, "TRACE")


def configure_from_properties(props: Mapping[str, str]) -> None:
    """Apply ``loggerLevel`` and ``loggerFile`` to the ``pgaws`` logger.

    Leaves logging untouched unless ``loggerLevel`` is set. ``OFF`` silences
    the driver. A handler is only rebuilt when the target file changes.
    """

    level_name = LOGGER_LEVEL.get(props)
    if level_name is None:
        return
    level_name = level_name.upper()
    if level_name == "OFF":
        PARENT_LOGGER.setLevel(logging.CRITICAL + 1)
        return
    if level_name in _LEVELS:
        PARENT_LOGGER.setLevel(_LEVELS[level_name])

    log_file = LOGGER_FILE.get(props)
    global _handler, _handler_file
    with _lock:
        if log_file is not None and log_file == _handler_file:
            return

        if _handler is not None:
            PARENT_LOGGER.removeHandler(_handler)
            _handler.close()
            _handler = None
            _handler_file = None

        handler: logging.Handler | None = None
        if log_file is not None:
            try:
                handler = logging.FileHandler(log_file)
                _handler_file = log_file
            except OSError:
                print("Cannot enable FileHandler, fallback to stderr.", file=sys.stderr)
        if handler is None:
            handler = logging.StreamHandler(sys.stderr)

        handler.setFormatter(logging.Formatter(_FORMAT))
        if PARENT_LOGGER.level != logging.NOTSET:
            handler.setLevel(PARENT_LOGGER.level)
        PARENT_LOGGER.propagate = False
        PARENT_LOGGER.addHandler(handler)
        _handler = handler


def reset() -> None:
    """Remove the handler installed by ``configure_from_properties`` (testing helper)."""

    global _handler, _handler_file
    with _lock:
        if _handler is not None:
            PARENT_LOGGER.removeHandler(_handler)
            _handler.close()
        _handler = None
        _handler_file = None
        PARENT_LOGGER.setLevel(logging.NOTSET)
        PARENT_LOGGER.propagate = True


__all__ = ["PARENT_LOGGER", "TRACE", "configure_from_properties", "reset"]
