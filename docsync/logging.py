"""Logging setup shared by the docsync CLI, service and pipeline workers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, MutableMapping, Tuple

_LOGGER_NAME = "docsync"
_CONSOLE_FORMAT = "[docsync] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a component logger under the ``docsync`` hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


class UnitLogger(logging.LoggerAdapter):
    """Prefixes every record with the identity of the unit being processed.

    Pipeline workers interleave their output, so each line has to say which
    unit it belongs to on its own.
    """

    def __init__(self, logger: logging.Logger, identity: str) -> None:
        super().__init__(logger, {"unit": identity})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("unit", self.extra["unit"])
        kwargs["extra"] = extra
        return f"{self.extra['unit']}: {msg}", kwargs


def unit_logger(component: str, identity: str) -> UnitLogger:
    return UnitLogger(get_logger(component), identity)


def configure_logging(
    *, verbose: bool = False, quiet: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Attach console (and optionally file) handlers to the ``docsync`` logger.

    ``quiet`` limits the console to warnings. A ``log_file`` always receives
    debug detail regardless of the console level.
    """
    if verbose:
        console_level = logging.DEBUG
    elif quiet:
        console_level = logging.WARNING
    else:
        console_level = logging.INFO

    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file is not None else console_level)
    logger.propagate = False

    # Repeated CLI invocations in one process must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = ["UnitLogger", "configure_logging", "get_logger", "unit_logger"]
