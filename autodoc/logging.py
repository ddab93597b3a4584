"""Logger hierarchy and handler setup shared by the CLI and the pipeline."""

from __future__ import annotations

import logging
from pathlib import Path

ROOT_LOGGER = "autodoc"

_CONSOLE_FORMAT = "[autodoc] %(levelname)s %(message)s"
_VERBOSE_CONSOLE_FORMAT = "[autodoc] %(levelname)s %(component)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class _ComponentFormatter(logging.Formatter):
    """Exposes the logger name relative to ``autodoc`` as ``%(component)s``."""

    def format(self, record: logging.LogRecord) -> str:
        name = record.name
        if name.startswith(f"{ROOT_LOGGER}."):
            name = name[len(ROOT_LOGGER) + 1 :]
        record.component = name
        return super().format(record)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``autodoc.<name>``, or the root ``autodoc`` logger."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Install the console handler and, optionally, a DEBUG file handler.

    The console shows INFO by default, DEBUG with ``verbose`` and only
    warnings with ``quiet``. The file sink always records DEBUG so a quiet
    run can still be diagnosed afterwards.
    """
    if verbose:
        console_level = logging.DEBUG
    elif quiet:
        console_level = logging.WARNING
    else:
        console_level = logging.INFO

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if log_file is not None else console_level)
    logger.propagate = False

    # Repeated CLI invocations in one process must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(_ComponentFormatter(_VERBOSE_CONSOLE_FORMAT if verbose else _CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_file, encoding="utf-8")
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(sink)

    return logger


def log_failure(logger: logging.Logger, message: str, exc: BaseException) -> None:
    """Log ``message: exc`` as an error and keep the traceback at DEBUG."""
    logger.error("%s: %s", message, exc)
    logger.debug("%s", message, exc_info=exc)


__all__ = ["ROOT_LOGGER", "configure_logging", "get_logger", "log_failure"]
