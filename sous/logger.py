"""Logging for sous: one package logger, a console handler and an optional rotating file."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

__all__ = ["setup_logger", "get_logger", "PACKAGE_LOGGER", "DEFAULT_LOG_FILE"]

PACKAGE_LOGGER = "sous"
DEFAULT_LOG_FILE = Path.home() / ".sous" / "logs" / "sous.log"

# Chatty third-party loggers held at WARNING.
_QUIET_LOGGERS = ("litellm", "LiteLLM", "httpx")

LogTarget = Union[str, Path, bool, None]


def _log_path(target: LogTarget) -> Optional[Path]:
    """``False`` disables the file; ``None`` and ``True`` pick the default location."""
    if target is False:
        return None
    if target is None or target is True:
        return DEFAULT_LOG_FILE
    return Path(target).expanduser()


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[%(levelname).1s] %(message)s"))
    return handler


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=3,
                                  encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    return handler


def setup_logger(verbose: bool = False, log_file: LogTarget = None) -> logging.Logger:
    """Install handlers on the ``sous`` logger. Calling it again replaces them.

    The console shows WARNING and up, INFO with ``verbose``. The file, when
    enabled, always records INFO so a failed session can be traced afterwards.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_level = logging.INFO if verbose else logging.WARNING
    logger.addHandler(_console_handler(console_level))

    path = _log_path(log_file)
    if path is not None:
        logger.addHandler(_file_handler(path))
    logger.setLevel(logging.INFO if path is not None else console_level)
    logger.propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
