"""
Logging setup for Tollgate.

Library modules only create module loggers (logging.getLogger(__name__))
and never install handlers. Applications, and the tollgate CLI, call
configure_logging() once to get a console handler and, optionally, a file.
"""

import logging
from pathlib import Path

LOGGER_NAME = "tollgate"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

logging.getLogger(LOGGER_NAME).addHandler(logging.NullHandler())


def configure_logging(
    level: int = logging.INFO,
    log_path: str | Path | None = None,
    also_console: bool = True,
) -> logging.Logger:
    """
    Configure the tollgate logger.

    Calling this more than once only updates the level; handlers are not
    duplicated.

    Args:
        level: Logging level for the tollgate logger
        log_path: Optional file to append log records to
        also_console: Whether to log to stderr

    Returns:
        The configured "tollgate" logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if getattr(logger, "_tollgate_configured", False):
        return logger

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = []

    if log_path is not None:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path))

    if also_console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(fmt)
        logger.addHandler(handler)

    setattr(logger, "_tollgate_configured", True)
    logger.debug("Logging initialized (level=%s, file=%s)", logging.getLevelName(level), log_path)
    return logger
