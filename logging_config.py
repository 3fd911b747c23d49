"""
Logging setup for the framepusher.* loggers.

Both front ends call setup_logging() once at startup (the server from its
lifespan hook, so `uvicorn server:app` is covered too). The level can be
overridden with the FRAMEPUSHER_LOG_LEVEL environment variable.
"""
import logging
import os
import sys

LOGGER_NAME = "framepusher"
LEVEL_ENV = "FRAMEPUSHER_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


def _resolve_level(level) -> int:
    if level is None:
        level = os.environ.get(LEVEL_ENV, "INFO")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved, int):
            raise ValueError(f"unknown log level '{level}'")
        return resolved
    return int(level)


def setup_logging(level=None, log_file: str | None = None) -> logging.Logger:
    """Attach a stdout handler (and optionally a file) to the framepusher logger.

    Calling it again replaces the previous handlers.

    Raises:
        ValueError: ``level`` (or the environment override) is not a level name.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_resolve_level(level))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.debug("[CFG] logging at %s", logging.getLevelName(logger.level))
    return logger
