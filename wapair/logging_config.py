import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Dict

from . import config


ROOT_LOGGER = "wapair"
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _component_levels() -> Dict[str, int]:
    """Parse `component=LEVEL` pairs from `config.LOG_LEVELS`; unknown levels are skipped."""
    out: Dict[str, int] = {}
    for item in config.LOG_LEVELS or []:
        name, sep, raw = str(item).partition("=")
        name = name.strip().strip(".")
        level = logging.getLevelName(raw.strip().upper()) if sep else None
        if name and isinstance(level, int):
            out[name] = level
    return out


def get_logger(component: str) -> logging.Logger:
    """Child of the `wapair` logger; records reach the same handlers."""
    return logging.getLogger(f"{ROOT_LOGGER}.{component}")


def setup_logging() -> logging.Logger:
    """Set up the `wapair` logger and route uvicorn loggers to the same handlers."""
    os.makedirs(config.DATA_DIR, exist_ok=True)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if config.DEBUG else logging.INFO)
    for component, level in _component_levels().items():
        get_logger(component).setLevel(level)

    if not config.LOG_ENABLED:
        logger.handlers.clear()
        logger.addHandler(logging.NullHandler())
        logger.propagate = False
        for name in _UVICORN_LOGGERS:
            ul = logging.getLogger(name)
            ul.handlers.clear()
            ul.propagate = False
            ul.setLevel(logging.CRITICAL)
        return logger

    if logger.handlers:
        return logger

    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    # component overrides may ask for DEBUG while the service runs at INFO
    level = min([logging.DEBUG if config.DEBUG else logging.INFO, *_component_levels().values()])

    file_handler = RotatingFileHandler(config.LOG_FILE, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    file_handler.setFormatter(fmt)
    file_handler.setLevel(level)
    logger.addHandler(file_handler)

    console = None
    if config.CONSOLE_LOG:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(fmt)
        console.setLevel(level)
        logger.addHandler(console)

    for name in _UVICORN_LOGGERS:
        ul = logging.getLogger(name)
        ul.handlers.clear()
        ul.propagate = False
        ul.setLevel(logging.DEBUG if config.DEBUG else logging.INFO)
        ul.addHandler(file_handler)
        if console is not None:
            ul.addHandler(console)

    return logger


log = setup_logging()


def reload_logging() -> logging.Logger:
    """Reload logger level and handlers from current configuration."""
    logger = logging.getLogger(ROOT_LOGGER)
    for h in list(logger.handlers):
        try:
            h.close()
        except Exception:
            pass
    logger.handlers.clear()
    logger.propagate = True
    for name in list(logging.root.manager.loggerDict):
        if name.startswith(ROOT_LOGGER + "."):
            logging.getLogger(name).setLevel(logging.NOTSET)

    for name in _UVICORN_LOGGERS:
        ul = logging.getLogger(name)
        ul.handlers.clear()
        ul.propagate = True

    return setup_logging()
