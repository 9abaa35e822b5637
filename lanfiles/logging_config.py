from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler

from .config import Settings

_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
_HANDLER_MARK = '_lanfiles_handler'


def setup_logging(config: Settings) -> None:
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logger = logging.getLogger()
    logger.setLevel(level)

    # Drop handlers from an earlier call so repeated setup does not duplicate output
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = []

    console = logging.StreamHandler(sys.stdout)
    handlers.append(console)

    if config.log_file:
        # Max 2MB per file, keep one backup
        handlers.append(RotatingFileHandler(config.log_file, maxBytes=2 * 1024 * 1024, backupCount=1, encoding='utf-8'))

    formatter = logging.Formatter(_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)
        logger.addHandler(handler)

    for name in ('uvicorn', 'uvicorn.access', 'uvicorn.error'):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers = list(handlers)
        uv_logger.propagate = False

    logging.getLogger(__name__).debug('Logging configured at %s', config.log_level)
