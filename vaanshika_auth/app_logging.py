
import logging
from typing import Optional

from pythonjsonlogger import jsonlogger

from . import config


def setup_logger(level: Optional[str] = None,
                 json: Optional[bool] = None) -> None:
    """
    Send log records to stderr, as JSON unless ``json`` is false.

    Call once at application startup. ``level`` and ``json`` default to
    ``LOG_LEVEL`` and ``LOG_JSON``.
    """
    logHandler = logging.StreamHandler()
    if config.LOG_JSON if json is None else json:
        formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(levelname)s %(name)s %(message)s',
            rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s %(levelname)s %(name)s %(message)s'
        )
    logHandler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.addHandler(logHandler)
    logger.setLevel(level or config.LOG_LEVEL)
