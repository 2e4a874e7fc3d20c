"""Structured logging for services that use the session store."""

import logging
from typing import Optional, Union

from pythonjsonlogger import jsonlogger

FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def setup_logger(level: Union[int, str] = logging.DEBUG,
                 logger: Optional[logging.Logger] = None) -> logging.Handler:
    """Emit JSON log records from ``logger`` (the root logger by default)."""
    handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        FORMAT,
        rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
    )
    handler.setFormatter(formatter)
    if logger is None:
        logger = logging.getLogger()
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
