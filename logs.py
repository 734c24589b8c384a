"""Logging helpers for BookShare.

Every log line carries the id of the HTTP request that produced it, so a
single user action can be followed across the auth, catalog and lifecycle
layers.
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Optional, Union

import config

LOGGER_NAME = "bookshare"

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or "-"
        return True


def configure_logging(level: Union[int, str, None] = None) -> None:
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)s | %(request_id)s | %(name)s | %(message)s"
        )
    )
    handler.addFilter(RequestIdFilter())
    logger.addHandler(handler)
    logger.setLevel(level or config.LOG_LEVEL)


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def set_request_id(value: Optional[str] = None) -> str:
    token = value or uuid.uuid4().hex[:12]
    _request_id.set(token)
    return token

