# backend/storefront/core/logging.py
from __future__ import annotations

import logging

from storefront.core.config import settings

LOG_FORMAT = "%(levelname)s : %(asctime)s | %(name)s  | %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Attach a single stream handler to the `storefront` logger.
    Safe to call more than once (uvicorn reload, tests).
    """
    logger = logging.getLogger("storefront")
    logger.setLevel((level or settings.LOG_LEVEL).upper())

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
