from __future__ import annotations

import io
import logging
from contextlib import contextmanager
from typing import Iterator

import pytest


@contextmanager
def _capture(logger_name: str) -> Iterator[io.StringIO]:
    logger = logging.getLogger(logger_name)
    buffer = io.StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setLevel(logging.INFO)
    previous_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    try:
        yield buffer
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous_level)


@pytest.fixture()
def log_capture():
    """Attach a temporary handler; app loggers do not propagate to caplog."""

    return _capture
