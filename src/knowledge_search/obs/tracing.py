"""Logging setup and stage timing."""

from __future__ import annotations

import logging
import time

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "info") -> None:
    """Attach one stream handler to the package logger."""
    package_logger = logging.getLogger("knowledge_search")
    package_logger.setLevel(level.upper())
    if not any(getattr(h, "_knowledge_search", False) for h in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._knowledge_search = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)


class Timer:
    """Measures one search stage in milliseconds.

    `elapsed_ms` is set on exit, whether or not the stage raised.
    """

    def __init__(self) -> None:
        self._started_at = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> Timer:
        self._started_at = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._started_at) * 1000.0
