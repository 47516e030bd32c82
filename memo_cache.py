"""Optional memoization on top of a Flask-Caching backend."""
from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from flask_caching import Cache


LOGGER = logging.getLogger(__name__)

T = TypeVar('T')


class MemoCache:
    """Get-or-compute wrapper; a broken or missing backend only costs speed."""

    def __init__(self, cache: Optional[Cache], timeout: int = 60) -> None:
        self.cache = cache
        self.timeout = timeout

    def get_or_compute(self, key: str, producer: Callable[[], T], timeout: Optional[int] = None) -> T:
        if self.cache is None:
            return producer()
        try:
            value = self.cache.get(key)
        except Exception:
            LOGGER.debug('Cache lookup failed for %s', key, exc_info=True)
            return producer()
        if value is not None:
            return value
        value = producer()
        try:
            self.cache.set(key, value, timeout=self.timeout if timeout is None else timeout)
        except Exception:
            LOGGER.debug('Cache store failed for %s', key, exc_info=True)
        return value

    def invalidate(self, key: str) -> None:
        if self.cache is None:
            return
        try:
            self.cache.delete(key)
        except Exception:
            LOGGER.debug('Cache delete failed for %s', key, exc_info=True)
