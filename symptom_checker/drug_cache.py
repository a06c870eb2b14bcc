"""
Drug Cache Module
=================
Memoizes condition -> drug list lookups so the same condition is not sent
to OpenFDA twice within a process lifetime.

Keys are normalized (trimmed, lower-cased). An empty list is a valid
cached value: a condition known to have no OpenFDA results is not
re-queried. The cache is bounded by an LRU limit and, optionally, a TTL.
Both can be disabled by passing ``None``.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from dotenv import load_dotenv

from symptom_checker.models import DrugRecord

load_dotenv()
logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 512


def normalize_condition(condition: str) -> str:
    return (condition or "").strip().lower()


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r.", name, raw)
        return default
    return value if value > 0 else None


class DrugCache:
    """Thread-safe condition -> drug list cache.

    Attributes:
        max_entries: LRU bound, or None for unbounded.
        ttl_seconds: Entry lifetime in seconds, or None for no expiry.
    """

    def __init__(
        self,
        max_entries: Optional[int] = DEFAULT_MAX_ENTRIES,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, list[DrugRecord]]] = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "DrugCache":
        """Build a cache sized by DRUG_CACHE_MAX_ENTRIES / DRUG_CACHE_TTL_SECONDS."""
        return cls(
            max_entries=_env_int("DRUG_CACHE_MAX_ENTRIES", DEFAULT_MAX_ENTRIES),
            ttl_seconds=_env_int("DRUG_CACHE_TTL_SECONDS", None),
        )

    def get(self, condition: str) -> Optional[list[DrugRecord]]:
        """Return the cached drugs for a condition, or None on a miss."""
        key = normalize_condition(condition)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            stored_at, drugs = entry
            if self.ttl_seconds is not None and self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                logger.info("Drug cache entry expired: '%s'", key)
                return None

            self._entries.move_to_end(key)
            return list(drugs)

    def put(self, condition: str, drugs: list[DrugRecord]) -> None:
        key = normalize_condition(condition)
        with self._lock:
            self._entries[key] = (self._clock(), list(drugs))
            self._entries.move_to_end(key)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.info("Drug cache evicted: '%s'", evicted)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, condition: str) -> bool:
        return self.get(condition) is not None
