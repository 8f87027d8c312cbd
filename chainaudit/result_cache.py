#!/usr/bin/env python3
"""
Result Cache for the cached-results fallback tier.

Per-contract analysis results keyed by a deterministic fingerprint of
(platform, filename, source text).  Entries are immutable once written:
``put`` swaps in a new entry object, readers always receive a copy, and
expired entries are dropped lazily on lookup (or eagerly with
``purge_expired``).
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from chainaudit.schemas import AnalysisResult, ContractInput

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600.0


def fingerprint(platform: str, filename: str, code: str) -> str:
    """Deterministic cache key for one contract.

    The three parts are JSON-encoded before hashing so that moving text
    between fields always yields a different key.
    """
    payload = json.dumps([platform, filename, code], ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def contract_fingerprint(contract: ContractInput) -> str:
    return fingerprint(contract.platform, contract.filename, contract.code)


@dataclass(frozen=True)
class CacheEntry:
    result: AnalysisResult
    stored_at: float


class ResultCache:
    """Thread-safe in-memory TTL cache of per-contract analysis results.

    Attributes:
        ttl_seconds: Seconds before an entry expires.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at >= self.ttl_seconds

    def get(self, key: str) -> Optional[AnalysisResult]:
        """Return a copy of the cached result, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                logger.debug("Cache entry expired for %s", key[:12])
                del self._entries[key]
                return None
            return entry.result.model_copy(deep=True)

    def get_for(self, contract: ContractInput) -> Optional[AnalysisResult]:
        return self.get(contract_fingerprint(contract))

    def put(self, key: str, result: AnalysisResult) -> None:
        entry = CacheEntry(result=result.model_copy(deep=True), stored_at=self._clock())
        with self._lock:
            self._entries[key] = entry

    def put_for(self, contract: ContractInput, result: AnalysisResult) -> None:
        self.put(contract_fingerprint(contract), result)

    def put_if_absent(self, key: str, result: AnalysisResult) -> bool:
        """Store *result* unless a live entry exists; True when stored."""
        entry = CacheEntry(result=result.model_copy(deep=True), stored_at=self._clock())
        with self._lock:
            current = self._entries.get(key)
            if current is not None and not self._is_expired(current, entry.stored_at):
                return False
            self._entries[key] = entry
            return True

    def purge_expired(self) -> int:
        """Remove all expired entries; returns how many were dropped."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = [
    "CacheEntry",
    "DEFAULT_TTL_SECONDS",
    "ResultCache",
    "contract_fingerprint",
    "fingerprint",
]
