"""Content-addressed cache of finished pivot reports.

Lives outside the pipeline: callers look a query up before running the
pipeline and store the report afterwards. Entries are keyed by a hash of the
normalised query parameters and expire after ``max_age_seconds``."""

import hashlib
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from ...core.config import REPORT_CACHE_MAX_AGE_SECONDS, REPORT_CACHE_MAX_ENTRIES
from .schemas import PivotQuery, PivotReport


def make_cache_key(query: PivotQuery) -> str:
    return hashlib.sha256(query.model_dump_json().encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    report: PivotReport
    timestamp: float


class ReportCache:
    def __init__(self, max_age_seconds: float = REPORT_CACHE_MAX_AGE_SECONDS,
                 max_entries: int = REPORT_CACHE_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_age_seconds = max_age_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.timestamp > self.max_age_seconds:
            del self._entries[key]
            return None
        return entry

    def get(self, query: PivotQuery) -> Optional[PivotReport]:
        entry = self.get_entry(make_cache_key(query))
        return entry.report if entry else None

    def put(self, query: PivotQuery, report: PivotReport) -> CacheEntry:
        key = make_cache_key(query)
        entry = CacheEntry(report=report, timestamp=self.clock())
        self._entries.pop(key, None)
        self._entries[key] = entry
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return entry

    def invalidate(self) -> None:
        self._entries.clear()
