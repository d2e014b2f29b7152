import datetime

import pytest

from ..builder import build_pivot
from ..assembler import assemble_report
from ..cache import ReportCache, make_cache_key
from ..schemas import EntityView, PivotQuery


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _query(**overrides):
    params = {"from_date": datetime.date(2024, 1, 1), "to_date": datetime.date(2024, 2, 29)}
    params.update(overrides)
    return PivotQuery(**params)


def _report(query):
    matrix = build_pivot([], ["2024-01", "2024-02"], "month")
    return assemble_report(query, matrix, EntityView(entities=[]))


def test_equivalent_queries_share_a_key():
    first = _query(entity_codes=["B", "A"], filters={"salesperson_code": "S1", "channel_code": "WEB"})
    second = _query(entity_codes=["A", "B", "A"], filters={"channel_code": "WEB", "salesperson_code": "S1"})
    assert make_cache_key(first) == make_cache_key(second)
    assert make_cache_key(first) != make_cache_key(_query(granularity="week"))


def test_hit_within_max_age():
    clock = FakeClock()
    cache = ReportCache(max_age_seconds=60, clock=clock)
    query = _query()
    report = _report(query)
    cache.put(query, report)
    clock.now += 59
    assert cache.get(query) == report


def test_stale_entry_is_evicted():
    clock = FakeClock()
    cache = ReportCache(max_age_seconds=60, clock=clock)
    query = _query()
    cache.put(query, _report(query))
    clock.now += 61
    assert cache.get(query) is None
    assert len(cache) == 0


def test_oldest_entry_dropped_over_capacity():
    cache = ReportCache(max_entries=2, clock=FakeClock())
    queries = [_query(limit=n) for n in (1, 2, 3)]
    for query in queries:
        cache.put(query, _report(query))
    assert len(cache) == 2
    assert cache.get(queries[0]) is None
    assert cache.get(queries[2]) is not None


def test_invalidate_clears_everything():
    cache = ReportCache()
    query = _query()
    cache.put(query, _report(query))
    cache.invalidate()
    assert cache.get(query) is None


def test_rejects_empty_capacity():
    with pytest.raises(ValueError):
        ReportCache(max_entries=0)
