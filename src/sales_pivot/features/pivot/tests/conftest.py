import asyncio
import datetime

import pytest


class FakeTransactionStore:
    """In-memory transaction store that records every call made to it."""

    def __init__(self, rows=None, count=None, fail_offsets=(), short_offsets=(), delay=0.0):
        self.rows = list(rows or [])
        self._count = count
        self.fail_offsets = set(fail_offsets)
        self.short_offsets = set(short_offsets)
        self.delay = delay
        self.count_calls = 0
        self.fetch_calls = []
        self.predicates = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def count(self, predicate):
        self.count_calls += 1
        self.predicates.append(predicate)
        return len(self.rows) if self._count is None else self._count

    async def fetch_rows(self, predicate, offset, limit):
        self.fetch_calls.append((offset, limit))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if offset in self.fail_offsets:
                raise ConnectionError("transaction store unavailable")
            batch = self.rows[offset:offset + limit]
            if offset in self.short_offsets:
                batch = batch[:-1]
            return batch
        finally:
            self.in_flight -= 1


class BlockingTransactionStore(FakeTransactionStore):
    """Page queries never finish on their own; `started` is set once one is in flight."""

    def __init__(self, rows):
        super().__init__(rows)
        self.started = asyncio.Event()
        self.aborted = 0

    async def fetch_rows(self, predicate, offset, limit):
        self.fetch_calls.append((offset, limit))
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.aborted += 1
            raise


class FakeCostStore:
    def __init__(self, costs=None, fail_codes=()):
        self.costs = dict(costs or {})
        self.fail_codes = set(fail_codes)
        self.calls = []

    async def fetch_unit_costs(self, codes):
        self.calls.append(list(codes))
        if self.fail_codes.intersection(codes):
            raise RuntimeError("cost reference store timed out")
        return {code: self.costs[code] for code in codes if code in self.costs}


def _parse_date(value):
    if isinstance(value, str):
        return datetime.date.fromisoformat(value)
    return value


@pytest.fixture
def make_row():
    """Factory for loosely typed rows as the transaction store returns them."""

    def _factory(entity, date, amount, quantity=1.0, item_code=None, name=None, unit_price=None):
        return {
            "entity_code": entity,
            "entity_name": name,
            "item_code": item_code,
            "date": _parse_date(date),
            "quantity": quantity,
            "amount": amount,
            "unit_price": unit_price,
        }

    return _factory


@pytest.fixture
def scenario_rows(make_row):
    """Two customers over January and February 2024, one with a credit in February."""
    return [
        make_row("C1", "2024-01-15", 100.0, quantity=10, item_code="I1", name="Contoso"),
        make_row("C1", "2024-02-03", -20.0, quantity=-2, item_code="I1", name="Contoso"),
        make_row("C2", "2024-01-20", 50.0, quantity=5, item_code="I2", name="Adatum"),
    ]


@pytest.fixture
def transaction_store_factory():
    return FakeTransactionStore


@pytest.fixture
def blocking_store_factory():
    return BlockingTransactionStore


@pytest.fixture
def cost_store_factory():
    return FakeCostStore
