"""
Folds raw transaction rows into an entity x period matrix.

The first time an entity is seen it gets a zero-valued cell for every period of
the axis, so an entity that only traded in March still reports explicit zeros
for the other months. Each row is then added into its cell, its entity total,
its period total and the grand total. Credits and returns arrive as negative
quantities and amounts and are summed in as they are.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .periods import period_key as _period_key_for_date
from .schemas import (EntityAggregate, Granularity, PeriodAggregate, PivotCell, PivotMatrix,
                      RawTransactionRow)

logger = logging.getLogger(__name__)

EntityKeyFn = Callable[[RawTransactionRow], Optional[str]]
PeriodKeyFn = Callable[[RawTransactionRow], Optional[str]]


def default_entity_key(row: RawTransactionRow) -> Optional[str]:
    return getattr(row, "entity_code", None)


def make_period_key(granularity: Granularity) -> PeriodKeyFn:
    def _period_key(row: RawTransactionRow) -> Optional[str]:
        date = getattr(row, "date", None)
        if date is None:
            return None
        return _period_key_for_date(date, granularity)
    return _period_key


class PivotBuilder:
    def __init__(self, periods: Sequence[str], granularity: Granularity,
                 entity_key: Optional[EntityKeyFn] = None,
                 period_key: Optional[PeriodKeyFn] = None,
                 skipped_row_count: int = 0):
        self.periods = list(periods)
        self.granularity = granularity
        self.entity_key = entity_key or default_entity_key
        self.period_key = period_key or make_period_key(granularity)
        self.skipped_row_count = skipped_row_count

        self._period_set = set(self.periods)
        self._entities: List[str] = []
        self._names: Dict[str, Optional[str]] = {}
        # [quantity, amount] accumulators
        self._cells: Dict[str, Dict[str, List[float]]] = {}
        self._entity_totals: Dict[str, List[float]] = {}
        self._period_totals: Dict[str, List[float]] = {p: [0.0, 0.0] for p in self.periods}
        self._grand = [0.0, 0.0]
        self._item_quantities: Dict[str, Dict[str, float]] = {}
        self._unpriced: set = set()

    def _register(self, entity: str) -> None:
        self._entities.append(entity)
        self._names[entity] = None
        self._cells[entity] = {p: [0.0, 0.0] for p in self.periods}
        self._entity_totals[entity] = [0.0, 0.0]
        self._item_quantities[entity] = {}

    def add(self, row: RawTransactionRow) -> bool:
        """Adds one row. Returns False when the row was skipped."""
        entity = self.entity_key(row)
        period = self.period_key(row)
        if not entity or not period:
            self.skipped_row_count += 1
            return False
        if period not in self._period_set:
            logger.debug(f"Row for {entity} in period {period} lies outside the report axis")
            self.skipped_row_count += 1
            return False

        if entity not in self._cells:
            self._register(entity)
        if self._names[entity] is None and getattr(row, "entity_name", None):
            self._names[entity] = row.entity_name

        quantity, amount = row.quantity, row.amount
        for acc in (self._cells[entity][period], self._entity_totals[entity],
                    self._period_totals[period], self._grand):
            acc[0] += quantity
            acc[1] += amount

        item_code = getattr(row, "item_code", None)
        if item_code:
            items = self._item_quantities[entity]
            items[item_code] = items.get(item_code, 0.0) + quantity
        else:
            self._unpriced.add(entity)
        return True

    def add_all(self, rows: Iterable[RawTransactionRow]) -> "PivotBuilder":
        for row in rows:
            self.add(row)
        return self

    def build(self) -> PivotMatrix:
        cells = {
            entity: {
                period: PivotCell(entity=entity, period=period, quantity=acc[0], amount=acc[1])
                for period, acc in row.items()
            }
            for entity, row in self._cells.items()
        }
        entity_totals = {
            entity: EntityAggregate(entity=entity, name=self._names[entity],
                                    total_quantity=acc[0], total_amount=acc[1])
            for entity, acc in self._entity_totals.items()
        }
        period_totals = {
            period: PeriodAggregate(period=period, total_quantity=acc[0], total_amount=acc[1])
            for period, acc in self._period_totals.items()
        }
        return PivotMatrix(
            granularity=self.granularity,
            periods=list(self.periods),
            entities=list(self._entities),
            cells=cells,
            entity_totals=entity_totals,
            period_totals=period_totals,
            grand_total=self._grand[1],
            grand_quantity=self._grand[0],
            skipped_row_count=self.skipped_row_count,
            item_quantities={e: dict(items) for e, items in self._item_quantities.items()},
            unpriced_entities=[e for e in self._entities if e in self._unpriced],
        )


def build_pivot(rows: Iterable[RawTransactionRow], periods: Sequence[str], granularity: Granularity,
                entity_key: Optional[EntityKeyFn] = None, period_key: Optional[PeriodKeyFn] = None,
                skipped_row_count: int = 0) -> PivotMatrix:
    """Builds a PivotMatrix from ``rows`` over the given period axis in one pass."""
    builder = PivotBuilder(periods, granularity, entity_key=entity_key, period_key=period_key,
                           skipped_row_count=skipped_row_count)
    return builder.add_all(rows).build()
