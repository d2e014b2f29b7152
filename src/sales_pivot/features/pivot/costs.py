"""
Joins unit-cost reference data onto a pivot matrix.

Margins are computed on each entity's aggregate totals, not averaged over
transactions: ``margin = total_amount - total_cost``, where total_cost is
``unit_cost * total_quantity`` for item reports and the sum of each item's
unit cost times its quantity for customer, salesperson and category reports.
An entity without sales (total_amount <= 0) or with any unpriced item keeps
null margin fields; it is never reported as a 0% margin.
"""

import asyncio
import logging
import math
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ...core.config import COST_LOOKUP_CHUNK_SIZE, FETCH_CONCURRENCY
from .errors import CostLookupError, PivotError
from .fetcher import await_unless_cancelled, raise_if_cancelled
from .schemas import CostBasis, PivotMatrix
from .stores import CostStore

logger = logging.getLogger(__name__)


def compute_margin(total_amount: float, total_cost: Optional[float]) -> Tuple[Optional[float], Optional[float]]:
    """Returns (margin, margin_percent); both are None without cost data or without sales."""
    if total_cost is None or total_amount <= 0:
        return None, None
    margin = total_amount - total_cost
    return margin, 100.0 * margin / total_amount


def cost_keys(matrix: PivotMatrix, basis: CostBasis) -> List[str]:
    """Codes whose unit cost is needed to price ``matrix``."""
    if basis == "entity":
        return sorted(matrix.entities)
    codes = set()
    for items in matrix.item_quantities.values():
        codes.update(items)
    return sorted(codes)


def _valid_cost(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        cost = float(value)
    except (TypeError, ValueError):
        return None
    return cost if math.isfinite(cost) else None


async def fetch_unit_costs(store: CostStore, codes: Sequence[str], chunk_size: int = COST_LOOKUP_CHUNK_SIZE,
                           concurrency: int = FETCH_CONCURRENCY,
                           cancel_event: Optional[asyncio.Event] = None) -> Tuple[Dict[str, float], Set[str]]:
    """
    Looks up unit costs in chunks of ``chunk_size`` codes.

    A failing chunk is logged and its codes reported back as failed; the other
    chunks are unaffected. Cancellation is the only error that propagates.

    Returns:
        Tuple of (code -> unit cost, codes whose lookup failed)
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    chunks = [list(codes[i:i + chunk_size]) for i in range(0, len(codes), chunk_size)]
    costs: Dict[str, float] = {}
    failed: Set[str] = set()
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _lookup(chunk: List[str]) -> None:
        async with semaphore:
            raise_if_cancelled(cancel_event)
            try:
                try:
                    found = await await_unless_cancelled(store.fetch_unit_costs(chunk), cancel_event)
                except PivotError:
                    raise
                except Exception as e:
                    raise CostLookupError(f"Unit cost lookup failed: {e}", codes=chunk) from e
            except CostLookupError as e:
                logger.warning(f"{e} ({len(e.codes)} codes will have no margin)")
                failed.update(e.codes)
                return
            wanted = set(chunk)
            for code, value in (found or {}).items():
                cost = _valid_cost(value)
                if code in wanted and cost is not None:
                    costs[code] = cost

    try:
        async with asyncio.TaskGroup() as tg:
            for chunk in chunks:
                tg.create_task(_lookup(chunk))
    except ExceptionGroup as eg:
        for exc in eg.exceptions:
            if isinstance(exc, PivotError):
                raise exc
        raise
    return costs, failed


def apply_costs(matrix: PivotMatrix, costs: Dict[str, float], basis: CostBasis) -> PivotMatrix:
    """Returns a copy of ``matrix`` whose entity aggregates carry cost and margin fields."""
    unpriced = set(matrix.unpriced_entities)
    entity_totals = {}
    for entity, agg in matrix.entity_totals.items():
        unit_cost: Optional[float] = None
        total_cost: Optional[float] = None
        if basis == "entity":
            unit_cost = costs.get(entity)
            if unit_cost is not None:
                total_cost = unit_cost * agg.total_quantity
        elif entity not in unpriced:
            items = matrix.item_quantities.get(entity, {})
            if items and all(code in costs for code in items):
                total_cost = sum(costs[code] * qty for code, qty in items.items())
                if agg.total_quantity:
                    unit_cost = total_cost / agg.total_quantity
        margin, margin_percent = compute_margin(agg.total_amount, total_cost)
        entity_totals[entity] = agg.model_copy(update={
            "unit_cost": unit_cost, "total_cost": total_cost,
            "margin": margin, "margin_percent": margin_percent,
        })
    return matrix.model_copy(update={"entity_totals": entity_totals})


def grand_margin(matrix: PivotMatrix) -> Tuple[Optional[float], Optional[float]]:
    """Sum of the entity margins that could be computed, and its percent of those entities' sales."""
    priced = [agg for agg in matrix.entity_totals.values() if agg.margin is not None]
    if not priced:
        return None, None
    margin = sum(agg.margin for agg in priced)
    covered_amount = sum(agg.total_amount for agg in priced)
    if covered_amount <= 0:
        return margin, None
    return margin, 100.0 * margin / covered_amount


class CostJoiner:
    def __init__(self, store: CostStore, chunk_size: int = COST_LOOKUP_CHUNK_SIZE,
                 concurrency: int = FETCH_CONCURRENCY):
        self.store = store
        self.chunk_size = chunk_size
        self.concurrency = concurrency

    async def join(self, matrix: PivotMatrix, basis: CostBasis,
                   cancel_event: Optional[asyncio.Event] = None) -> PivotMatrix:
        codes = cost_keys(matrix, basis)
        if not codes:
            return matrix
        costs, failed = await fetch_unit_costs(self.store, codes, self.chunk_size, self.concurrency, cancel_event)
        missing = len(codes) - len(costs) - len(failed)
        if missing:
            logger.info(f"No unit cost on record for {missing} of {len(codes)} codes")
        return apply_costs(matrix, costs, basis)
