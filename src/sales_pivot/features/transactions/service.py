"""
Transactions Service Module

Tortoise ORM implementations of the transaction and unit-cost stores read by
the pivot pipeline, and the bulk loaders used by the command line to import
transactions and costs.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tortoise.expressions import Q
from tortoise.transactions import in_transaction

from ..pivot.schemas import Dimension, FetchPredicate
from .models import SalesTransaction, UnitCost
from .schemas import SalesTransactionCreateSchema, UnitCostCreateSchema

logger = logging.getLogger(__name__)

# report dimension -> (key column, display name column)
DIMENSION_COLUMNS: Dict[Dimension, Tuple[str, Optional[str]]] = {
    "customer": ("customer_code", "customer_name"),
    "salesperson": ("salesperson_code", None),
    "category": ("posting_group", None),
    "item": ("item_code", "item_description"),
}


def build_transaction_filter(predicate: FetchPredicate) -> Q:
    """Translates a fetch predicate into a Tortoise filter on SalesTransaction."""
    key_column, _ = DIMENSION_COLUMNS[predicate.dimension]
    query_filter = Q(posting_date__gte=predicate.from_date) & Q(posting_date__lte=predicate.to_date)
    if predicate.entity_codes:
        query_filter &= Q(**{f"{key_column}__in": list(predicate.entity_codes)})
    for column, value in predicate.filters.items():
        query_filter &= Q(**{column: value})
    return query_filter


def _to_raw_row(record: Dict[str, Any], dimension: Dimension) -> Dict[str, Any]:
    key_column, name_column = DIMENSION_COLUMNS[dimension]
    name = record.get(name_column) if name_column else None
    if dimension == "customer":
        # search name is the customer's display name; the legal name is the fallback
        name = record.get("search_name") or name
    return {
        "entity_code": record.get(key_column),
        "entity_name": name,
        "item_code": record.get("item_code"),
        "date": record.get("posting_date"),
        "quantity": record.get("quantity"),
        "amount": record.get("amount"),
        "unit_price": record.get("unit_price"),
    }


class TortoiseTransactionStore:
    """Reads the ``sales_transactions`` table, one report dimension at a time."""

    async def count(self, predicate: FetchPredicate) -> int:
        return await SalesTransaction.filter(build_transaction_filter(predicate)).count()

    async def fetch_rows(self, predicate: FetchPredicate, offset: int, limit: int) -> List[Dict[str, Any]]:
        key_column, name_column = DIMENSION_COLUMNS[predicate.dimension]
        columns = ["posting_date", "item_code", "quantity", "amount", "unit_price", key_column]
        if name_column:
            columns.append(name_column)
        if predicate.dimension == "customer":
            columns.append("search_name")
        records = await (
            SalesTransaction.filter(build_transaction_filter(predicate))
            .order_by("id")  # stable order so offset pages neither overlap nor skip rows
            .offset(offset)
            .limit(limit)
            .values(*dict.fromkeys(columns))
        )
        return [_to_raw_row(record, predicate.dimension) for record in records]


class TortoiseCostStore:
    """Looks unit costs up in the ``unit_costs`` table by item code."""

    async def fetch_unit_costs(self, codes: Sequence[str]) -> Dict[str, float]:
        if not codes:
            return {}
        records = await UnitCost.filter(item_code__in=list(codes)).values("item_code", "unit_cost")
        return {record["item_code"]: record["unit_cost"] for record in records}


async def load_transactions(transactions: Sequence[SalesTransactionCreateSchema]) -> int:
    """Inserts transactions in one database transaction. Returns the number inserted."""
    if not transactions:
        return 0
    async with in_transaction() as conn:
        await SalesTransaction.bulk_create(
            [SalesTransaction(**t.model_dump()) for t in transactions], using_db=conn
        )
    logger.info(f"Loaded {len(transactions)} sales transactions")
    return len(transactions)


async def load_unit_costs(unit_costs: Sequence[UnitCostCreateSchema]) -> Tuple[int, int]:
    """Creates or updates unit costs by item code. Returns (created, updated)."""
    created = updated = 0
    async with in_transaction() as conn:
        for cost in unit_costs:
            _, was_created = await UnitCost.update_or_create(
                item_code=cost.item_code,
                defaults=cost.model_dump(exclude={"item_code"}),
                using_db=conn,
            )
            if was_created:
                created += 1
            else:
                updated += 1
    logger.info(f"Unit costs loaded: {created} created, {updated} updated")
    return created, updated
