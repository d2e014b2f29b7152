"""Interfaces of the data stores the pivot pipeline reads from.

The transaction store and the cost-reference store are external collaborators;
the Tortoise-backed implementations live in the transactions feature."""

from typing import Any, Dict, Mapping, Protocol, Sequence, Union

from .schemas import FetchPredicate, RawTransactionRow

RawRow = Union[Mapping[str, Any], RawTransactionRow]


class TransactionStore(Protocol):
    async def count(self, predicate: FetchPredicate) -> int:
        ...

    async def fetch_rows(self, predicate: FetchPredicate, offset: int, limit: int) -> Sequence[RawRow]:
        """Rows ``offset`` to ``offset + limit - 1`` of the stably ordered result set."""
        ...


class CostStore(Protocol):
    async def fetch_unit_costs(self, codes: Sequence[str]) -> Dict[str, float]:
        """Unit cost per code; codes without a cost are simply absent from the result."""
        ...
