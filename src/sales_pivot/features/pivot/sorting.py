"""Ordering and zero-filtering of the entities of a pivot matrix."""

import locale
import unicodedata
from typing import Callable, List, Optional, Sequence

from .schemas import EntityView, PivotMatrix, SortDirection, SortKey


def name_sort_key(name: str) -> str:
    """Collation key for display names: accent and case insensitive, then the active locale's order."""
    decomposed = unicodedata.normalize("NFKD", name)
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()
    return locale.strxfrm(folded)


def display_name(matrix: PivotMatrix, entity: str) -> str:
    return matrix.entity_totals[entity].name or entity


def _sort_value(matrix: PivotMatrix, sort_by: SortKey, sort_period: Optional[str]) -> Callable[[str], object]:
    if sort_by == "name":
        return lambda entity: name_sort_key(display_name(matrix, entity))
    if sort_by == "total_amount":
        return lambda entity: matrix.entity_totals[entity].total_amount
    if sort_by == "total_quantity":
        return lambda entity: matrix.entity_totals[entity].total_quantity
    if sort_by == "period":
        if sort_period not in matrix.periods:
            raise ValueError(f"Period {sort_period!r} is not part of the report")
        return lambda entity: matrix.cells[entity][sort_period].amount
    raise ValueError(f"Unsupported sort key: {sort_by}")


def sort_entities(matrix: PivotMatrix, sort_by: SortKey = "total_amount", direction: SortDirection = "desc",
                  sort_period: Optional[str] = None, entities: Optional[Sequence[str]] = None) -> List[str]:
    """
    Orders entity keys by name, total amount, total quantity or one period's amount.

    Ties on the sort value are always broken by entity key ascending, whatever
    the direction, so repeated calls return the same order.
    """
    key = _sort_value(matrix, sort_by, sort_period)
    ordered = sorted(matrix.entities if entities is None else entities)
    # list.sort is stable with reverse=True as well, so ties keep the key order above
    ordered.sort(key=key, reverse=direction == "desc")
    return ordered


def filter_entities(matrix: PivotMatrix, entities: Sequence[str], include_zero: bool = False) -> EntityView:
    """Drops entities whose total amount is exactly zero unless ``include_zero`` is set."""
    if include_zero:
        kept = list(entities)
    else:
        kept = [e for e in entities if not matrix.entity_totals[e].is_zero]
    return EntityView(
        entities=kept,
        hidden_zero_entity_count=len(entities) - len(kept),
        total_entity_count=len(entities),
    )


def select_entities(matrix: PivotMatrix, sort_by: SortKey = "total_amount", direction: SortDirection = "desc",
                    sort_period: Optional[str] = None, include_zero: bool = False,
                    limit: Optional[int] = None) -> EntityView:
    """Sorts, filters and optionally truncates to the top ``limit`` entities."""
    ordered = sort_entities(matrix, sort_by, direction, sort_period)
    view = filter_entities(matrix, ordered, include_zero)
    if limit is not None:
        view = view.model_copy(update={"entities": view.entities[:limit]})
    return view
