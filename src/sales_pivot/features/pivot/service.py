"""
Pivot Report Service Module

Runs the sales pivot pipeline for one report request:

    fetch rows in pages -> fold into entity x period matrix -> join unit costs
    -> sort / filter entities -> assemble the report

Every call recomputes the report from scratch and keeps no state between
calls, so identical queries produce identical reports.
"""

import asyncio
import datetime
import logging
from typing import Optional

from ...core.config import COST_LOOKUP_CHUNK_SIZE, FETCH_CONCURRENCY, FETCH_PAGE_SIZE
from .assembler import assemble_report
from .builder import build_pivot
from .costs import CostJoiner
from .fetcher import BatchFetcher, FetchResult
from .periods import expand_periods, period_label
from .schemas import Granularity, PeriodAxisResponse, PivotMatrix, PivotQuery, PivotReport
from .sorting import select_entities
from .stores import CostStore, TransactionStore

logger = logging.getLogger(__name__)


def get_period_axis(from_date: datetime.date, to_date: datetime.date,
                    granularity: Granularity) -> PeriodAxisResponse:
    periods = expand_periods(from_date, to_date, granularity)
    return PeriodAxisResponse(
        granularity=granularity, from_date=from_date, to_date=to_date,
        periods=periods, labels=[period_label(p) for p in periods],
    )


async def generate_pivot_report(
    query: PivotQuery,
    transactions: TransactionStore,
    costs: Optional[CostStore] = None,
    *,
    cancel_event: Optional[asyncio.Event] = None,
    page_size: int = FETCH_PAGE_SIZE,
    concurrency: int = FETCH_CONCURRENCY,
    cost_chunk_size: int = COST_LOOKUP_CHUNK_SIZE,
) -> PivotReport:
    """
    Generates a sales pivot report for ``query``.

    Args:
        query: Dimension, date range, granularity, filters and view options
        transactions: Store the raw transaction rows are read from
        costs: Unit-cost reference store; margins are left null when omitted
        cancel_event: Setting this event aborts the report, including in-flight requests
        page_size: Rows per page query
        concurrency: Maximum number of page or cost queries in flight at once
        cost_chunk_size: Codes per unit-cost lookup

    Returns:
        PivotReport: the full matrix plus the sorted, filtered rows and totals.
        An empty date range or a range without transactions gives a valid,
        empty report.

    Raises:
        FetchError: any count or page query failed; no partial report is produced
        ReportCancelledError: ``cancel_event`` was set before the report finished
        ValueError: ``query.sort_period`` is not a period of the requested range
    """
    periods = expand_periods(query.from_date, query.to_date, query.granularity)
    if query.sort_by == "period" and query.sort_period not in periods:
        raise ValueError(f"sort_period {query.sort_period!r} is outside the report range")

    if not periods:
        logger.info(f"Empty period range {query.from_date} - {query.to_date}; nothing to fetch")
        fetched = FetchResult()
        matrix = PivotMatrix(granularity=query.granularity, periods=[])
    else:
        fetcher = BatchFetcher(transactions, page_size=page_size, concurrency=concurrency)
        fetched = await fetcher.fetch_all(query.to_predicate(), cancel_event=cancel_event)
        matrix = build_pivot(fetched.rows, periods, query.granularity,
                             skipped_row_count=fetched.skipped_row_count)
        if query.include_costs and costs is not None and matrix.entities:
            joiner = CostJoiner(costs, chunk_size=cost_chunk_size, concurrency=concurrency)
            matrix = await joiner.join(matrix, query.cost_basis, cancel_event=cancel_event)

    view = select_entities(
        matrix, sort_by=query.sort_by, direction=query.sort_direction,
        sort_period=query.sort_period, include_zero=query.include_zero, limit=query.limit,
    )
    report = assemble_report(query, matrix, view, fetched_row_count=fetched.total_count)
    logger.info(
        f"Pivot report by {query.dimension} {query.from_date} - {query.to_date}: "
        f"{fetched.total_count} rows, {report.entity_count} entities "
        f"({report.hidden_zero_entity_count} hidden), {len(periods)} periods, "
        f"{report.skipped_row_count} skipped"
    )
    return report
