import datetime
import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError

from ..transactions.service import TortoiseCostStore, TortoiseTransactionStore
from .cache import ReportCache
from .schemas import (Dimension, Granularity, PeriodAxisResponse, PivotQuery, PivotReport,
                      SortDirection, SortKey)
from .stores import CostStore, TransactionStore
from . import service as pivot_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
    responses={404: {"description": "Not found"}},
)


def get_transaction_store() -> TransactionStore:
    return TortoiseTransactionStore()


def get_cost_store() -> CostStore:
    return TortoiseCostStore()


def get_report_cache(request: Request) -> ReportCache:
    return request.app.state.report_cache


def get_pivot_query(
    from_date: datetime.date = Query(..., description="Start date for the report period (YYYY-MM-DD)"),
    to_date: datetime.date = Query(..., description="End date for the report period (YYYY-MM-DD)"),
    dimension: Dimension = Query("customer", description="Entity the rows are grouped by"),
    granularity: Granularity = Query("month"),
    entity_codes: Optional[List[str]] = Query(None, description="Restrict the report to these entities"),
    salesperson_code: Optional[str] = Query(None),
    customer_code: Optional[str] = Query(None),
    item_code: Optional[str] = Query(None),
    posting_group: Optional[str] = Query(None),
    channel_code: Optional[str] = Query(None),
    document_type: Optional[str] = Query(None, description="invoice or credit_memo"),
    sort_by: SortKey = Query("total_amount"),
    sort_period: Optional[str] = Query(None, description="Period key used when sort_by=period"),
    sort_direction: SortDirection = Query("desc"),
    include_zero: bool = Query(False, description="Keep entities whose totals are exactly zero"),
    include_costs: bool = Query(True),
    limit: Optional[int] = Query(None, ge=1, le=10000, description="Keep only the top N entities"),
) -> PivotQuery:
    filters = {
        "salesperson_code": salesperson_code, "customer_code": customer_code,
        "item_code": item_code, "posting_group": posting_group,
        "channel_code": channel_code, "document_type": document_type,
    }
    try:
        return PivotQuery(
            dimension=dimension, from_date=from_date, to_date=to_date, granularity=granularity,
            entity_codes=entity_codes,
            filters={k: v for k, v in filters.items() if v},
            sort_by=sort_by, sort_period=sort_period, sort_direction=sort_direction,
            include_zero=include_zero, include_costs=include_costs, limit=limit,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[{"loc": err["loc"], "msg": err["msg"], "type": err["type"]} for err in e.errors()],
        )


@router.get("/pivot", response_model=PivotReport)
async def get_pivot_report(
    query: Annotated[PivotQuery, Depends(get_pivot_query)],
    transactions: Annotated[TransactionStore, Depends(get_transaction_store)],
    costs: Annotated[CostStore, Depends(get_cost_store)],
    cache: Annotated[ReportCache, Depends(get_report_cache)],
    refresh: bool = Query(False, description="Ignore a cached report and recompute"),
):
    if not refresh:
        cached = cache.get(query)
        if cached is not None:
            logger.debug("Serving pivot report from cache")
            return cached
    try:
        report = await pivot_service.generate_pivot_report(query, transactions, costs)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    cache.put(query, report)
    return report


@router.get("/pivot/periods", response_model=PeriodAxisResponse)
async def get_pivot_periods(
    from_date: datetime.date = Query(...),
    to_date: datetime.date = Query(...),
    granularity: Granularity = Query("month"),
):
    return pivot_service.get_period_axis(from_date, to_date, granularity)
