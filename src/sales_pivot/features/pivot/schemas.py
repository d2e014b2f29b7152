"""Pivot Report Schemas

Pydantic models for the sales pivot pipeline:

1. Query parameters (PivotQuery) and the predicate handed to the transaction store
2. The validated raw transaction row read at the fetch boundary
3. The pivot matrix with its cells and per-entity / per-period aggregates
4. The assembled report returned to presentation layers"""
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Dict, List, Literal, Optional
import datetime
import re

Dimension = Literal["customer", "salesperson", "category", "item"]
Granularity = Literal["month", "week"]
SortKey = Literal["name", "total_amount", "total_quantity", "period"]
SortDirection = Literal["asc", "desc"]
CostBasis = Literal["entity", "item"]
FilterColumn = Literal["salesperson_code", "customer_code", "item_code", "posting_group",
                       "channel_code", "document_type"]

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
WEEK_KEY_PATTERN = re.compile(r"^\d{4}-W(0[1-9]|[1-4]\d|5[0-3])$")


# Query side
class FetchPredicate(BaseModel):
    """Entity scope, date range and extra column filters sent to the transaction store."""
    model_config = ConfigDict(frozen=True)

    dimension: Dimension
    from_date: datetime.date
    to_date: datetime.date
    entity_codes: Optional[List[str]] = None
    filters: Dict[FilterColumn, str] = Field(default_factory=dict)


class PivotQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    dimension: Dimension = "customer"
    from_date: datetime.date
    to_date: datetime.date
    granularity: Granularity = "month"
    entity_codes: Optional[List[str]] = Field(None, description="Restrict the report to these entities")
    filters: Dict[FilterColumn, str] = Field(default_factory=dict, description="Extra equality filters on transaction columns")
    sort_by: SortKey = "total_amount"
    sort_period: Optional[str] = Field(None, description="Period key used when sort_by is 'period'")
    sort_direction: SortDirection = "desc"
    include_zero: bool = False
    include_costs: bool = True
    limit: Optional[int] = Field(None, ge=1, description="Keep only the first N entities after sorting")

    @field_validator("entity_codes")
    @classmethod
    def _normalise_entity_codes(cls, value):
        if value is None:
            return None
        codes = sorted({code.strip() for code in value if code and code.strip()})
        return codes or None

    @field_validator("filters")
    @classmethod
    def _normalise_filters(cls, value):
        return {key: value[key] for key in sorted(value)}

    @model_validator(mode="after")
    def _check_sort_period(self):
        if self.sort_by == "period":
            if not self.sort_period:
                raise ValueError("sort_period is required when sort_by is 'period'")
            pattern = MONTH_KEY_PATTERN if self.granularity == "month" else WEEK_KEY_PATTERN
            if not pattern.match(self.sort_period):
                raise ValueError(f"sort_period {self.sort_period!r} is not a valid {self.granularity} key")
        return self

    @property
    def cost_basis(self) -> CostBasis:
        # Item reports look costs up by their own key; every other dimension sums item costs.
        return "entity" if self.dimension == "item" else "item"

    def to_predicate(self) -> FetchPredicate:
        return FetchPredicate(
            dimension=self.dimension, from_date=self.from_date, to_date=self.to_date,
            entity_codes=self.entity_codes, filters=dict(self.filters),
        )


# Row read from the transaction store
class RawTransactionRow(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    entity_code: str = Field(..., min_length=1)
    entity_name: Optional[str] = None
    item_code: Optional[str] = None
    date: datetime.date
    quantity: float
    amount: float
    unit_price: Optional[float] = None

    @field_validator("entity_code", mode="before")
    @classmethod
    def _strip_entity_code(cls, value):
        return value.strip() if isinstance(value, str) else value


# Matrix
class PivotCell(BaseModel):
    entity: str
    period: str
    quantity: float = 0.0
    amount: float = 0.0


class EntityAggregate(BaseModel):
    entity: str
    name: Optional[str] = None
    total_quantity: float = 0.0
    total_amount: float = 0.0
    unit_cost: Optional[float] = None
    total_cost: Optional[float] = None
    margin: Optional[float] = None
    margin_percent: Optional[float] = None

    @property
    def is_zero(self) -> bool:
        return self.total_amount == 0


class PeriodAggregate(BaseModel):
    period: str
    total_quantity: float = 0.0
    total_amount: float = 0.0


class PivotMatrix(BaseModel):
    granularity: Granularity
    periods: List[str]
    entities: List[str] = Field(default_factory=list, description="Entity keys in first-seen order")
    cells: Dict[str, Dict[str, PivotCell]] = Field(default_factory=dict)
    entity_totals: Dict[str, EntityAggregate] = Field(default_factory=dict)
    period_totals: Dict[str, PeriodAggregate] = Field(default_factory=dict)
    grand_total: float = 0.0
    grand_quantity: float = 0.0
    skipped_row_count: int = 0
    # entity -> item code -> quantity, used to price entities by their items
    item_quantities: Dict[str, Dict[str, float]] = Field(default_factory=dict, exclude=True)
    # entities with at least one row that carried no item code
    unpriced_entities: List[str] = Field(default_factory=list, exclude=True)

    def cell(self, entity: str, period: str) -> PivotCell:
        return self.cells[entity][period]


class EntityView(BaseModel):
    """Ordered, optionally filtered entity keys plus the number hidden as all-zero."""
    entities: List[str]
    hidden_zero_entity_count: int = 0
    total_entity_count: int = 0


# Assembled report
class PeriodColumn(BaseModel):
    period: str
    label: str
    total_quantity: float
    total_amount: float


class PivotReportRow(BaseModel):
    entity: str
    name: Optional[str] = None
    cells: List[PivotCell]
    total_quantity: float
    total_amount: float
    unit_cost: Optional[float] = None
    total_cost: Optional[float] = None
    margin: Optional[float] = None
    margin_percent: Optional[float] = None


class PivotReport(BaseModel):
    query: PivotQuery
    periods: List[PeriodColumn]
    rows: List[PivotReportRow]
    matrix: PivotMatrix
    entity_count: int
    hidden_zero_entity_count: int
    fetched_row_count: int = 0
    skipped_row_count: int = 0
    grand_total: float
    grand_quantity: float
    grand_margin: Optional[float] = None
    grand_margin_percent: Optional[float] = None


class PeriodAxisResponse(BaseModel):
    granularity: Granularity
    from_date: datetime.date
    to_date: datetime.date
    periods: List[str]
    labels: List[str]
