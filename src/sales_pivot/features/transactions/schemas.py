from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional
import datetime


class SalesTransactionCreateSchema(BaseModel):
    posting_date: datetime.date
    document_type: Literal["invoice", "credit_memo"] = "invoice"
    customer_code: Optional[str] = Field(None, max_length=50)
    customer_name: Optional[str] = Field(None, max_length=255)
    search_name: Optional[str] = Field(None, max_length=255)
    salesperson_code: Optional[str] = Field(None, max_length=50)
    item_code: Optional[str] = Field(None, max_length=50)
    item_description: Optional[str] = Field(None, max_length=255)
    posting_group: Optional[str] = Field(None, max_length=100)
    channel_code: Optional[str] = Field(None, max_length=50)
    quantity: float = 0.0
    amount: float = 0.0
    unit_price: Optional[float] = None


class UnitCostCreateSchema(BaseModel):
    item_code: str = Field(..., min_length=1, max_length=50)
    unit_cost: float = Field(..., ge=0, description="Cost of one unit of the item")
    description: Optional[str] = Field(None, max_length=255)
    vendor_code: Optional[str] = Field(None, max_length=50)

    model_config = ConfigDict(from_attributes=True)


class TransactionImportFile(BaseModel):
    """Shape of the JSON file accepted by the ``load-transactions`` command."""
    transactions: List[SalesTransactionCreateSchema] = Field(default_factory=list)


class UnitCostImportFile(BaseModel):
    """Shape of the JSON file accepted by the ``load-costs`` command."""
    unit_costs: List[UnitCostCreateSchema] = Field(default_factory=list)
