"""Data models for sales transactions and unit-cost reference data."""

from tortoise import fields
from ...common.models import ImportedRecord


class SalesTransaction(ImportedRecord):
    id = fields.IntField(primary_key=True)
    posting_date = fields.DateField(db_index=True)
    document_type = fields.CharField(
        max_length=20, default="invoice", description="invoice or credit_memo"
    )

    customer_code = fields.CharField(max_length=50, null=True, db_index=True)
    customer_name = fields.CharField(max_length=255, null=True)
    search_name = fields.CharField(max_length=255, null=True)
    salesperson_code = fields.CharField(max_length=50, null=True, db_index=True)
    item_code = fields.CharField(max_length=50, null=True, db_index=True)
    item_description = fields.CharField(max_length=255, null=True)
    posting_group = fields.CharField(
        max_length=100, null=True, description="Product category of the item"
    )
    channel_code = fields.CharField(max_length=50, null=True)

    # Credit memos are stored with negative quantity and amount.
    quantity = fields.FloatField(default=0.0)
    amount = fields.FloatField(default=0.0)
    unit_price = fields.FloatField(null=True)

    def __str__(self):
        return (
            f"{self.document_type} {self.posting_date} {self.customer_code or 'N/A'} "
            f"{self.item_code or 'N/A'}: {self.quantity} for {self.amount:.2f}"
        )

    class Meta:
        table = "sales_transactions"


class UnitCost(ImportedRecord):
    id = fields.IntField(primary_key=True)
    item_code = fields.CharField(max_length=50, unique=True)
    unit_cost = fields.FloatField()
    description = fields.CharField(max_length=255, null=True)
    vendor_code = fields.CharField(max_length=50, null=True)

    def __str__(self):
        return f"{self.item_code} (Unit cost: ${self.unit_cost:.2f})"

    class Meta:
        table = "unit_costs"
