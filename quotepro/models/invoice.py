from __future__ import annotations
from pydantic import Field
from typing import List, Literal, Optional
from datetime import date
from .common import gen_id, TimeStamped
from .line_item import LineItem
from .quote import ClientDetails, QuoteTotals

InvoiceStatus = Literal["draft", "sent", "paid", "overdue"]

class Invoice(TimeStamped):
    id: str = Field(default_factory=gen_id)
    invoice_number: str
    status: InvoiceStatus = "draft"

    quote_id: Optional[str] = None
    customer_id: Optional[str] = None
    recurring_id: Optional[str] = None
    profession: str = "General"
    currency: str = "ZAR"

    # frozen copy of the quote at conversion time
    client_details: ClientDetails
    line_items: List[LineItem] = Field(default_factory=list)
    totals: QuoteTotals = Field(default_factory=QuoteTotals)

    issue_date: date
    due_date: date
    paid_date: Optional[date] = None

    notes: Optional[str] = None
    terms: Optional[str] = None

    def is_past_due(self, today: date) -> bool:
        return self.status != "paid" and today > self.due_date

    class Config:
        extra = "ignore"
