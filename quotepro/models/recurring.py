from __future__ import annotations
from pydantic import Field
from typing import List, Literal, Optional
from datetime import date, datetime
from .common import gen_id, TimeStamped
from .line_item import LineItem
from .quote import ClientDetails, QuoteTotals

Frequency = Literal["daily", "weekly", "monthly", "quarterly", "yearly"]

class RecurringInvoice(TimeStamped):
    id: str = Field(default_factory=gen_id)
    customer_id: Optional[str] = None
    template_invoice_id: Optional[str] = None

    profession: str = "General"
    currency: str = "ZAR"

    # frozen copy of the template invoice, reused by every generated invoice
    client_details: ClientDetails
    line_items: List[LineItem] = Field(default_factory=list)
    totals: QuoteTotals = Field(default_factory=QuoteTotals)
    notes: Optional[str] = None
    terms: Optional[str] = None

    frequency: Frequency = "monthly"
    interval_count: int = Field(default=1, ge=1)
    start_date: date
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = Field(default=None, ge=1)

    next_run_date: date
    is_active: bool = True
    generated_count: int = 0
    last_generated_at: Optional[datetime] = None

    class Config:
        extra = "ignore"

    def is_finished(self) -> bool:
        if self.max_occurrences is not None and self.generated_count >= self.max_occurrences:
            return True
        return self.end_date is not None and self.next_run_date > self.end_date
