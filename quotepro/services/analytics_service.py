from __future__ import annotations
from datetime import date
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field

from quotepro.models.invoice import Invoice
from quotepro.models.quote import Quote
from quotepro.services.invoice_service import InvoiceService
from quotepro.services.quote_service import QuoteService


class DashboardStats(BaseModel):
    total_quotes: int = 0
    quotes_by_status: Dict[str, int] = Field(default_factory=dict)
    total_invoices: int = 0
    invoices_by_status: Dict[str, int] = Field(default_factory=dict)
    total_revenue: float = 0.0
    outstanding_amount: float = 0.0
    overdue_invoices: int = 0
    this_month_revenue: float = 0.0
    last_month_revenue: float = 0.0
    revenue_growth: float = 0.0
    conversion_rate: float = 0.0


def _previous_month(d: date) -> tuple[int, int]:
    return (d.year - 1, 12) if d.month == 1 else (d.year, d.month - 1)


def compute_stats(quotes: Iterable[Quote], invoices: Iterable[Invoice], today: date) -> DashboardStats:
    quotes = list(quotes)
    invoices = list(invoices)
    stats = DashboardStats(total_quotes=len(quotes), total_invoices=len(invoices))

    for q in quotes:
        stats.quotes_by_status[q.status] = stats.quotes_by_status.get(q.status, 0) + 1
    for inv in invoices:
        stats.invoices_by_status[inv.status] = stats.invoices_by_status.get(inv.status, 0) + 1

    last_year, last_month = _previous_month(today)
    for inv in invoices:
        if inv.status == "paid":
            stats.total_revenue += inv.totals.total
            paid = inv.paid_date or inv.issue_date
            if (paid.year, paid.month) == (today.year, today.month):
                stats.this_month_revenue += inv.totals.total
            elif (paid.year, paid.month) == (last_year, last_month):
                stats.last_month_revenue += inv.totals.total
        elif inv.status in ("sent", "overdue"):
            stats.outstanding_amount += inv.totals.total
            if inv.status == "overdue" or inv.is_past_due(today):
                stats.overdue_invoices += 1

    if stats.last_month_revenue:
        stats.revenue_growth = (
            (stats.this_month_revenue - stats.last_month_revenue) / stats.last_month_revenue * 100.0
        )
    decided = sum(stats.quotes_by_status.get(s, 0) for s in ("approved", "declined", "converted"))
    if decided:
        stats.conversion_rate = stats.quotes_by_status.get("converted", 0) / decided * 100.0
    return stats


class AnalyticsService:
    def __init__(self, quotes: QuoteService, invoices: InvoiceService):
        self.quotes = quotes
        self.invoices = invoices

    def dashboard_stats(self, today: Optional[date] = None) -> DashboardStats:
        return compute_stats(self.quotes.list_quotes(), self.invoices.list_invoices(), today or date.today())
