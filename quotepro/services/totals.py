from __future__ import annotations
from typing import Iterable, List

from quotepro.models.line_item import LineItem
from quotepro.models.quote import QuoteTotals

DEFAULT_TAX_RATE = 0.15  # South African VAT


def valid_items(items: Iterable[LineItem]) -> List[LineItem]:
    """Rows with any real content; blank scaffolding rows are left out."""
    return [it for it in items if it.has_content()]


def recalc_items(items: Iterable[LineItem]) -> List[LineItem]:
    return [it.recalc() for it in items]


def compute_totals(
    items: Iterable[LineItem],
    tax_enabled: bool = True,
    tax_rate: float = DEFAULT_TAX_RATE,
) -> QuoteTotals:
    """
    subtotal / vat / total for a list of line items.

    Pure: nothing is mutated, values are taken as given (negative quantities or
    prices produce negative totals, for credit-note style documents).
    """
    subtotal = sum((float(it.line_total) for it in valid_items(items)), 0.0)
    vat = subtotal * float(tax_rate) if tax_enabled else 0.0
    return QuoteTotals(subtotal=subtotal, vat=vat, total=subtotal + vat)


def totals_match(a: QuoteTotals, b: QuoteTotals, tolerance: float = 1e-6) -> bool:
    return (
        abs(a.subtotal - b.subtotal) <= tolerance
        and abs(a.vat - b.vat) <= tolerance
        and abs(a.total - b.total) <= tolerance
    )
