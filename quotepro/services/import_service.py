"""
Reconciliation of line items extracted from an uploaded document (OCR).

Extracted numbers are candidates only: every line total and the document
totals are recomputed here, the extracted totals are kept for comparison and
the confidence score is informational.
"""
from __future__ import annotations
import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from quotepro.models.line_item import LineItem
from quotepro.models.quote import QuoteTotals
from quotepro.services.totals import DEFAULT_TAX_RATE, compute_totals, totals_match, valid_items

log = logging.getLogger(__name__)


class ExtractedLine(BaseModel):
    description: str = ""
    quantity: float = 1.0
    unit_price: float = 0.0
    line_total: Optional[float] = None


class ExtractedDocument(BaseModel):
    quote_number: Optional[str] = None
    invoice_number: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_address: Optional[str] = None
    line_items: List[ExtractedLine] = Field(default_factory=list)
    subtotal: Optional[float] = None
    vat: Optional[float] = None
    total: Optional[float] = None
    date: Optional[str] = None
    confidence: float = 0.0


class ReconciledImport(BaseModel):
    line_items: List[LineItem]
    totals: QuoteTotals
    client: dict = Field(default_factory=dict)
    confidence: float = 0.0
    warnings: List[str] = Field(default_factory=list)


def reconcile_extracted(
    doc: ExtractedDocument,
    tax_enabled: bool = True,
    tax_rate: float = DEFAULT_TAX_RATE,
    profession: str = "General",
) -> ReconciledImport:
    warnings: List[str] = []
    items: List[LineItem] = []
    for n, raw in enumerate(doc.line_items, start=1):
        item = LineItem(
            description=raw.description.strip(),
            quantity=raw.quantity,
            unit_price=raw.unit_price,
            profession=profession,
        ).recalc()
        if raw.line_total is not None and abs(raw.line_total - item.line_total) > 0.005:
            warnings.append(f"line {n}: extracted total {raw.line_total:.2f} replaced by {item.line_total:.2f}")
        items.append(item)

    items = valid_items(items)
    totals = compute_totals(items, tax_enabled, tax_rate)

    if doc.subtotal is not None or doc.total is not None:
        extracted = QuoteTotals(
            subtotal=doc.subtotal if doc.subtotal is not None else totals.subtotal,
            vat=doc.vat if doc.vat is not None else totals.vat,
            total=doc.total if doc.total is not None else totals.total,
        )
        if not totals_match(extracted, totals, tolerance=0.005):
            warnings.append(
                f"extracted total {extracted.total:.2f} differs from recomputed {totals.total:.2f}"
            )

    for w in warnings:
        log.warning("import: %s", w)

    client = {
        k: v
        for k, v in (
            ("name", doc.client_name),
            ("email", doc.client_email),
            ("address", doc.client_address),
        )
        if v
    }
    return ReconciledImport(
        line_items=items,
        totals=totals,
        client=client,
        confidence=doc.confidence,
        warnings=warnings,
    )
