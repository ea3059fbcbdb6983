from __future__ import annotations
import logging
import os
from datetime import date, timedelta
from typing import Dict, List, Optional

from quotepro.errors import InvalidTransition, NotFound, NumberingConflict, PreconditionFailed
from quotepro.models.invoice import Invoice, InvoiceStatus
from quotepro.models.quote import Quote
from quotepro.services.numbering_service import NumberingService
from quotepro.services.settings_service import SettingsService, data_dir
from quotepro.services.totals import compute_totals, totals_match
from quotepro.storage.repo import JsonRepository

log = logging.getLogger(__name__)

DEFAULT_TERM_DAYS = 30

# draft is the single initial state of a derived invoice
INVOICE_TRANSITIONS: Dict[str, tuple] = {
    "draft": ("sent", "paid"),
    "sent": ("paid", "overdue"),
    "overdue": ("paid",),
    "paid": (),
}


def check_invoiceable(quote: Quote) -> None:
    """Raise PreconditionFailed unless the quote can be invoiced as stored. No side effect."""
    if quote.status != "approved":
        raise PreconditionFailed(f"quote {quote.quote_number} is {quote.status}, only approved quotes are invoiced")
    fresh = [it.model_copy().recalc() for it in quote.line_items]
    recomputed = compute_totals(fresh, quote.tax_enabled, quote.tax_rate)
    if not totals_match(recomputed, quote.totals):
        raise PreconditionFailed(f"quote {quote.quote_number} totals are stale, save the quote first")


def derive_invoice(
    quote: Quote,
    invoice_number: str,
    issue_date: Optional[date] = None,
    term_days: int = DEFAULT_TERM_DAYS,
) -> Invoice:
    """
    Build the invoice of an approved quote.

    Client details, line items and totals are deep copies: later edits of the
    quote never reach the invoice.
    """
    check_invoiceable(quote)
    if term_days < 0:
        raise ValueError("term_days must be >= 0")
    src = quote.model_copy(deep=True)

    issued = issue_date or date.today()
    return Invoice(
        invoice_number=invoice_number,
        status="draft",
        quote_id=src.id,
        customer_id=src.customer_id,
        profession=src.profession,
        currency=src.currency,
        client_details=src.client_details,
        line_items=src.line_items,
        totals=src.totals,
        issue_date=issued,
        due_date=issued + timedelta(days=term_days),
        notes=src.notes,
        terms=src.terms,
    )


def transition_invoice(inv: Invoice, dst: InvoiceStatus, paid_date: Optional[date] = None) -> Invoice:
    if dst not in INVOICE_TRANSITIONS.get(inv.status, ()):
        raise InvalidTransition("invoice", inv.status, dst)
    inv.status = dst
    if dst == "paid":
        inv.paid_date = paid_date or date.today()
    inv.touch()
    return inv


class InvoiceService:
    def __init__(
        self,
        data_dir_path: Optional[str | os.PathLike] = None,
        *,
        settings: Optional[SettingsService] = None,
        numbering: Optional[NumberingService] = None,
    ):
        base = data_dir(data_dir_path)
        self.repo = JsonRepository(base / "invoices.json", entity_name="invoice", key="id")
        self.settings = settings or SettingsService(base)
        self.numbering = numbering or NumberingService(self.settings)

    # ----------- CRUD/list -----------
    def list_invoices(self) -> List[Invoice]:
        out = [Invoice.model_validate(d) for d in self.repo.list_all()]
        return sorted(out, key=lambda i: i.created_at, reverse=True)

    def list_by_quote(self, quote_id: str) -> List[Invoice]:
        return [Invoice.model_validate(d) for d in self.repo.find(lambda x: x.get("quote_id") == quote_id)]

    def list_by_status(self, status: InvoiceStatus) -> List[Invoice]:
        return [i for i in self.list_invoices() if i.status == status]

    def get_by_id(self, invoice_id: str) -> Optional[Invoice]:
        d = self.repo.get_by_id(invoice_id)
        return Invoice.model_validate(d) if d else None

    def get_invoice(self, invoice_id: str) -> Invoice:
        inv = self.get_by_id(invoice_id)
        if inv is None:
            raise NotFound(f"invoice {invoice_id} not found")
        return inv

    def delete_invoice(self, invoice_id: str) -> bool:
        return self.repo.delete(invoice_id)

    # ----------- generation -----------
    def add_invoice(self, inv: Invoice) -> Invoice:
        """Store a freshly numbered invoice; a number already on file is a conflict."""
        number = inv.invoice_number
        if self.repo.find_one(lambda x: x.get("invoice_number") == number):
            raise NumberingConflict(f"invoice number {number} already used")
        self.repo.add(inv)
        return inv

    def create_from_quote(self, quote: Quote, issue_date: Optional[date] = None) -> Invoice:
        """
        Derive and persist the invoice of an approved quote. The quote itself is
        not touched here, see WorkflowService.convert_quote.
        """
        check_invoiceable(quote)
        if self.list_by_quote(quote.id):
            raise PreconditionFailed(f"quote {quote.quote_number} already has an invoice")

        s = self.settings.get()
        number = self.numbering.issue("invoice")
        inv = self.add_invoice(derive_invoice(quote, number, issue_date=issue_date, term_days=s.payment_term_days))
        log.info("invoice %s created from quote %s, due %s", inv.invoice_number, quote.quote_number, inv.due_date)
        return inv

    # ----------- status -----------
    def update_status(self, invoice_id: str, status: InvoiceStatus, paid_date: Optional[date] = None) -> Invoice:
        inv = transition_invoice(self.get_invoice(invoice_id), status, paid_date)
        self.repo.update(inv)
        log.info("invoice %s -> %s", inv.invoice_number, status)
        return inv

    def mark_sent(self, invoice_id: str) -> Invoice:
        return self.update_status(invoice_id, "sent")

    def mark_paid(self, invoice_id: str, paid_date: Optional[date] = None) -> Invoice:
        return self.update_status(invoice_id, "paid", paid_date)

    def mark_overdue(self, today: Optional[date] = None) -> List[Invoice]:
        """Move every sent invoice past its due date to overdue."""
        today = today or date.today()
        changed = []
        for inv in self.list_by_status("sent"):
            if inv.is_past_due(today):
                changed.append(self.update_status(inv.id, "overdue"))
        return changed
