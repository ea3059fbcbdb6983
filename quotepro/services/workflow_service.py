from __future__ import annotations
import logging
import os
from datetime import date
from typing import Any, Iterable, Optional, Tuple

from quotepro.errors import QuoteProError
from quotepro.models.invoice import Invoice
from quotepro.models.quote import Quote
from quotepro.services.customer_service import CustomerService
from quotepro.services.invoice_service import InvoiceService
from quotepro.services.numbering_service import NumberingService
from quotepro.services.quote_service import QuoteService
from quotepro.services.recurring_service import RecurringInvoiceService
from quotepro.services.settings_service import SettingsService, data_dir

log = logging.getLogger(__name__)


class WorkflowService:
    """Multi-step operations spanning quotes and invoices."""

    def __init__(self, data_dir_path: Optional[str | os.PathLike] = None):
        base = data_dir(data_dir_path)
        self.settings = SettingsService(base)
        self.numbering = NumberingService(self.settings)
        self.quotes = QuoteService(base, settings=self.settings, numbering=self.numbering)
        self.invoices = InvoiceService(base, settings=self.settings, numbering=self.numbering)
        self.customers = CustomerService(base)
        self.recurring = RecurringInvoiceService(base, invoices=self.invoices)

    def quote_for_customer(self, customer_id: str, line_items: Iterable[Any] = (), **kwargs: Any) -> Quote:
        """New pending quote whose client details are taken from the stored customer."""
        customer = self.customers.get_customer(customer_id)
        kwargs.setdefault("currency", customer.currency)
        return self.quotes.create_quote(customer.to_client_details(), line_items, customer_id=customer.id, **kwargs)

    def approve(self, quote_id: str) -> Quote:
        return self.quotes.approve_quote(quote_id)

    def decline(self, quote_id: str) -> Quote:
        return self.quotes.decline_quote(quote_id)

    def convert_quote(self, quote_id: str, issue_date: Optional[date] = None) -> Tuple[Quote, Invoice]:
        """
        approved quote -> invoice, quote becomes converted.

        Either both happen or neither: if the invoice cannot be stored the
        quote stays approved; if the quote cannot be marked converted the new
        invoice is removed again. The invoice number taken is then skipped.
        """
        quote = self.quotes.get_quote(quote_id)
        invoice = self.invoices.create_from_quote(quote, issue_date=issue_date)
        try:
            converted = self.quotes.mark_converted(quote.id)
        except QuoteProError:
            log.exception("conversion of quote %s failed, removing invoice %s",
                          quote.quote_number, invoice.invoice_number)
            self.invoices.delete_invoice(invoice.id)
            raise
        log.info("quote %s converted to invoice %s", converted.quote_number, invoice.invoice_number)
        return converted, invoice
