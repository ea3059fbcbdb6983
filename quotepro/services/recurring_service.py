"""
Recurring invoices: a frozen invoice template plus a schedule.

Each run takes a number from the invoice sequence, stores a draft invoice
dated on the scheduled run and moves the schedule to its next run. Run dates
are computed from the start date and the run count, so a monthly schedule
started on the 31st stays on the last day of shorter months without drifting.
"""
from __future__ import annotations
import logging
import os
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from quotepro.errors import NotFound, PreconditionFailed, QuoteProError, ValidationError
from quotepro.models.common import utcnow
from quotepro.models.invoice import Invoice
from quotepro.models.quote import QuoteTotals
from quotepro.models.recurring import Frequency, RecurringInvoice
from quotepro.services.invoice_service import InvoiceService
from quotepro.services.settings_service import data_dir
from quotepro.services.totals import totals_match, valid_items
from quotepro.storage.repo import JsonRepository

log = logging.getLogger(__name__)

_STEPS: Dict[str, relativedelta] = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(weeks=1),
    "monthly": relativedelta(months=1),
    "quarterly": relativedelta(months=3),
    "yearly": relativedelta(years=1),
}

_UNITS = {"daily": "days", "weekly": "weeks", "monthly": "months", "quarterly": "quarters", "yearly": "years"}


def run_date(start: date, frequency: Frequency, interval_count: int, n: int) -> date:
    """Date of the n-th run (0-based) of a schedule."""
    if frequency not in _STEPS:
        raise ValueError(f"unknown frequency {frequency!r}")
    return start + _STEPS[frequency] * (interval_count * n)


def frequency_text(frequency: str, interval_count: int = 1) -> str:
    if frequency not in _UNITS:
        return "Unknown"
    if interval_count == 1:
        return frequency.capitalize()
    return f"Every {interval_count} {_UNITS[frequency]}"


def _check_template_totals(schedule: RecurringInvoice) -> None:
    subtotal = sum(it.line_total for it in valid_items(schedule.line_items))
    t = schedule.totals
    expected = QuoteTotals(subtotal=subtotal, vat=t.vat, total=subtotal + t.vat)
    stale = [it.id for it in schedule.line_items if abs(it.line_total - it.quantity * it.unit_price) > 1e-6]
    if stale or not totals_match(expected, t):
        raise PreconditionFailed(f"recurring invoice {schedule.id}: template totals are not consistent")


def invoice_from_schedule(schedule: RecurringInvoice, invoice_number: str, term_days: int) -> Invoice:
    """Draft invoice of the schedule's current run. No side effect."""
    src = schedule.model_copy(deep=True)
    issued = src.next_run_date
    return Invoice(
        invoice_number=invoice_number,
        status="draft",
        customer_id=src.customer_id,
        recurring_id=src.id,
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


class ProcessResult(BaseModel):
    generated: List[Invoice] = Field(default_factory=list)
    deactivated: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class RecurringInvoiceService:
    def __init__(self, data_dir_path: Optional[str | os.PathLike] = None, *, invoices: Optional[InvoiceService] = None):
        base = data_dir(data_dir_path)
        self.repo = JsonRepository(base / "recurring.json", entity_name="recurring invoice", key="id")
        self.invoices = invoices or InvoiceService(base)

    # ----------- CRUD/list -----------
    def list_recurring(self) -> List[RecurringInvoice]:
        out = [RecurringInvoice.model_validate(d) for d in self.repo.list_all()]
        return sorted(out, key=lambda r: r.created_at, reverse=True)

    def get_by_id(self, recurring_id: str) -> Optional[RecurringInvoice]:
        d = self.repo.get_by_id(recurring_id)
        return RecurringInvoice.model_validate(d) if d else None

    def get_recurring(self, recurring_id: str) -> RecurringInvoice:
        r = self.get_by_id(recurring_id)
        if r is None:
            raise NotFound(f"recurring invoice {recurring_id} not found")
        return r

    def create_recurring(
        self,
        template_invoice_id: str,
        *,
        frequency: Frequency = "monthly",
        interval_count: int = 1,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        max_occurrences: Optional[int] = None,
        is_active: bool = True,
    ) -> RecurringInvoice:
        """Schedule copies of an existing invoice. Its lines and totals are frozen here."""
        template = self.invoices.get_invoice(template_invoice_id).model_copy(deep=True)
        start = start_date or date.today()
        if end_date is not None and end_date < start:
            raise ValidationError("invalid recurring invoice", ["end_date is before start_date"])
        try:
            schedule = RecurringInvoice(
                customer_id=template.customer_id,
                template_invoice_id=template.id,
                profession=template.profession,
                currency=template.currency,
                client_details=template.client_details,
                line_items=template.line_items,
                totals=template.totals,
                notes=template.notes,
                terms=template.terms,
                frequency=frequency,
                interval_count=interval_count,
                start_date=start,
                end_date=end_date,
                max_occurrences=max_occurrences,
                next_run_date=start,
                is_active=is_active,
            )
        except PydanticValidationError as e:
            raise ValidationError("invalid recurring invoice", [err["msg"] for err in e.errors()]) from e
        _check_template_totals(schedule)
        self.repo.add(schedule)
        log.info("recurring invoice %s from %s, %s starting %s", schedule.id, template.invoice_number,
                 frequency_text(frequency, interval_count), start)
        return schedule

    def update_recurring(self, recurring_id: str, **changes: Any) -> RecurringInvoice:
        """Change schedule fields. The frozen template and the run counters stay as they are."""
        frozen = {"id", "line_items", "totals", "generated_count", "last_generated_at", "created_at"}
        bad = sorted(frozen.intersection(changes))
        if bad:
            raise ValidationError("read-only fields", [f"{k} cannot be changed" for k in bad])

        def apply(record: dict) -> dict:
            try:
                r = RecurringInvoice.model_validate({**record, **changes})
            except PydanticValidationError as e:
                raise ValidationError("invalid recurring invoice", [err["msg"] for err in e.errors()]) from e
            r.touch()
            return r.model_dump(mode="json")

        return RecurringInvoice.model_validate(self.repo.mutate(recurring_id, apply))

    def toggle(self, recurring_id: str, is_active: bool) -> RecurringInvoice:
        return self.update_recurring(recurring_id, is_active=is_active)

    def delete_recurring(self, recurring_id: str) -> bool:
        return self.repo.delete(recurring_id)

    # ----------- schedule -----------
    def due(self, today: Optional[date] = None) -> List[RecurringInvoice]:
        """Active schedules whose next run is today or earlier, oldest run first."""
        today = today or date.today()
        out = [r for r in self.list_recurring() if r.is_active and r.next_run_date <= today]
        return sorted(out, key=lambda r: r.next_run_date)

    def generate_next(self, recurring_id: str) -> Invoice:
        """
        Issue the invoice of the next run and advance the schedule.

        If the schedule cannot be advanced the invoice is removed again and the
        number taken is skipped.
        """
        schedule = self.get_recurring(recurring_id)
        if not schedule.is_active:
            raise PreconditionFailed(f"recurring invoice {recurring_id} is inactive")
        if schedule.is_finished():
            raise PreconditionFailed(f"recurring invoice {recurring_id} has no run left")
        _check_template_totals(schedule)

        term_days = self.invoices.settings.get().payment_term_days
        number = self.invoices.numbering.issue("invoice")
        inv = self.invoices.add_invoice(invoice_from_schedule(schedule, number, term_days))

        def advance(record: dict) -> dict:
            r = RecurringInvoice.model_validate(record)
            r.generated_count += 1
            r.next_run_date = run_date(r.start_date, r.frequency, r.interval_count, r.generated_count)
            r.last_generated_at = utcnow()
            r.is_active = not r.is_finished()
            r.touch()
            return r.model_dump(mode="json")

        try:
            self.repo.mutate(recurring_id, advance)
        except QuoteProError:
            log.exception("recurring invoice %s could not be advanced, removing invoice %s",
                          recurring_id, inv.invoice_number)
            self.invoices.delete_invoice(inv.id)
            raise
        log.info("recurring invoice %s generated %s dated %s", recurring_id, inv.invoice_number, inv.issue_date)
        return inv

    def process_due(self, today: Optional[date] = None) -> ProcessResult:
        """
        Generate every due run. Finished schedules are deactivated. A failing
        schedule is reported in `errors` and does not stop the others.
        """
        today = today or date.today()
        result = ProcessResult()
        for schedule in self.due(today):
            try:
                current = schedule
                while current.is_active and current.next_run_date <= today:
                    if current.is_finished():
                        self.toggle(current.id, False)
                        result.deactivated.append(current.id)
                        break
                    result.generated.append(self.generate_next(current.id))
                    current = self.get_recurring(current.id)
                    if not current.is_active:
                        result.deactivated.append(current.id)
            except QuoteProError as e:
                log.warning("recurring invoice %s: %s", schedule.id, e)
                result.errors.append(f"recurring invoice {schedule.id}: {e}")
        return result
