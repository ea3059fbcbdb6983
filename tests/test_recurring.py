from datetime import date

import pytest

from quotepro.errors import PersistenceError, PreconditionFailed, ValidationError
from quotepro.services.recurring_service import frequency_text, run_date


@pytest.fixture
def recurring(workflow):
    return workflow.recurring


@pytest.fixture
def template(workflow, client, consulting):
    q = workflow.quotes.create_quote(client, consulting)
    workflow.approve(q.id)
    _, inv = workflow.convert_quote(q.id, issue_date=date(2026, 1, 1))
    return inv


def test_run_dates():
    assert run_date(date(2026, 1, 31), "monthly", 1, 1) == date(2026, 2, 28)
    assert run_date(date(2026, 1, 31), "monthly", 1, 2) == date(2026, 3, 31)
    assert run_date(date(2026, 1, 1), "weekly", 2, 1) == date(2026, 1, 15)
    assert run_date(date(2026, 1, 1), "quarterly", 1, 1) == date(2026, 4, 1)
    assert run_date(date(2024, 2, 29), "yearly", 1, 1) == date(2025, 2, 28)
    with pytest.raises(ValueError):
        run_date(date(2026, 1, 1), "hourly", 1, 1)


def test_frequency_text():
    assert frequency_text("monthly") == "Monthly"
    assert frequency_text("weekly", 2) == "Every 2 weeks"
    assert frequency_text("fortnightly") == "Unknown"


def test_create_freezes_template(workflow, recurring, template):
    r = recurring.create_recurring(template.id, start_date=date(2026, 2, 1))
    assert r.next_run_date == date(2026, 2, 1)
    assert r.totals == template.totals
    assert r.line_items == template.line_items
    assert recurring.get_recurring(r.id).template_invoice_id == template.id


def test_end_before_start_refused(recurring, template):
    with pytest.raises(ValidationError):
        recurring.create_recurring(template.id, start_date=date(2026, 2, 1), end_date=date(2026, 1, 1))
    assert recurring.list_recurring() == []


def test_due_selection(recurring, template):
    early = recurring.create_recurring(template.id, start_date=date(2026, 2, 1))
    later = recurring.create_recurring(template.id, start_date=date(2026, 3, 1))
    off = recurring.create_recurring(template.id, start_date=date(2026, 1, 15), is_active=False)
    assert [r.id for r in recurring.due(date(2026, 2, 1))] == [early.id]
    assert [r.id for r in recurring.due(date(2026, 3, 1))] == [early.id, later.id]
    assert off.id not in [r.id for r in recurring.due(date(2026, 12, 31))]


def test_generate_next(workflow, recurring, template):
    r = recurring.create_recurring(template.id, start_date=date(2026, 2, 1))
    inv = recurring.generate_next(r.id)
    assert inv.invoice_number == "INV-2"
    assert inv.status == "draft"
    assert inv.recurring_id == r.id
    assert inv.issue_date == date(2026, 2, 1)
    assert inv.due_date == date(2026, 3, 3)
    assert inv.totals == template.totals
    stored = recurring.get_recurring(r.id)
    assert stored.generated_count == 1
    assert stored.next_run_date == date(2026, 3, 1)
    assert stored.last_generated_at is not None
    assert workflow.invoices.get_invoice(inv.id).invoice_number == "INV-2"


def test_inactive_schedule_is_skipped(workflow, recurring, template):
    r = recurring.create_recurring(template.id, start_date=date(2026, 2, 1))
    recurring.toggle(r.id, False)
    with pytest.raises(PreconditionFailed):
        recurring.generate_next(r.id)
    result = recurring.process_due(date(2026, 6, 1))
    assert result.generated == []
    assert workflow.numbering.peek("invoice") == "INV-2"


def test_process_due_catches_up_and_stops_at_max(workflow, recurring, template):
    r = recurring.create_recurring(template.id, start_date=date(2026, 2, 1), max_occurrences=2)
    result = recurring.process_due(date(2026, 6, 1))
    assert [i.issue_date for i in result.generated] == [date(2026, 2, 1), date(2026, 3, 1)]
    assert result.deactivated == [r.id]
    assert result.errors == []
    assert recurring.get_recurring(r.id).is_active is False
    assert recurring.process_due(date(2026, 7, 1)).generated == []


def test_process_due_respects_end_date(recurring, template):
    r = recurring.create_recurring(template.id, start_date=date(2026, 2, 1), end_date=date(2026, 3, 15))
    result = recurring.process_due(date(2026, 12, 1))
    assert len(result.generated) == 2
    assert recurring.get_recurring(r.id).is_active is False


def test_failed_advance_removes_invoice(workflow, recurring, template, monkeypatch):
    r = recurring.create_recurring(template.id, start_date=date(2026, 2, 1))

    def fail(recurring_id, fn):
        raise PersistenceError("disk full")

    monkeypatch.setattr(recurring.repo, "mutate", fail)
    with pytest.raises(PersistenceError):
        recurring.generate_next(r.id)
    assert [i.id for i in workflow.invoices.list_invoices()] == [template.id]
    # the number taken is skipped, not reused
    assert workflow.numbering.peek("invoice") == "INV-3"


def test_schedule_counters_are_read_only(recurring, template):
    r = recurring.create_recurring(template.id, start_date=date(2026, 2, 1))
    with pytest.raises(ValidationError):
        recurring.update_recurring(r.id, generated_count=5)
    assert recurring.update_recurring(r.id, interval_count=2).interval_count == 2
