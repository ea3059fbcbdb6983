from datetime import date

import pytest

from quotepro.services.analytics_service import AnalyticsService


def test_dashboard_stats(workflow, client, consulting):
    q = workflow.quotes
    paid_now = workflow.approve(q.create_quote(client, consulting).id)
    paid_before = workflow.approve(q.create_quote(client, consulting).id)
    overdue = workflow.approve(q.create_quote(client, consulting).id)
    q.decline_quote(q.create_quote(client, consulting).id)
    q.create_quote(client, consulting)

    _, inv1 = workflow.convert_quote(paid_now.id, issue_date=date(2026, 5, 1))
    _, inv2 = workflow.convert_quote(paid_before.id, issue_date=date(2026, 4, 1))
    _, inv3 = workflow.convert_quote(overdue.id, issue_date=date(2026, 3, 1))
    workflow.invoices.mark_paid(inv1.id, date(2026, 5, 10))
    workflow.invoices.mark_paid(inv2.id, date(2026, 4, 10))
    workflow.invoices.mark_sent(inv3.id)

    stats = AnalyticsService(workflow.quotes, workflow.invoices).dashboard_stats(today=date(2026, 5, 20))
    assert stats.total_quotes == 5
    assert stats.quotes_by_status == {"converted": 3, "declined": 1, "pending": 1}
    assert stats.total_invoices == 3
    assert stats.total_revenue == pytest.approx(460)
    assert stats.this_month_revenue == pytest.approx(230)
    assert stats.last_month_revenue == pytest.approx(230)
    assert stats.revenue_growth == 0
    assert stats.outstanding_amount == pytest.approx(230)
    assert stats.overdue_invoices == 1
    assert stats.conversion_rate == pytest.approx(75)


def test_empty_dashboard(workflow):
    stats = AnalyticsService(workflow.quotes, workflow.invoices).dashboard_stats()
    assert stats.total_quotes == 0
    assert stats.conversion_rate == 0
