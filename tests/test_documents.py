import pytest

from quotepro.errors import RenderingError
from quotepro.models.settings import CompanyProfile
from quotepro.services import document_service
from quotepro.services.document_service import DocumentRenderer, build_html_response


@pytest.fixture
def renderer():
    return DocumentRenderer()


@pytest.fixture
def medical_quote(quotes, client):
    items = [{"description": "Consultation", "quantity": 1, "unit_price": 650,
              "attributes": {"patient_name": "Sipho Dlamini", "diagnosis_code": "Z00.00"}},
             {"description": "", "quantity": 0, "unit_price": 0}]
    return quotes.create_quote(client, items, profession="Medical")


def test_render_quote_html(renderer, medical_quote):
    company = CompanyProfile(company_name="Sea Point Clinic", email="info@spclinic.co.za")
    html = renderer.render_html(medical_quote, company=company)
    assert "QUO-1" in html
    assert "Sea Point Clinic" in html
    assert "Estimate" in html
    assert "Patient name" in html
    assert "Sipho Dlamini" in html
    assert "R 747.50" in html
    assert len(renderer.context(medical_quote)["lines"]) == 1


def test_client_text_is_escaped(renderer, quotes, client):
    client["comments"] = "<script>alert(1)</script>"
    q = quotes.create_quote(client, [{"description": "A", "quantity": 1, "unit_price": 1}])
    assert "<script>" not in renderer.render_html(q)


def test_render_invoice_html(renderer, workflow, client):
    q = workflow.quotes.create_quote(client, [{"description": "Retainer", "quantity": 1, "unit_price": 5000,
                                               "attributes": {"case_number": "CC-12/2026"}}],
                                     profession="Legal")
    workflow.approve(q.id)
    _, inv = workflow.convert_quote(q.id)
    html = renderer.render_html(inv)
    assert "Bill" in html
    assert "INV-1" in html
    assert "CC-12/2026" in html
    assert inv.due_date.isoformat() in html


def test_inconsistent_totals_refused(renderer, medical_quote):
    medical_quote.totals.total += 1
    with pytest.raises(RenderingError):
        renderer.render_html(medical_quote)


def test_html_response_missing_fields():
    status, body = build_html_response({"profession": "General"})
    assert status == 400
    assert "Missing required fields" in body["error"]


def test_html_response_ok(quotes, client, consulting):
    q = quotes.create_quote(client, consulting)
    status, body = build_html_response({"profession": "engineering", "quoteData": q.model_dump(mode="json")})
    assert status == 200
    assert body["success"] is True
    assert "Project Quote" in body["html"]


def test_html_response_bad_payload():
    status, body = build_html_response({"profession": "General", "quoteData": {"line_items": []}})
    assert status == 500
    assert body["error"] == "Failed to generate PDF HTML"


def test_pdf_needs_wkhtmltopdf(renderer, tmp_path, monkeypatch):
    monkeypatch.setattr(document_service, "find_wkhtmltopdf", lambda configured=None: None)
    with pytest.raises(RenderingError):
        renderer.export_pdf("<html></html>", tmp_path / "out.pdf")
