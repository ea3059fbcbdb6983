from __future__ import annotations
import logging
import os
from pathlib import Path
from shutil import which
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import pdfkit
from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape
from pydantic import ValidationError as PydanticValidationError

from quotepro.errors import RenderingError
from quotepro.models.invoice import Invoice
from quotepro.models.quote import Quote
from quotepro.models.settings import CompanyProfile
from quotepro.services import professions
from quotepro.services.totals import valid_items

log = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"

# attributes shown as extra columns, per profession
DISPLAY_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "General": (),
    "Medical": ("patient_name", "diagnosis_code", "procedure_code"),
    "Legal": ("case_number", "legal_matter_type", "court_reference"),
    "Accounting": ("account_code", "tax_category", "vat_rate"),
    "Engineering": ("project_phase", "engineering_discipline", "drawing_number"),
}

THEMES: Dict[str, Dict[str, str]] = {
    "General": {"primary": "#007bff", "light": "#e7f1ff"},
    "Medical": {"primary": "#0f9d8a", "light": "#e6f6f3"},
    "Legal": {"primary": "#1f2a44", "light": "#e9ecf2"},
    "Accounting": {"primary": "#2e7d32", "light": "#e8f5e9"},
    "Engineering": {"primary": "#ef6c00", "light": "#fff3e0"},
}

Document = Union[Quote, Invoice]


# ---------- Formats ----------
def _money(value: Any, currency: str = "ZAR") -> str:
    symbol = "R" if currency == "ZAR" else currency
    amount = float(value or 0)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol} {abs(amount):,.2f}".replace(",", " ")


def _qty(value: Any) -> str:
    return f"{float(value or 0):g}"


# ---------- PDF helpers ----------
def _clean_path(p: str) -> str:
    p = p.strip().strip('"').strip("'")
    return os.path.normpath(p)


def find_wkhtmltopdf(configured: Optional[str] = None) -> Optional[str]:
    """
    Locate wkhtmltopdf:
    - WKHTMLTOPDF / WKHTMLTOPDF_CMD environment variables
    - path configured in the settings
    - PATH
    """
    candidates = [os.environ.get("WKHTMLTOPDF"), os.environ.get("WKHTMLTOPDF_CMD"), configured]
    for c in candidates:
        if c and Path(_clean_path(c)).is_file():
            return _clean_path(c)
    found = which("wkhtmltopdf")
    return _clean_path(found) if found else None


def check_totals(doc: Document, tolerance: float = 1e-6) -> None:
    """The renderer shows totals as given; inconsistent ones are refused."""
    subtotal = sum(it.line_total for it in valid_items(doc.line_items))
    t = doc.totals
    for it in doc.line_items:
        if abs(it.line_total - it.quantity * it.unit_price) > tolerance:
            raise RenderingError(f"line {it.id}: line_total does not match quantity * unit_price")
    if abs(subtotal - t.subtotal) > tolerance or abs(t.subtotal + t.vat - t.total) > tolerance:
        raise RenderingError(f"{_number_of(doc)}: totals are not consistent with the line items")


def _number_of(doc: Document) -> str:
    if isinstance(doc, Invoice):
        return doc.invoice_number
    return doc.quote_number or "DRAFT"


class DocumentRenderer:
    def __init__(self, templates_dir: Optional[Path] = None):
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self.env.filters["money"] = _money
        self.env.filters["qty"] = _qty

    def context(self, doc: Document, profession: Optional[str] = None,
                company: Optional[CompanyProfile] = None) -> Dict[str, Any]:
        prof = professions.normalize_profession(profession or doc.profession)
        schema = professions.get_schema(prof)
        labels = professions.terminology(prof)
        columns = [schema.rule(name) for name in DISPLAY_COLUMNS[prof]]
        is_invoice = isinstance(doc, Invoice)
        if is_invoice:
            title = "Bill" if labels["invoices"] == "Bills" else "Invoice"
            issue_date, due_date = doc.issue_date.isoformat(), doc.due_date.isoformat()
        else:
            title = labels["quote"].replace("Create ", "")
            issue_date, due_date = doc.created_at.date().isoformat(), None
        return {
            "title": title,
            "number": _number_of(doc),
            "status": doc.status,
            "issue_date": issue_date,
            "due_date": due_date,
            "client_label": labels["customers"].rstrip("s"),
            "client": doc.client_details,
            "company": company or CompanyProfile(),
            "columns": columns,
            "lines": valid_items(doc.line_items),
            "totals": doc.totals,
            "currency": doc.currency,
            "notes": doc.notes,
            "terms": doc.terms,
            "theme": THEMES[prof],
        }

    def render_html(self, doc: Document, profession: Optional[str] = None,
                    company: Optional[CompanyProfile] = None) -> str:
        check_totals(doc)
        try:
            tpl = self.env.get_template("document.html")
            return tpl.render(**self.context(doc, profession, company))
        except TemplateError as e:
            raise RenderingError(f"cannot render {_number_of(doc)}: {e}") from e

    def export_pdf(self, html: str, out_path: Union[str, Path], wkhtmltopdf: Optional[str] = None) -> str:
        exe = find_wkhtmltopdf(wkhtmltopdf)
        if not exe:
            raise RenderingError(
                "wkhtmltopdf not found. Install it or set WKHTMLTOPDF to the executable path."
            )
        out = Path(out_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        config = pdfkit.configuration(wkhtmltopdf=exe)
        options = {"quiet": "", "encoding": "UTF-8", "enable-local-file-access": None}
        try:
            pdfkit.from_string(html, str(out), configuration=config, options=options)
        except (IOError, OSError) as e:
            log.warning("wkhtmltopdf failed for %s: %s", out.name, e)
            raise RenderingError(f"PDF conversion failed: {e}") from e
        return str(out)


def build_html_response(payload: Mapping[str, Any],
                        renderer: Optional[DocumentRenderer] = None) -> Tuple[int, Dict[str, Any]]:
    """
    Request handler body for HTML generation: {profession, quoteData} -> (status, json body).
    """
    profession = payload.get("profession")
    quote_data = payload.get("quoteData")
    if not profession or not quote_data:
        return 400, {"error": "Missing required fields: profession and quoteData"}

    renderer = renderer or DocumentRenderer()
    try:
        quote = Quote.model_validate(quote_data)
        company_raw = quote_data.get("company_settings") if isinstance(quote_data, Mapping) else None
        company = CompanyProfile.model_validate(company_raw) if company_raw else None
        html = renderer.render_html(quote, profession, company)
    except (PydanticValidationError, RenderingError) as e:
        log.error("PDF HTML generation error: %s", e)
        return 500, {"error": "Failed to generate PDF HTML", "details": str(e)}
    return 200, {"success": True, "html": html}

