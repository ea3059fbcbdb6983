"""
Profession registry: extra line-item fields per profession, their validation
rules, the cost formulas that derive a unit price, and UI terminology.

Lookup is pure and never fails: an unknown tag falls back to General.
"""
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from quotepro.errors import ValidationError
from quotepro.models.line_item import LineItem
from quotepro.models.profession import FieldRule, FieldSchema

log = logging.getLogger(__name__)

DEFAULT_PROFESSION = "General"

_R = FieldRule

_SCHEMAS: Dict[str, FieldSchema] = {
    "General": FieldSchema(profession="General", label="General Business"),
    "Medical": FieldSchema(
        profession="Medical",
        label="Medical Practice",
        rules=[
            _R(name="patient_name", label="Patient name", required=True, min_length=2),
            _R(name="patient_id", label="Patient ID", pattern=r"^[A-Za-z0-9\-]{4,20}$"),
            _R(name="diagnosis_code", label="ICD-10 code", pattern=r"^[A-Z][0-9]{2}(\.[0-9A-Z]{1,4})?$"),
            _R(name="treatment_date", label="Treatment date", type="date"),
            _R(name="procedure_code", label="Procedure code", pattern=r"^[0-9A-Z]{4,6}$"),
            _R(name="medical_aid_scheme", label="Medical aid scheme"),
            _R(name="medical_aid_number", label="Medical aid number", pattern=r"^[A-Za-z0-9]{5,20}$"),
            _R(name="practice_number", label="Practice number", pattern=r"^[0-9]{7}$"),
            _R(name="reference_number", label="Reference"),
        ],
    ),
    "Legal": FieldSchema(
        profession="Legal",
        label="Legal Services",
        rules=[
            _R(name="case_number", label="Case number", required=True, min_length=3),
            _R(name="client_matter", label="Client matter"),
            _R(name="legal_matter_type", label="Matter type", choices=(
                "Civil Litigation", "Criminal Defense", "Corporate Law", "Family Law",
                "Property Law", "Labour Law", "Commercial Law", "Other",
            )),
            _R(name="court_reference", label="Court reference"),
            _R(name="date_of_service", label="Date of service", type="date"),
            _R(name="time_spent", label="Time spent (h)", type="float", min_value=0),
            _R(name="hourly_rate", label="Hourly rate", type="float", min_value=0),
            _R(name="attorney_name", label="Attorney"),
            _R(name="practice_area", label="Practice area"),
            _R(name="billable_activity", label="Billable activity"),
            _R(name="court_name", label="Court"),
            _R(name="opposing_party", label="Opposing party"),
        ],
        cost_fields=("time_spent", "hourly_rate"),
    ),
    "Accounting": FieldSchema(
        profession="Accounting",
        label="Accounting Firm",
        rules=[
            _R(name="account_code", label="Account code", pattern=r"^[0-9]{4}$"),
            _R(name="account_name", label="Account name"),
            _R(name="tax_category", label="Tax category", default="Standard"),
            _R(name="rate", label="Net rate", type="float"),
            _R(name="vat_rate", label="VAT %", type="float", min_value=0, max_value=100, default=15.0),
            _R(name="vat_amount", label="VAT amount", type="float"),
            _R(name="journal_reference", label="Journal reference"),
            _R(name="transaction_date", label="Transaction date", type="date"),
            _R(name="cost_center", label="Cost center"),
            _R(name="project_code", label="Project code"),
            _R(name="expense_category", label="Expense category"),
            _R(name="debit_account", label="Debit account"),
            _R(name="credit_account", label="Credit account"),
            _R(name="reconciliation_ref", label="Reconciliation ref"),
        ],
        cost_fields=("rate", "vat_rate"),
    ),
    "Engineering": FieldSchema(
        profession="Engineering",
        label="Engineering Services",
        rules=[
            _R(name="project_phase", label="Project phase", choices=(
                "Conceptual Design", "Preliminary Design", "Detailed Design",
                "Engineering Analysis", "Procurement", "Construction",
                "Testing & Commissioning", "Operations & Maintenance", "Decommissioning",
            )),
            _R(name="engineering_discipline", label="Discipline"),
            _R(name="material_code", label="Material code"),
            _R(name="material_specification", label="Material specification"),
            _R(name="labor_hours", label="Labour hours", type="float", min_value=0, default=0.0),
            _R(name="labor_rate", label="Labour rate", type="float", min_value=0, default=0.0),
            _R(name="material_cost", label="Material cost", type="float", min_value=0, default=0.0),
            _R(name="equipment_cost", label="Equipment cost", type="float", min_value=0, default=0.0),
            _R(name="drawing_number", label="Drawing number"),
            _R(name="revision_number", label="Revision", default="Rev 0"),
            _R(name="work_package", label="Work package"),
            _R(name="milestone", label="Milestone"),
            _R(name="quality_standard", label="Quality standard"),
            _R(name="testing_required", label="Testing required", type="bool", default=False),
            _R(name="deliverable", label="Deliverable"),
            _R(name="risk_level", label="Risk level", choices=("Low", "Medium", "High", "Critical"), default="Low"),
            _R(name="complexity", label="Complexity",
               choices=("Simple", "Standard", "Complex", "Highly Complex"), default="Standard"),
        ],
        cost_fields=("labor_hours", "labor_rate", "material_cost", "equipment_cost"),
    ),
}

_TERMINOLOGY: Dict[str, Dict[str, str]] = {
    "General": {"quote": "Create Quote", "invoices": "Invoices", "customers": "Customers", "app_name": "QuotePro"},
    "Medical": {"quote": "Create Estimate", "invoices": "Bills", "customers": "Patients", "app_name": "MedicalPro"},
    "Legal": {"quote": "Pro Forma", "invoices": "Bills", "customers": "Clients", "app_name": "LegalPro"},
    "Accounting": {"quote": "Create Estimate", "invoices": "Invoices", "customers": "Clients", "app_name": "AccountPro"},
    "Engineering": {"quote": "Project Quote", "invoices": "Invoices", "customers": "Clients", "app_name": "EngineerPro"},
}


# ---------- lookup ---------- #

def normalize_profession(profession: Optional[str]) -> str:
    wanted = (profession or "").strip().casefold()
    for tag in _SCHEMAS:
        if tag.casefold() == wanted:
            return tag
    if wanted:
        log.debug("unknown profession %r, using %s", profession, DEFAULT_PROFESSION)
    return DEFAULT_PROFESSION


def is_supported(profession: Optional[str]) -> bool:
    wanted = (profession or "").strip().casefold()
    return any(tag.casefold() == wanted for tag in _SCHEMAS)


def supported_professions() -> List[str]:
    return list(_SCHEMAS)


def get_schema(profession: Optional[str]) -> FieldSchema:
    return _SCHEMAS[normalize_profession(profession)]


def terminology(profession: Optional[str]) -> Dict[str, str]:
    return dict(_TERMINOLOGY[normalize_profession(profession)])


# ---------- validation ---------- #

def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _check_rule(rule: FieldRule, value: Any) -> Optional[str]:
    if rule.type in ("float", "int"):
        num = _to_number(value)
        if num is None:
            return f"{rule.label} must be a number"
        if rule.type == "int" and num != int(num):
            return f"{rule.label} must be a whole number"
        if rule.min_value is not None and num < rule.min_value:
            return f"{rule.label} must be >= {rule.min_value:g}"
        if rule.max_value is not None and num > rule.max_value:
            return f"{rule.label} must be <= {rule.max_value:g}"
        return None
    if rule.type == "bool":
        return None if isinstance(value, bool) else f"{rule.label} must be true or false"
    if rule.type == "date":
        if isinstance(value, date):
            return None
        try:
            date.fromisoformat(str(value))
        except ValueError:
            return f"{rule.label} must be a date (YYYY-MM-DD)"
        return None

    text = str(value)
    if rule.min_length is not None and len(text.strip()) < rule.min_length:
        return f"{rule.label} must be at least {rule.min_length} characters"
    if rule.pattern and not re.fullmatch(rule.pattern, text):
        return f"{rule.label} has an invalid format"
    if rule.choices and text not in rule.choices:
        return f"{rule.label} must be one of: {', '.join(rule.choices)}"
    return None


def validate_attributes(
    profession: Optional[str],
    attributes: Mapping[str, Any],
    *,
    strict: bool = False,
) -> List[str]:
    """
    Check profession attributes against the schema, field by field.

    Blank optional values are skipped. Unknown attributes are ignored. Returns
    the list of problems; with strict=True a missing required field raises.
    """
    schema = get_schema(profession)
    problems: List[str] = []
    missing: List[str] = []
    for rule in schema.rules:
        value = attributes.get(rule.name)
        if value is None or (isinstance(value, str) and not value.strip()):
            if rule.required:
                missing.append(f"{rule.label} is required")
            continue
        msg = _check_rule(rule, value)
        if msg:
            problems.append(msg)
    if strict and missing:
        raise ValidationError(f"{schema.profession} fields missing", missing)
    return missing + problems


# ---------- line items ---------- #

def new_line_item(profession: Optional[str] = None) -> LineItem:
    """Blank row: quantity 1, price 0, schema defaults for the profession."""
    schema = get_schema(profession)
    attrs = {r.name: r.default for r in schema.rules if r.default is not None}
    if schema.profession == "Medical":
        attrs.setdefault("treatment_date", date.today().isoformat())
    if schema.profession == "Accounting":
        attrs.setdefault("transaction_date", date.today().isoformat())
    return LineItem(profession=schema.profession, attributes=attrs).recalc()


def derive_unit_price(item: LineItem) -> LineItem:
    """
    Apply the profession cost formula to the row.

    Only the unit price (and quantity for Legal) is derived here; line_total
    always stays quantity * unit_price.
    """
    profession = normalize_profession(item.profession)
    a = item.attributes

    def num(name: str) -> float:
        return _to_number(a.get(name)) or 0.0

    if profession == "Engineering":
        item.unit_price = num("labor_hours") * num("labor_rate") + num("material_cost") + num("equipment_cost")
    elif profession == "Legal":
        item.quantity = num("time_spent")
        item.unit_price = num("hourly_rate")
    elif profession == "Accounting":
        rate = num("rate")
        vat_rate = num("vat_rate")
        a["vat_amount"] = item.quantity * rate * vat_rate / 100.0
        item.unit_price = rate * (1.0 + vat_rate / 100.0)
    return item.recalc()


_CORE_FIELDS = ("description", "quantity", "unit_price")


def update_line_item(item: LineItem, field: str, value: Any) -> LineItem:
    """Apply one edit to a row and keep its line total consistent."""
    schema = get_schema(item.profession)
    if field == "description":
        item.description = "" if value is None else str(value)
        return item
    if field == "quantity":
        item.set_quantity(value)
        if schema.profession == "Legal":
            item.attributes["time_spent"] = item.quantity
        elif schema.profession == "Accounting":
            return derive_unit_price(item)
        return item
    if field == "unit_price":
        item.set_unit_price(value)
        if schema.profession == "Legal":
            item.attributes["hourly_rate"] = item.unit_price
        elif schema.profession == "Accounting":
            # price typed directly: treat it as the net rate
            item.attributes["rate"] = item.unit_price
            return derive_unit_price(item)
        return item
    if field == "line_total":
        raise ValidationError("line_total is derived from quantity and unit_price")

    item.attributes[field] = value
    if field in schema.cost_fields:
        return derive_unit_price(item)
    return item


def remove_line_item(items: List[LineItem], item_id: str) -> List[LineItem]:
    return [it for it in items if it.id != item_id]


def validate_line_items(items: List[LineItem], *, strict: bool = False) -> Dict[str, List[str]]:
    """Problems per line item id; rows without problems are left out."""
    out: Dict[str, List[str]] = {}
    for it in items:
        problems = validate_attributes(it.profession, it.attributes, strict=strict)
        if problems:
            out[it.id] = problems
    return out
