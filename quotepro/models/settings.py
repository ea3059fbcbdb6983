from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal, Optional
from .common import utcnow
from datetime import datetime

Sequence = Literal["quote", "invoice"]

class CompanyProfile(BaseModel):
    company_name: str = "My Company"
    address: str = ""
    email: str = ""
    phone: Optional[str] = None
    logo_url: Optional[str] = None
    registration_number: Optional[str] = None
    tax_number: Optional[str] = None

class AppSettings(BaseModel):
    """Per-account configuration, including the two numbering sequences."""
    id: str = "default"

    quote_prefix: str = "QUO-"
    next_quote_number: int = Field(default=1, ge=1)
    invoice_prefix: str = "INV-"
    next_invoice_number: int = Field(default=1, ge=1)

    tax_enabled: bool = True
    tax_rate: float = 0.15
    currency: str = "ZAR"
    payment_term_days: int = Field(default=30, ge=0)
    profession: str = "General"

    terms_and_conditions: str = ""
    pdf_template: str = "standard"
    wkhtmltopdf_path: Optional[str] = None
    company: CompanyProfile = Field(default_factory=CompanyProfile)

    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        extra = "ignore"

    def prefix_for(self, sequence: Sequence) -> str:
        return self.quote_prefix if sequence == "quote" else self.invoice_prefix

    def counter_for(self, sequence: Sequence) -> int:
        return self.next_quote_number if sequence == "quote" else self.next_invoice_number
