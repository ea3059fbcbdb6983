from __future__ import annotations
from pydantic import BaseModel, EmailStr, Field
from typing import List, Literal, Optional
from .common import gen_id, TimeStamped
from .line_item import LineItem

QuoteStatus = Literal["pending", "approved", "declined", "converted"]

class ClientDetails(BaseModel):
    name: str
    address: str
    email: EmailStr
    company: Optional[str] = None
    phone: Optional[str] = None
    comments: Optional[str] = None

    class Config:
        extra = "ignore"

class QuoteTotals(BaseModel):
    subtotal: float = 0.0
    vat: float = 0.0
    total: float = 0.0

class Quote(TimeStamped):
    id: str = Field(default_factory=gen_id)
    quote_number: Optional[str] = None
    status: QuoteStatus = "pending"

    profession: str = "General"
    currency: str = "ZAR"
    customer_id: Optional[str] = None
    client_details: ClientDetails
    line_items: List[LineItem] = Field(default_factory=list)

    tax_enabled: bool = True
    tax_rate: float = 0.15
    totals: QuoteTotals = Field(default_factory=QuoteTotals)

    notes: Optional[str] = None
    terms: Optional[str] = None

    @property
    def is_editable(self) -> bool:
        return self.status in ("pending", "approved")

    class Config:
        extra = "ignore"  # old keys in the JSON files are tolerated
