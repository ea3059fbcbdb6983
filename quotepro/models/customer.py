from __future__ import annotations
from pydantic import EmailStr, Field
from typing import Optional
from .common import gen_id, TimeStamped
from .quote import ClientDetails

class Customer(TimeStamped):
    id: str = Field(default_factory=gen_id)
    name: str
    address: str
    email: EmailStr
    company: Optional[str] = None
    phone: Optional[str] = None
    currency: str = "ZAR"
    payment_terms: int = Field(default=30, ge=0)
    credit_limit: Optional[float] = None
    notes: Optional[str] = None

    class Config:
        extra = "ignore"

    def to_client_details(self) -> ClientDetails:
        """Snapshot used on a quote; later edits of the customer do not reach it."""
        return ClientDetails(
            name=self.name,
            address=self.address,
            email=self.email,
            company=self.company,
            phone=self.phone,
        )
