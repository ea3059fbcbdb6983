from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Any, Dict
from .common import gen_id

class LineItem(BaseModel):
    id: str = Field(default_factory=gen_id)
    description: str = ""
    quantity: float = 1.0
    unit_price: float = 0.0
    line_total: float = 0.0  # quantity * unit_price once recalc() ran

    # profession extension: tag + free attributes (patient_id, case_number, ...)
    profession: str = "General"
    attributes: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "ignore"

    def recalc(self) -> "LineItem":
        self.line_total = float(self.quantity) * float(self.unit_price)
        return self

    def set_quantity(self, value: float) -> "LineItem":
        self.quantity = float(value)
        return self.recalc()

    def set_unit_price(self, value: float) -> "LineItem":
        self.unit_price = float(value)
        return self.recalc()

    def has_content(self) -> bool:
        """A row counts toward totals as soon as any field carries a real value."""
        return bool(self.description.strip()) or self.quantity > 0 or self.unit_price > 0
