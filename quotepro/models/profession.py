from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Any, List, Literal, Optional, Tuple

FieldType = Literal["str", "float", "int", "bool", "date"]

class FieldRule(BaseModel):
    name: str
    label: str
    type: FieldType = "str"
    required: bool = False
    min_length: Optional[int] = None
    pattern: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    choices: Optional[Tuple[str, ...]] = None
    default: Any = None

class FieldSchema(BaseModel):
    profession: str
    label: str
    rules: List[FieldRule] = Field(default_factory=list)
    # attributes feeding the profession's unit price formula
    cost_fields: Tuple[str, ...] = ()

    def rule(self, name: str) -> Optional[FieldRule]:
        for f in self.rules:
            if f.name == name:
                return f
        return None

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.rules]

    @property
    def required_fields(self) -> List[str]:
        return [f.name for f in self.rules if f.required]

    @property
    def optional_fields(self) -> List[str]:
        return [f.name for f in self.rules if not f.required]
