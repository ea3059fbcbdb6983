from __future__ import annotations
import logging
import os
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from quotepro.errors import NotFound, ValidationError
from quotepro.models.customer import Customer
from quotepro.models.quote import ClientDetails
from quotepro.services.settings_service import data_dir
from quotepro.storage.repo import JsonRepository

log = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2
SEARCH_LIMIT = 10

CustomerLike = Union[Customer, Mapping[str, Any]]


def _to_customer(raw: CustomerLike) -> Customer:
    if isinstance(raw, Customer):
        customer = raw.model_copy(deep=True)
    else:
        try:
            customer = Customer.model_validate(dict(raw))
        except PydanticValidationError as e:
            raise ValidationError("invalid customer", [err["msg"] for err in e.errors()]) from e
    missing = [f"{name} is required" for name in ("name", "address") if not getattr(customer, name).strip()]
    if missing:
        raise ValidationError("invalid customer", missing)
    return customer


class CustomerService:
    def __init__(self, data_dir_path: Optional[str | os.PathLike] = None):
        base = data_dir(data_dir_path)
        self.repo = JsonRepository(base / "customers.json", entity_name="customer", key="id")

    def list_customers(self) -> List[Customer]:
        out: List[Customer] = []
        for d in self.repo.list_all():
            try:
                out.append(Customer.model_validate(d))
            except PydanticValidationError:
                # a broken record must not hide the others
                log.warning("skipping invalid customer record %s", d.get("id"))
        return sorted(out, key=lambda c: c.name.lower())

    def get_by_id(self, customer_id: str) -> Optional[Customer]:
        d = self.repo.get_by_id(customer_id)
        return Customer.model_validate(d) if d else None

    def get_customer(self, customer_id: str) -> Customer:
        c = self.get_by_id(customer_id)
        if c is None:
            raise NotFound(f"customer {customer_id} not found")
        return c

    def add_customer(self, customer: CustomerLike) -> Customer:
        c = _to_customer(customer)
        self.repo.add(c)
        log.info("customer %s added", c.name)
        return c

    def update_customer(self, customer_id: str, **changes: Any) -> Customer:
        stored = self.get_customer(customer_id)
        c = _to_customer({**stored.model_dump(), **changes, "id": stored.id, "created_at": stored.created_at})
        c.touch()
        self.repo.update(c)
        return c

    def delete_customer(self, customer_id: str) -> bool:
        return self.repo.delete(customer_id)

    def search_customers(self, query: str, limit: int = SEARCH_LIMIT) -> List[Customer]:
        """Case-insensitive match on name, email or company. Short queries give nothing."""
        q = (query or "").strip().lower()
        if len(q) < MIN_SEARCH_LENGTH:
            return []
        hits = [
            c for c in self.list_customers()
            if q in c.name.lower() or q in str(c.email).lower() or q in (c.company or "").lower()
        ]
        return hits[:limit]

    def client_details(self, customer_id: str) -> ClientDetails:
        return self.get_customer(customer_id).to_client_details()
