from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from quotepro.errors import (
    InvalidTransition,
    NotFound,
    NumberingConflict,
    PreconditionFailed,
    ValidationError,
)
from quotepro.models.line_item import LineItem
from quotepro.models.quote import ClientDetails, Quote, QuoteStatus
from quotepro.services import professions
from quotepro.services.numbering_service import NumberingService
from quotepro.services.settings_service import SettingsService, data_dir
from quotepro.services.totals import compute_totals, recalc_items, valid_items
from quotepro.storage.repo import JsonRepository

log = logging.getLogger(__name__)

LineItemLike = Union[LineItem, Mapping[str, Any]]
ClientLike = Union[ClientDetails, Mapping[str, Any]]


# ---------- lifecycle ---------- #

QUOTE_TRANSITIONS: Dict[str, tuple] = {
    "pending": ("approved", "declined"),
    "approved": ("converted",),
    "declined": (),
    "converted": (),
}


def can_transition(src: str, dst: str) -> bool:
    return dst in QUOTE_TRANSITIONS.get(src, ())


def transition_quote(quote: Quote, dst: QuoteStatus) -> Quote:
    """Move the quote along one lifecycle edge; the quote is untouched on refusal."""
    if not can_transition(quote.status, dst):
        raise InvalidTransition("quote", quote.status, dst)
    quote.status = dst
    quote.touch()
    return quote


# ---------- helpers ---------- #

def _pydantic_messages(e: PydanticValidationError) -> List[str]:
    out = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        out.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return out


def to_line_item(raw: LineItemLike, profession: Optional[str] = None) -> LineItem:
    if isinstance(raw, LineItem):
        item = raw.model_copy(deep=True)
    else:
        d = dict(raw)
        # accept the quantity/rate/amount naming of the profession editors
        if "unit_price" not in d and "rate" in d:
            d["unit_price"] = d["rate"]
        try:
            item = LineItem.model_validate(d)
        except PydanticValidationError as e:
            raise ValidationError("invalid line item", _pydantic_messages(e)) from e
    if profession and item.profession == professions.DEFAULT_PROFESSION:
        item.profession = professions.normalize_profession(profession)
    return item.recalc()


def to_client_details(raw: ClientLike) -> ClientDetails:
    if isinstance(raw, ClientDetails):
        client = raw.model_copy(deep=True)
    else:
        try:
            client = ClientDetails.model_validate(dict(raw))
        except PydanticValidationError as e:
            raise ValidationError("invalid client details", _pydantic_messages(e)) from e
    missing = [f"{name} is required" for name in ("name", "address") if not getattr(client, name).strip()]
    if missing:
        raise ValidationError("invalid client details", missing)
    return client


def _number_tail(number: str, prefix: str) -> Optional[int]:
    if not number.startswith(prefix):
        return None
    m = re.fullmatch(r"(\d+)", number[len(prefix):])
    return int(m.group(1)) if m else None


# ---------- service ---------- #

class QuoteService:
    def __init__(
        self,
        data_dir_path: Optional[str | os.PathLike] = None,
        *,
        settings: Optional[SettingsService] = None,
        numbering: Optional[NumberingService] = None,
    ) -> None:
        base = data_dir(data_dir_path)
        self.repo = JsonRepository(base / "quotes.json", entity_name="quote", key="id")
        self.settings = settings or SettingsService(base)
        self.numbering = numbering or NumberingService(self.settings)

    # ----- totals ----- #

    @staticmethod
    def recalc_totals(quote: Quote) -> Quote:
        """Re-derive every line total then the document totals."""
        quote.line_items = recalc_items(quote.line_items)
        quote.totals = compute_totals(quote.line_items, quote.tax_enabled, quote.tax_rate)
        return quote

    @staticmethod
    def _check_committable(quote: Quote) -> None:
        # required profession fields block the save, other problems do not
        for it in valid_items(quote.line_items):
            problems = professions.validate_attributes(it.profession, it.attributes, strict=True)
            if problems:
                log.debug("line %s: %s", it.id, "; ".join(problems))

    # ----- hydration ----- #

    @staticmethod
    def _hydrate(d: Dict[str, Any]) -> Quote:
        return Quote.model_validate(d)

    def list_quotes(self) -> List[Quote]:
        quotes = [self._hydrate(d) for d in self.repo.list_all()]
        return sorted(quotes, key=lambda q: q.created_at, reverse=True)

    def list_by_status(self, status: QuoteStatus) -> List[Quote]:
        return [q for q in self.list_quotes() if q.status == status]

    def get_by_id(self, quote_id: str) -> Optional[Quote]:
        d = self.repo.get_by_id(quote_id)
        return self._hydrate(d) if d else None

    def get_quote(self, quote_id: str) -> Quote:
        q = self.get_by_id(quote_id)
        if q is None:
            raise NotFound(f"quote {quote_id} not found")
        return q

    def find_by_number(self, quote_number: str) -> Optional[Quote]:
        d = self.repo.find_one(lambda x: x.get("quote_number") == quote_number)
        return self._hydrate(d) if d else None

    # ----- CRUD ----- #

    def build_quote(
        self,
        client_details: ClientLike,
        line_items: Iterable[LineItemLike] = (),
        *,
        profession: Optional[str] = None,
        tax_enabled: Optional[bool] = None,
        tax_rate: Optional[float] = None,
        currency: Optional[str] = None,
        notes: Optional[str] = None,
        terms: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Quote:
        """Unsaved quote with totals computed; no number is taken."""
        s = self.settings.get()
        prof = professions.normalize_profession(profession or s.profession)
        quote = Quote(
            client_details=to_client_details(client_details),
            line_items=[to_line_item(it, prof) for it in line_items],
            profession=prof,
            tax_enabled=s.tax_enabled if tax_enabled is None else tax_enabled,
            tax_rate=s.tax_rate if tax_rate is None else tax_rate,
            currency=currency or s.currency,
            customer_id=customer_id,
            notes=notes,
            terms=terms if terms is not None else (s.terms_and_conditions or None),
        )
        return self.recalc_totals(quote)

    def create_quote(self, client_details: ClientLike, line_items: Iterable[LineItemLike] = (), **kwargs) -> Quote:
        quote = self.build_quote(client_details, line_items, **kwargs)
        return self.add_quote(quote)

    def add_quote(self, quote: Quote) -> Quote:
        """Persist a new quote as pending under a freshly issued number."""
        q = self.recalc_totals(quote.model_copy(deep=True))
        q.client_details = to_client_details(q.client_details)
        self._check_committable(q)
        q.status = "pending"

        number = self.numbering.issue("quote")
        if self.find_by_number(number) is not None:
            raise NumberingConflict(f"quote number {number} already used")
        q.quote_number = number
        q.touch()
        self.repo.add(q)
        log.info("quote %s created (%s, total %.2f)", number, q.profession, q.totals.total)
        return q

    def update_quote(self, quote: Quote) -> Quote:
        """Save edits; totals are recomputed, number and status stay as stored."""
        stored = self.get_quote(quote.id)
        if not stored.is_editable:
            raise PreconditionFailed(f"quote {stored.quote_number} is {stored.status} and can no longer be edited")
        if quote.quote_number and quote.quote_number != stored.quote_number:
            raise ValidationError("quote_number is immutable", [f"stored {stored.quote_number}"])
        if quote.status != stored.status:
            raise InvalidTransition("quote", stored.status, quote.status)

        q = self.recalc_totals(quote.model_copy(deep=True))
        q.client_details = to_client_details(q.client_details)
        self._check_committable(q)
        q.quote_number = stored.quote_number
        q.created_at = stored.created_at
        q.updated_at = max(q.updated_at, stored.updated_at)
        q.touch()
        self.repo.update(q)
        return q

    def delete_quote(self, quote_id: str) -> bool:
        return self.repo.delete(quote_id)

    # ----- status ----- #

    def _set_status(self, quote_id: str, status: QuoteStatus) -> Quote:
        q = transition_quote(self.get_quote(quote_id), status)
        self.repo.update(q)
        log.info("quote %s -> %s", q.quote_number, status)
        return q

    def change_status(self, quote_id: str, status: QuoteStatus) -> Quote:
        if status == "converted":
            raise PreconditionFailed("a quote becomes converted only through invoice conversion")
        return self._set_status(quote_id, status)

    def approve_quote(self, quote_id: str) -> Quote:
        return self.change_status(quote_id, "approved")

    def decline_quote(self, quote_id: str) -> Quote:
        return self.change_status(quote_id, "declined")

    def mark_converted(self, quote_id: str) -> Quote:
        return self._set_status(quote_id, "converted")

    # ----- bulk import ----- #

    def import_quotes(self, records: Iterable[Mapping[str, Any]]) -> List[Quote]:
        """
        Restore quotes from a backup export. Each record keeps its number and
        status; totals are recomputed. The quote counter is moved past the
        highest imported number of the current prefix.
        """
        prepared: List[Quote] = []
        seen = {d.get("quote_number") for d in self.repo.list_all()}
        for raw in records:
            try:
                q = Quote.model_validate(dict(raw))
            except PydanticValidationError as e:
                raise ValidationError("invalid quote in import", _pydantic_messages(e)) from e
            if not q.quote_number:
                raise ValidationError("invalid quote in import", ["quote_number is required"])
            if q.quote_number in seen:
                raise NumberingConflict(f"quote number {q.quote_number} already used")
            seen.add(q.quote_number)
            prepared.append(self.recalc_totals(q))

        for q in prepared:
            self.repo.add(q)

        s = self.settings.get()
        tails = [_number_tail(q.quote_number or "", s.quote_prefix) for q in prepared]
        highest = max((t for t in tails if t is not None), default=0)
        if highest >= s.next_quote_number:
            self.settings.update(next_quote_number=highest + 1)
        log.info("imported %d quotes", len(prepared))
        return prepared
