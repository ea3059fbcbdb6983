"""
Document numbering: prefix + sequential counter, one sequence for quotes and
one for invoices.

Numbers only move forward and are never reused. `issue()` reads and advances
the counter in one locked read-modify-write on settings.json, so two document
creations can never receive the same number. A number issued for a document
that then fails to persist is skipped, not handed out again.
"""
from __future__ import annotations
import logging
from typing import Optional

from quotepro.errors import NumberingConflict, NumberingExhausted
from quotepro.models.common import utcnow
from quotepro.models.settings import AppSettings, Sequence
from quotepro.services.settings_service import SettingsService

log = logging.getLogger(__name__)

MAX_SEQUENCE_NUMBER = 999_999_999

_SEQUENCES = ("quote", "invoice")


def _check_sequence(sequence: str) -> None:
    if sequence not in _SEQUENCES:
        raise ValueError(f"unknown numbering sequence {sequence!r}")


def format_number(prefix: str, number: int) -> str:
    return f"{prefix}{number}"


class NumberingService:
    def __init__(self, settings: SettingsService):
        self.settings = settings

    def peek(self, sequence: Sequence) -> str:
        """Number the next document would get. No side effect."""
        _check_sequence(sequence)
        s = self.settings.get()
        return format_number(s.prefix_for(sequence), s.counter_for(sequence))

    def current(self, sequence: Sequence) -> int:
        _check_sequence(sequence)
        return self.settings.get().counter_for(sequence)

    def advance(self, sequence: Sequence, expected: Optional[int] = None) -> int:
        """
        Increment the counter by exactly one and return the new value.

        With `expected`, the counter must still hold that value (optimistic
        check) otherwise NumberingConflict is raised and nothing changes.
        """
        _check_sequence(sequence)
        key = f"next_{sequence}_number"

        def bump(record: dict) -> dict:
            current = int(record.get(key, 1))
            if expected is not None and current != expected:
                raise NumberingConflict(f"{sequence} counter is {current}, expected {expected}")
            if current > MAX_SEQUENCE_NUMBER:
                raise NumberingExhausted(f"{sequence} numbering reached {MAX_SEQUENCE_NUMBER}")
            record[key] = current + 1
            record["updated_at"] = utcnow().isoformat()
            return record

        record = self.settings.repo.mutate(AppSettings().id, bump)
        return int(record[key])

    def issue(self, sequence: Sequence) -> str:
        """Atomically take the current number and advance the counter."""
        _check_sequence(sequence)
        key = f"next_{sequence}_number"
        issued: dict = {}

        def take(record: dict) -> dict:
            s = AppSettings.model_validate(record)
            current = s.counter_for(sequence)
            if current > MAX_SEQUENCE_NUMBER:
                raise NumberingExhausted(f"{sequence} numbering reached {MAX_SEQUENCE_NUMBER}")
            issued["number"] = format_number(s.prefix_for(sequence), current)
            record[key] = current + 1
            record["updated_at"] = utcnow().isoformat()
            return record

        self.settings.repo.mutate(AppSettings().id, take)
        log.info("issued %s number %s", sequence, issued["number"])
        return issued["number"]

    def configure(self, sequence: Sequence, prefix: Optional[str] = None,
                  next_number: Optional[int] = None) -> AppSettings:
        """Change prefix and/or next number. Affects only documents created afterwards."""
        _check_sequence(sequence)
        changes: dict = {}
        if prefix is not None:
            changes[f"{sequence}_prefix"] = prefix
        if next_number is not None:
            changes[f"next_{sequence}_number"] = next_number
        if not changes:
            return self.settings.get()
        return self.settings.update(**changes)
