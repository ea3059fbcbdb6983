from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from quotepro.errors import ValidationError
from quotepro.models.common import utcnow
from quotepro.models.settings import AppSettings
from quotepro.storage.repo import JsonRepository

log = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parents[2]


def data_dir(explicit: Optional[str | os.PathLike] = None) -> Path:
    """Explicit path, then QUOTEPRO_DATA_DIR, then ./data next to the package."""
    if explicit:
        return Path(explicit)
    env = os.environ.get("QUOTEPRO_DATA_DIR")
    if env:
        return Path(env)
    return ROOT_DIR / "data"


class SettingsService:
    """AppSettings of the account, kept as a single record in settings.json."""

    def __init__(self, data_dir_path: Optional[str | os.PathLike] = None):
        base = data_dir(data_dir_path)
        self.repo = JsonRepository(base / "settings.json", entity_name="settings", key="id")
        if self.repo.get_by_id(AppSettings().id) is None:
            self.repo.add(AppSettings())

    def get(self) -> AppSettings:
        return AppSettings.model_validate(self.repo.get_by_id(AppSettings().id))

    def update(self, **changes: Any) -> AppSettings:
        """
        Change configuration values. Numbering counters may only move forward;
        already issued numbers are never touched.
        """
        def apply(record: dict) -> dict:
            current = AppSettings.model_validate(record)
            for seq in ("quote", "invoice"):
                key = f"next_{seq}_number"
                if key in changes and int(changes[key]) < current.counter_for(seq):
                    raise ValidationError(
                        f"{key} cannot go backwards",
                        [f"{key} is {current.counter_for(seq)}, got {changes[key]}"],
                    )
            try:
                updated = AppSettings.model_validate({**current.model_dump(), **changes, "updated_at": utcnow()})
            except PydanticValidationError as e:
                raise ValidationError("invalid settings", [err["msg"] for err in e.errors()]) from e
            return updated.model_dump(mode="json")

        record = self.repo.mutate(AppSettings().id, apply)
        log.info("settings updated: %s", ", ".join(sorted(changes)))
        return AppSettings.model_validate(record)
