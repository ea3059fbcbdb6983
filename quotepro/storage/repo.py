from __future__ import annotations

import glob
import json
import logging
import shutil
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel

from quotepro.errors import NotFound, PersistenceError

log = logging.getLogger(__name__)

# one lock per file, shared by every repository instance opened on it
_locks: Dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    with _locks_guard:
        return _locks.setdefault(str(path.resolve()), threading.RLock())


def _json_default(o: Any) -> Any:
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    raise TypeError(f"Object of type {o.__class__.__name__} is not JSON serializable")


class JsonRepository:
    """
    Generic JSON-file repository, one list of records per file.
    - Rotating backups (backup_enabled, backup_keep)
    - No write when the content did not change
    - mutate() gives an atomic read-modify-write on one record
    """

    def __init__(
        self,
        filepath: Union[str, Path],
        entity_name: str = "entity",
        key: str = "id",
        *,
        backup_enabled: bool = True,
        backup_keep: int = 5,
    ) -> None:
        self.filepath = Path(filepath)
        self.entity_name = entity_name
        self.key = key
        self._lock = _lock_for(self.filepath)
        self.backup_enabled = backup_enabled
        self.backup_keep = max(0, int(backup_keep))

        try:
            self.filepath.parent.mkdir(parents=True, exist_ok=True)
            if not self.filepath.exists():
                self._write_raw([])
        except OSError as e:
            raise PersistenceError(f"cannot initialise {self.filepath}: {e}") from e

    # ---------------- low level I/O ---------------- #

    def _read_raw(self) -> List[Dict[str, Any]]:
        try:
            with self.filepath.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as e:
            backup = self.filepath.with_suffix(".corrupt.json")
            try:
                shutil.copy2(self.filepath, backup)
            except OSError:
                log.exception("could not keep a copy of corrupt %s", self.filepath)
            raise PersistenceError(f"{self.filepath} is corrupt (copy kept in {backup.name})") from e
        except OSError as e:
            raise PersistenceError(f"cannot read {self.filepath}: {e}") from e
        if not isinstance(data, list):
            raise PersistenceError(f"{self.filepath} does not hold a list of {self.entity_name}")
        return data

    def _rotate_backups(self) -> None:
        if not self.backup_enabled or self.backup_keep <= 0:
            return
        pattern = str(self.filepath.with_suffix(".*.bak.json"))
        files = sorted(glob.glob(pattern))
        # keep the most recent ones
        if len(files) > self.backup_keep:
            for old in files[: len(files) - self.backup_keep]:
                Path(old).unlink(missing_ok=True)

    def _write_raw(self, data: Iterable[Mapping[str, Any]]) -> None:
        with self._lock:
            new_dump = json.dumps(list(data), ensure_ascii=False, indent=2, default=_json_default)

            if self.filepath.exists():
                cur = self.filepath.read_text(encoding="utf-8")
                if cur == new_dump:
                    return

                if self.backup_enabled:
                    ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
                    shutil.copy2(self.filepath, self.filepath.with_suffix(f".{ts}.bak.json"))
                    self._rotate_backups()

            # sibling file + atomic replace
            tmp = self.filepath.with_suffix(".tmp")
            tmp.write_text(new_dump, encoding="utf-8")
            tmp.replace(self.filepath)

    def _save(self, data: List[Dict[str, Any]]) -> None:
        try:
            self._write_raw(data)
        except OSError as e:
            log.exception("write failed for %s", self.filepath)
            raise PersistenceError(f"cannot write {self.entity_name} to {self.filepath}: {e}") from e

    # ---------------- helpers ---------------- #

    @staticmethod
    def _to_dict(item: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
        if isinstance(item, BaseModel):
            return item.model_dump(mode="json")
        return json.loads(json.dumps(dict(item), default=_json_default))

    def _index_of(self, data: List[Dict[str, Any]], obj_id: Any) -> int:
        for i, d in enumerate(data):
            if str(d.get(self.key)) == str(obj_id):
                return i
        return -1

    # ---------------- CRUD ---------------- #

    def list_all(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self._read_raw()

    def get_by_id(self, obj_id: Any) -> Optional[Dict[str, Any]]:
        with self._lock:
            data = self._read_raw()
        idx = self._index_of(data, obj_id)
        return data[idx] if idx >= 0 else None

    def add(self, item: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
        record = self._to_dict(item)
        k = self.key
        if not record.get(k):
            raise PersistenceError(f"Cannot add {self.entity_name} without '{k}'")
        with self._lock:
            data = self._read_raw()
            if self._index_of(data, record[k]) >= 0:
                raise PersistenceError(f"{self.entity_name} with {k}={record[k]} already exists")
            data.append(record)
            self._save(data)
        return record

    def update(self, item: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
        record = self._to_dict(item)
        obj_id = record.get(self.key)
        if not obj_id:
            raise PersistenceError(f"Cannot update {self.entity_name} without '{self.key}'")
        with self._lock:
            data = self._read_raw()
            idx = self._index_of(data, obj_id)
            if idx < 0:
                raise NotFound(f"{self.entity_name} with {self.key}={obj_id} not found")
            data[idx] = record
            self._save(data)
        return record

    def upsert(self, item: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
        with self._lock:
            try:
                return self.update(item)
            except NotFound:
                return self.add(item)

    def mutate(self, obj_id: Any, fn: Callable[[Dict[str, Any]], Dict[str, Any]]) -> Dict[str, Any]:
        """Read one record, apply fn and write it back without releasing the lock."""
        with self._lock:
            data = self._read_raw()
            idx = self._index_of(data, obj_id)
            if idx < 0:
                raise NotFound(f"{self.entity_name} with {self.key}={obj_id} not found")
            data[idx] = fn(dict(data[idx]))
            self._save(data)
            return data[idx]

    def delete(self, obj_id: Any) -> bool:
        with self._lock:
            data = self._read_raw()
            new_data = [d for d in data if str(d.get(self.key)) != str(obj_id)]
            changed = len(new_data) != len(data)
            if changed:
                self._save(new_data)
        return changed

    # ---------------- queries ---------------- #

    def find(self, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        return [r for r in self.list_all() if predicate(r)]

    def find_one(self, predicate: Callable[[Dict[str, Any]], bool]) -> Optional[Dict[str, Any]]:
        for r in self.list_all():
            if predicate(r):
                return r
        return None
