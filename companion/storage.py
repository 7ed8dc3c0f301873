"""JSON file storage.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM — reads and writes go through plain helper
methods that load and dump JSON.

Directory layout:

    {base}/
      messages.json      ← {"next_id": N, "records": [ChatMessage, ...]}
      memories.json      ← {"next_id": N, "records": [Memory, ...]}
      gallery.json       ← {"next_id": N, "records": [GalleryItem, ...]}
      preferences.json   ← {key: value, ...}

Record tables are append-only: records are never edited, only whole tables
cleared. Ids are assigned on append and are not reused after a clear.

The process-wide store is set up with init_store() and fetched with
get_store(); using it before init raises StoreUnavailable.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Literal, TypeVar

from pydantic import BaseModel

from companion.models import ChatMessage, GalleryItem, Memory

logger = logging.getLogger(__name__)

TableName = Literal["messages", "memories", "gallery"]

TABLES: dict[str, type[BaseModel]] = {
    "messages": ChatMessage,
    "memories": Memory,
    "gallery": GalleryItem,
}
PREFERENCES = "preferences"

R = TypeVar("R", bound=BaseModel)


class StoreUnavailable(RuntimeError):
    """Raised when the store is used before it is initialised or after its directory vanished."""


class Store:
    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _path(self, name: str) -> Path:
        if not self._base.is_dir():
            raise StoreUnavailable(f"Store directory {self._base} is missing")
        return self._base / f"{name}.json"

    def _model(self, table: str) -> type[BaseModel]:
        try:
            return TABLES[table]
        except KeyError:
            raise ValueError(f"Unknown table {table!r}") from None

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.is_file():
            return default
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2))

    def _read_table(self, table: str) -> dict[str, Any]:
        self._model(table)
        return self._read_json(self._path(table), {"next_id": 1, "records": []})

    # ------------------------------------------------------------------
    # Record tables (append-only)
    # ------------------------------------------------------------------

    def append(self, table: TableName, record: R) -> int:
        """Append `record` and return its assigned id. The caller's object is not modified."""
        model = self._model(table)
        if not isinstance(record, model):
            raise TypeError(f"Table {table!r} stores {model.__name__}, got {type(record).__name__}")
        data = self._read_table(table)
        record_id = data["next_id"]
        stored = record.model_copy(update={"id": record_id})
        data["records"].append(stored.model_dump(mode="json"))
        data["next_id"] = record_id + 1
        self._write_json(self._path(table), data)
        logger.debug("store append table=%s id=%d", table, record_id)
        return record_id

    def query_recent(self, table: TableName, limit: int, offset: int = 0) -> list[Any]:
        """Newest first by (timestamp, id), skipping `offset` records."""
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")
        model = self._model(table)
        records = [model.model_validate(r) for r in self._read_table(table)["records"]]
        records.sort(key=lambda r: (r.timestamp, r.id), reverse=True)
        if limit <= 0:
            return []
        return records[offset:offset + limit]

    def count(self, table: TableName) -> int:
        return len(self._read_table(table)["records"])

    def clear_table(self, table: TableName) -> None:
        """Drop every record in `table`; the id sequence carries on."""
        data = self._read_table(table)
        data["records"] = []
        self._write_json(self._path(table), data)
        logger.info("store cleared table=%s", table)

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        prefs = self._read_json(self._path(PREFERENCES), {})
        return prefs.get(key, default)

    def set(self, key: str, value: Any) -> None:
        path = self._path(PREFERENCES)
        prefs = self._read_json(path, {})
        prefs[key] = value
        self._write_json(path, prefs)

    def clear_preferences(self) -> None:
        self._write_json(self._path(PREFERENCES), {})

    def clear_all(self) -> None:
        for table in TABLES:
            self.clear_table(table)  # type: ignore[arg-type]
        self.clear_preferences()


# ---------------------------------------------------------------------------
# Process-wide store
# ---------------------------------------------------------------------------

_store: Store | None = None


def init_store(data_dir: Path) -> Store:
    global _store
    _store = Store(data_dir)
    return _store


def get_store() -> Store:
    if _store is None:
        raise StoreUnavailable("Call init_store() before using storage")
    return _store


def close_store() -> None:
    global _store
    _store = None
