"""
Per-user snapshot cache with a time-to-live.

Entries are stored as JSON ``{"data": ..., "timestamp": epoch_ms, "ttl": ms}``
under ``<prefix>_<userId>_<key>``. A read past the TTL deletes the entry
and reports it absent. Storage problems are logged and never raised: the
cache is an accelerator, the API stays the source of truth.
"""
from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

APP_DATA = "app_data"
SUBSCRIPTION_STATUS = "subscription_status"
FLOCK_SUMMARY = "flock_summary"
SALES_SUMMARY = "sales_summary"


class MemoryStorage:
    def __init__(self):
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> Iterable[str]:
        return list(self._items)


class JsonFileStorage(MemoryStorage):
    """All entries in one JSON file, rewritten on every change."""

    def __init__(self, path: str | os.PathLike):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._items = json.loads(self.path.read_text(encoding="utf-8"))

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._items), encoding="utf-8")
        tmp.replace(self.path)

    def set_item(self, key: str, value: str) -> None:
        super().set_item(key, value)
        self._flush()

    def remove_item(self, key: str) -> None:
        if key in self._items:
            super().remove_item(key)
            self._flush()


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    timestamp: float  # epoch milliseconds
    ttl: float  # milliseconds


def _escape_user(user_id: str) -> str:
    # "_" separates key parts, so user "a" must never prefix user "a_b"
    return str(user_id).replace("%", "%25").replace("_", "%5F")


class SnapshotCache:
    def __init__(self, storage=None, prefix: str = "flock_cache", clock: Callable[[], float] = time.time):
        self.storage = storage if storage is not None else MemoryStorage()
        self.prefix = prefix
        self.clock = clock

    def _now_ms(self) -> float:
        return self.clock() * 1000

    def _namespace(self, user_id: Optional[str]) -> str:
        if user_id:
            return f"{self.prefix}_{_escape_user(user_id)}_"
        return f"{self.prefix}_"

    def _key(self, key: str, user_id: Optional[str]) -> str:
        return self._namespace(user_id) + key

    def set(self, key: str, value: Any, ttl_minutes: float = 5, user_id: Optional[str] = None) -> None:
        item = {"data": value, "timestamp": self._now_ms(), "ttl": ttl_minutes * 60 * 1000}
        try:
            self.storage.set_item(self._key(key, user_id), json.dumps(item, default=str))
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to cache %s: %s", key, exc)

    def get_entry(self, key: str, user_id: Optional[str] = None) -> Optional[CacheEntry]:
        try:
            raw = self.storage.get_item(self._key(key, user_id))
            if not raw:
                return None
            item = json.loads(raw)
            entry = CacheEntry(data=item["data"], timestamp=float(item["timestamp"]), ttl=float(item["ttl"]))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Failed to read cached %s: %s", key, exc)
            return None

        if self._now_ms() - entry.timestamp > entry.ttl:
            self.remove(key, user_id)
            return None
        return entry

    def get(self, key: str, user_id: Optional[str] = None) -> Any:
        entry = self.get_entry(key, user_id)
        return entry.data if entry else None

    def remove(self, key: str, user_id: Optional[str] = None) -> None:
        try:
            self.storage.remove_item(self._key(key, user_id))
        except OSError as exc:
            logger.warning("Failed to remove cached %s: %s", key, exc)

    def _remove_prefixed(self, prefix: str) -> int:
        removed = 0
        try:
            for k in list(self.storage.keys()):
                if k.startswith(prefix):
                    self.storage.remove_item(k)
                    removed += 1
        except OSError as exc:
            logger.warning("Failed to clear cache: %s", exc)
        return removed

    def clear_all(self, user_id: Optional[str] = None) -> int:
        """Remove every entry of one user, or of the whole cache when no user is given."""
        return self._remove_prefixed(self._namespace(user_id))

    def clear_all_users(self) -> int:
        return self._remove_prefixed(f"{self.prefix}_")

    def stats(self) -> dict[str, int]:
        total_entries = 0
        total_size = 0
        for k in self.storage.keys():
            if not k.startswith(f"{self.prefix}_"):
                continue
            value = self.storage.get_item(k) or ""
            total_entries += 1
            total_size += len(value.encode("utf-8"))
        return {"total_entries": total_entries, "total_size": total_size}
