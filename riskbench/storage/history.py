"""Refresh history - append-only log of finished refresh attempts."""

import logging
import threading
from pathlib import Path
from typing import List, Optional

from ..core.models import RefreshHistoryEntry, ResourceKey
from .json_store import parse_records, read_json, write_json

logger = logging.getLogger(__name__)


class RefreshHistory:
    """Append-only refresh log, optionally persisted to a JSON file.

    Entries are kept in append order; nothing is ever edited or removed.
    Appends re-read the file first so entries written by another process
    sharing it are kept.
    """

    STORE_NAME = "refresh_history"

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._entries: List[RefreshHistoryEntry] = []
        self._lock = threading.Lock()

        if self.path:
            self._entries = self._read_entries()

    def _read_entries(self) -> List[RefreshHistoryEntry]:
        data = read_json(self.path, self.STORE_NAME)
        if data is None:
            return []
        return parse_records(RefreshHistoryEntry, data, self.path, self.STORE_NAME)

    def append(self, entry: RefreshHistoryEntry) -> None:
        with self._lock:
            if self.path is None:
                self._entries.append(entry)
            else:
                entries = self._read_entries()
                entries.append(entry)
                write_json(
                    self.path,
                    [e.model_dump(mode="json") for e in entries],
                    self.STORE_NAME,
                )
                self._entries = entries
        logger.debug(f"History: {entry.resource_key} job={entry.job_id} outcome={entry.outcome.value}")

    def for_key(self, resource_key: ResourceKey, limit: int = 10) -> List[RefreshHistoryEntry]:
        """Entries for a resource key, newest first."""
        with self._lock:
            matching = [e for e in self._entries if e.resource_key == resource_key]
        matching.reverse()
        return matching[:limit]

    def all(self) -> List[RefreshHistoryEntry]:
        """Every entry in append order."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
