"""
Snapshot storage for computed benchmarks.

Two implementations of the same contract:
- InMemorySnapshotStore: process-local, used by tests and one-shot runs
- BenchmarkStore: JSON files, one per resource key in data/benchmarks/

Snapshots are superseded, never modified: ``put`` appends and
``get_latest`` returns the snapshot with the newest ``computed_at``.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..core.exceptions import StorageError
from ..core.models import BenchmarkSnapshot, ResourceKey

logger = logging.getLogger(__name__)


def read_json(path: Path, store: str) -> Any:
    """Load a JSON document; missing files read as None."""
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise StorageError(store, f"cannot read {path}: {e}") from e


def write_json(path: Path, data: Any, store: str) -> None:
    """Write a JSON document via a temp file so readers never see half a file."""
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
    except OSError as e:
        raise StorageError(store, f"cannot write {path}: {e}") from e


RecordT = TypeVar("RecordT", bound=BaseModel)


def parse_records(model: Type[RecordT], items: Any, path: Path, store: str) -> List[RecordT]:
    """Validate a list of stored records; damaged documents raise StorageError."""
    if not isinstance(items, list):
        raise StorageError(store, f"unexpected document in {path}: expected a list of records")
    try:
        return [model.model_validate(item) for item in items]
    except ValidationError as e:
        raise StorageError(store, f"invalid record in {path}: {e}") from e


def _latest(snapshots: List[BenchmarkSnapshot]) -> Optional[BenchmarkSnapshot]:
    if not snapshots:
        return None
    return max(snapshots, key=lambda s: s.computed_at)


class SnapshotStore(ABC):
    """Storage contract for benchmark snapshots."""

    @abstractmethod
    def put(self, resource_key: ResourceKey, snapshot: BenchmarkSnapshot) -> None:
        """Persist a new snapshot for a resource key."""

    @abstractmethod
    def get_latest(self, resource_key: ResourceKey) -> Optional[BenchmarkSnapshot]:
        """Most recent snapshot by computed_at, or None."""

    @abstractmethod
    def list_keys(self) -> List[ResourceKey]:
        """All resource keys with at least one snapshot."""


class InMemorySnapshotStore(SnapshotStore):
    """Process-local snapshot store."""

    def __init__(self) -> None:
        self._snapshots: Dict[ResourceKey, List[BenchmarkSnapshot]] = {}
        self._lock = threading.Lock()

    def put(self, resource_key: ResourceKey, snapshot: BenchmarkSnapshot) -> None:
        with self._lock:
            self._snapshots.setdefault(resource_key, []).append(snapshot)

    def get_latest(self, resource_key: ResourceKey) -> Optional[BenchmarkSnapshot]:
        with self._lock:
            return _latest(list(self._snapshots.get(resource_key, [])))

    def get_all(self, resource_key: ResourceKey) -> List[BenchmarkSnapshot]:
        with self._lock:
            return sorted(self._snapshots.get(resource_key, []), key=lambda s: s.computed_at)

    def list_keys(self) -> List[ResourceKey]:
        with self._lock:
            return list(self._snapshots)


class BenchmarkStore(SnapshotStore):
    """
    JSON-based storage for benchmark snapshots.

    Usage:
        store = BenchmarkStore(Path("data"))

        # Save snapshot
        store.put(key, snapshot)

        # Load latest
        latest = store.get_latest(key)

        # List all
        keys = store.list_keys()
    """

    STORE_NAME = "benchmarks"

    def __init__(self, data_dir: Optional[Path] = None, max_history: int = 50):
        """
        Initialize store with data directory.

        Args:
            data_dir: Root data directory; files go to {data_dir}/benchmarks/
            max_history: Snapshots kept per key (oldest are dropped)
        """
        if data_dir is None:
            data_dir = Path(__file__).parent.parent.parent / "data"

        self.data_dir = Path(data_dir) / self.STORE_NAME
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.max_history = max_history
        self._lock = threading.Lock()

    def _get_path(self, resource_key: ResourceKey) -> Path:
        """Get file path for a resource key."""
        return self.data_dir / f"{resource_key.storage_id}.json"

    def _load(self, resource_key: ResourceKey) -> List[BenchmarkSnapshot]:
        path = self._get_path(resource_key)
        data = read_json(path, self.STORE_NAME)
        if not data:
            return []
        if not isinstance(data, dict):
            raise StorageError(self.STORE_NAME, f"unexpected document in {path}: expected an object")
        return parse_records(BenchmarkSnapshot, data.get("snapshots", []), path, self.STORE_NAME)

    def put(self, resource_key: ResourceKey, snapshot: BenchmarkSnapshot) -> None:
        with self._lock:
            snapshots = self._load(resource_key)
            snapshots.append(snapshot)
            snapshots.sort(key=lambda s: s.computed_at)
            snapshots = snapshots[-self.max_history:]
            write_json(
                self._get_path(resource_key),
                {
                    "resource_key": resource_key.model_dump(mode="json"),
                    "snapshots": [s.model_dump(mode="json") for s in snapshots],
                },
                self.STORE_NAME,
            )
        logger.debug(f"Stored snapshot for {resource_key} ({len(snapshots)} kept)")

    def get_latest(self, resource_key: ResourceKey) -> Optional[BenchmarkSnapshot]:
        with self._lock:
            return _latest(self._load(resource_key))

    def get_all(self, resource_key: ResourceKey) -> List[BenchmarkSnapshot]:
        with self._lock:
            return self._load(resource_key)

    def exists(self, resource_key: ResourceKey) -> bool:
        """Check if any snapshot exists for the key."""
        return self._get_path(resource_key).exists()

    def delete(self, resource_key: ResourceKey) -> bool:
        """Delete all snapshots for a key. Returns True if deleted."""
        with self._lock:
            path = self._get_path(resource_key)
            if path.exists():
                path.unlink()
                return True
            return False

    def list_keys(self) -> List[ResourceKey]:
        keys = []
        for path in sorted(self.data_dir.glob("*.json")):
            data = read_json(path, self.STORE_NAME)
            if isinstance(data, dict) and "resource_key" in data:
                keys.extend(parse_records(ResourceKey, [data["resource_key"]], path, self.STORE_NAME))
        return keys

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of the latest snapshot for every stored key."""
        tokens = []
        for key in self.list_keys():
            latest = self.get_latest(key)
            if latest is None:
                continue
            tokens.append({
                "resource_key": str(key),
                "control_risk": latest.control_risk,
                "gini": latest.gini,
                "nakamoto": latest.nakamoto,
                "computed_at": latest.computed_at.isoformat(),
            })

        if not tokens:
            return {"count": 0, "tokens": []}

        return {
            "count": len(tokens),
            "tokens": tokens,
            "avg_control_risk": sum(t["control_risk"] for t in tokens) / len(tokens),
        }
