"""Storage module for snapshots, jobs and refresh history."""

from .history import RefreshHistory
from .job_ledger import JobLedger
from .json_store import BenchmarkStore, InMemorySnapshotStore, SnapshotStore

__all__ = [
    "BenchmarkStore",
    "InMemorySnapshotStore",
    "SnapshotStore",
    "JobLedger",
    "RefreshHistory",
]
