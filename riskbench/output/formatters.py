"""Output formatters for refresh outcomes, snapshots, jobs and history.

Provides two output formats:
- JSON: Machine-readable, complete data
- Table: Human-readable CLI output (rich)
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from io import StringIO
from typing import Any, Sequence

from pydantic import BaseModel
from rich.console import Console, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..core.models import (
    BenchmarkSnapshot,
    Failed,
    Job,
    JobStats,
    Queued,
    RefreshHistoryEntry,
    RefreshOutcome,
    Served,
)
from ..core.types import JobStatus, RefreshResult

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    JobStatus.QUEUED: "yellow",
    JobStatus.RUNNING: "cyan",
    JobStatus.SUCCESS: "green",
    JobStatus.ERROR: "red",
}


def _risk_style(control_risk: float) -> str:
    if control_risk >= 70:
        return "red"
    if control_risk >= 40:
        return "yellow"
    return "green"


def _ts(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S UTC") if value else "-"


class OutputFormatter(ABC):
    """Abstract base class for output formatters."""

    @abstractmethod
    def format_outcome(self, outcome: RefreshOutcome) -> str:
        """Format a refresh outcome."""

    @abstractmethod
    def format_snapshot(self, snapshot: BenchmarkSnapshot) -> str:
        """Format a benchmark snapshot."""

    @abstractmethod
    def format_job(self, job: Job) -> str:
        """Format a single job."""

    @abstractmethod
    def format_history(self, entries: Sequence[RefreshHistoryEntry]) -> str:
        """Format refresh history entries."""

    @abstractmethod
    def format_stats(self, stats: JobStats) -> str:
        """Format job statistics."""

    def format_to_file(self, text: str, filepath: str) -> None:
        """Write formatted output to a file."""
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(text)


class JSONFormatter(OutputFormatter):
    """Formats results as JSON."""

    def __init__(self, indent: int = 2):
        self.indent = indent

    def _serialize(self, obj: Any) -> Any:
        """Custom serialization for complex types."""
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        if isinstance(obj, Enum):
            return obj.value
        return str(obj)

    def _dump(self, data: Any) -> str:
        return json.dumps(data, default=self._serialize, indent=self.indent)

    def format_outcome(self, outcome: RefreshOutcome) -> str:
        return self._dump(outcome.model_dump(mode="json"))

    def format_snapshot(self, snapshot: BenchmarkSnapshot) -> str:
        return self._dump(snapshot.model_dump(mode="json"))

    def format_job(self, job: Job) -> str:
        return self._dump(job.model_dump(mode="json"))

    def format_history(self, entries: Sequence[RefreshHistoryEntry]) -> str:
        return self._dump([e.model_dump(mode="json") for e in entries])

    def format_stats(self, stats: JobStats) -> str:
        return self._dump(stats.model_dump(mode="json"))


class TableFormatter(OutputFormatter):
    """Formats results as human-readable tables for CLI output."""

    def __init__(self, color: bool = True, width: int = 100):
        """
        Initialize table formatter.

        Args:
            color: Emit ANSI colors (disable for files and tests)
            width: Maximum table width
        """
        self.color = color
        self.width = width

    def _render(self, *renderables: RenderableType) -> str:
        output = StringIO()
        console = Console(
            file=output,
            force_terminal=self.color,
            no_color=not self.color,
            highlight=False,
            width=self.width,
        )
        for renderable in renderables:
            console.print(renderable)
        return output.getvalue()

    def _snapshot_tables(self, snapshot: BenchmarkSnapshot) -> list[RenderableType]:
        risk_style = _risk_style(snapshot.control_risk)
        header = Panel(
            f"[bold]{snapshot.resource_key or 'unbound snapshot'}[/]\n"
            f"Control risk: [bold {risk_style}]{snapshot.control_risk:.2f}[/] / 100\n"
            f"[dim]Computed {_ts(snapshot.computed_at)} - calc v{snapshot.calc_version}[/]",
            title="Benchmark",
            expand=False,
        )

        metrics = Table(title="Concentration Metrics", show_header=False)
        metrics.add_column("Metric", style="cyan")
        metrics.add_column("Value", justify="right", style="green")
        metrics.add_row("Gini", f"{snapshot.gini:.4f}")
        metrics.add_row("HHI", f"{snapshot.hhi:,.1f}")
        metrics.add_row("Nakamoto", str(snapshot.nakamoto))
        metrics.add_row("Holders", f"{snapshot.holder_count:,}")
        metrics.add_row("Top 1", f"{snapshot.top1_pct:.2f}%")
        metrics.add_row("Top 3", f"{snapshot.top3_pct:.2f}%")
        metrics.add_row("Top 10", f"{snapshot.top10_pct:.2f}%")

        scores = Table(title="Decentralization Scores (higher = more decentralized)")
        scores.add_column("Dimension", style="cyan")
        scores.add_column("Score", justify="right", style="green")
        scores.add_row("Ownership", f"{snapshot.ownership:.2f}")
        scores.add_row("Liquidity", f"{snapshot.liquidity:.2f}")
        scores.add_row("Governance", f"{snapshot.governance:.2f}")

        return [header, metrics, scores]

    def format_outcome(self, outcome: RefreshOutcome) -> str:
        if isinstance(outcome, Served):
            source = "cache" if outcome.from_cache else "fresh computation"
            return self._render(
                f"[green]Served[/] from {source}",
                *self._snapshot_tables(outcome.snapshot),
            )
        if isinstance(outcome, Queued):
            return self._render(
                f"[yellow]Queued[/]: refresh already in progress as job {outcome.job_id}"
            )
        if isinstance(outcome, Failed):
            lines = [f"[red]Failed[/] ({outcome.reason.value}): {escape(outcome.message)}"]
            if outcome.job_id:
                lines.append(f"  Job: {outcome.job_id}")
            if outcome.retry_after is not None:
                lines.append(f"  Retry after: {outcome.retry_after:.1f}s")
            return self._render(*lines)
        raise TypeError(f"Unknown outcome type: {type(outcome).__name__}")

    def format_snapshot(self, snapshot: BenchmarkSnapshot) -> str:
        return self._render(*self._snapshot_tables(snapshot))

    def format_job(self, job: Job) -> str:
        table = Table(title=f"Job {job.id}", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        style = STATUS_STYLES.get(job.status, "")
        table.add_row("Resource", str(job.resource_key))
        table.add_row("Type", job.job_type)
        table.add_row("Status", f"[{style}]{job.status.value}[/]")
        table.add_row("Attempt", str(job.attempt))
        table.add_row("Created", _ts(job.created_at))
        table.add_row("Started", _ts(job.started_at))
        table.add_row("Finished", _ts(job.finished_at))
        if job.duration_seconds is not None:
            table.add_row("Duration", f"{job.duration_seconds:.2f}s")
        if job.snapshot_ref:
            table.add_row("Snapshot", escape(job.snapshot_ref))
        if job.error_reason:
            table.add_row("Reason", f"[red]{job.error_reason.value}[/]")
        if job.error_message:
            table.add_row("Error", escape(job.error_message))
        return self._render(table)

    def format_history(self, entries: Sequence[RefreshHistoryEntry]) -> str:
        if not entries:
            return self._render("[dim]No refresh history[/]")

        table = Table(title="Refresh History")
        table.add_column("Finished", style="dim")
        table.add_column("Job")
        table.add_column("Outcome")
        table.add_column("Duration", justify="right")
        table.add_column("API calls", justify="right")
        table.add_column("Error", style="red")

        for entry in entries:
            ok = entry.outcome == RefreshResult.SUCCESS
            outcome = f"[green]{entry.outcome.value}[/]" if ok else f"[red]{entry.outcome.value}[/]"
            error = ""
            if entry.error_reason:
                error = escape(f"{entry.error_reason.value}: {entry.error_message or ''}")
            table.add_row(
                _ts(entry.timestamp),
                entry.job_id[:12],
                outcome,
                f"{entry.duration_ms}ms",
                str(entry.api_calls_made),
                error,
            )
        return self._render(table)

    def format_stats(self, stats: JobStats) -> str:
        table = Table(title=f"Jobs ({stats.total} total)")
        table.add_column("Status", style="cyan")
        table.add_column("Count", justify="right")
        for status, count in stats.by_status.items():
            table.add_row(status, str(count))

        renderables: list[RenderableType] = [table]
        if stats.errors_by_reason:
            errors = Table(title="Failures by Reason")
            errors.add_column("Reason", style="red")
            errors.add_column("Count", justify="right")
            for reason, count in sorted(stats.errors_by_reason.items()):
                errors.add_row(reason, str(count))
            renderables.append(errors)

        if stats.avg_duration_seconds is not None:
            renderables.append(f"Average successful refresh: {stats.avg_duration_seconds:.2f}s")
        return self._render(*renderables)
