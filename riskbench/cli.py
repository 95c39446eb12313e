"""CLI entry point for the token risk benchmark.

Usage:
    riskbench refresh 1 0xTokenAddress
    riskbench refresh 1 0xTokenAddress --force --output json
    riskbench show 1 0xTokenAddress
    riskbench job <JOB_ID>
    riskbench history 1 0xTokenAddress --limit 5
    riskbench stats
"""

import dataclasses
import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .core.config import RefreshSettings
from .core.exceptions import RiskBenchError
from .core.models import Failed, ResourceKey
from .orchestrator import RefreshOrchestrator
from .output.formatters import JSONFormatter, OutputFormatter, TableFormatter

# Initialize app
app = typer.Typer(
    name="riskbench",
    help="Token concentration-risk benchmark with coordinated refreshes",
    add_completion=False,
)

console = Console()

DEFAULT_DATA_DIR = Path("data")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_time=False, show_path=False)],
    )


def _formatter(output: str) -> OutputFormatter:
    output_lower = output.lower()
    if output_lower == "json":
        return JSONFormatter()
    if output_lower == "table":
        return TableFormatter(color=console.is_terminal)
    console.print(f"[red]Invalid output format: {output}. Use table or json[/]")
    raise typer.Exit(1)


def _emit(formatted: str) -> None:
    # Already rendered; printing through rich would re-parse it
    print(formatted.rstrip("\n"))


def _build_orchestrator(
    env_file: Optional[Path],
    data_dir: Optional[Path],
    manual_dir: Optional[Path] = None,
) -> RefreshOrchestrator:
    try:
        settings = RefreshSettings.load(env_file)
        settings = dataclasses.replace(
            settings,
            data_dir=data_dir or settings.data_dir or DEFAULT_DATA_DIR,
            manual_data_dir=manual_dir or settings.manual_data_dir,
        )
        return RefreshOrchestrator.from_settings(settings)
    except RiskBenchError as e:
        _fail(e)


def _fail(error: RiskBenchError) -> NoReturn:
    console.print(f"[red]Error: {escape(error.message)}[/]")
    raise typer.Exit(1)


def _resource_key(chain_id: str, address: str, kind: str) -> ResourceKey:
    try:
        return ResourceKey(chain_id=chain_id, contract_address=address, resource_kind=kind)
    except ValueError as e:
        console.print(f"[red]Invalid resource key: {escape(str(e))}[/]")
        raise typer.Exit(1)


ENV_FILE_OPTION = typer.Option(None, "--env-file", help="Path to .env file")
DATA_DIR_OPTION = typer.Option(
    None, "--data-dir", help="Directory for snapshots, jobs and history (default: ./data)"
)
KIND_OPTION = typer.Option("benchmark", "--kind", "-k", help="Resource kind")
OUTPUT_OPTION = typer.Option("table", "--output", "-o", help="Output format: table, json")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable verbose logging")


@app.command()
def refresh(
    chain_id: str = typer.Argument(..., help="Chain id (e.g., 1 for Ethereum)"),
    address: str = typer.Argument(..., help="Token contract address"),
    kind: str = KIND_OPTION,
    force: bool = typer.Option(False, "--force", "-f", help="Recompute even if a fresh snapshot exists"),
    caller: Optional[str] = typer.Option(None, "--caller", help="Caller id for rate limiting"),
    plan: Optional[str] = typer.Option(None, "--plan", help="Caller plan: free, pro"),
    manual_dir: Optional[Path] = typer.Option(
        None, "--manual-dir", "-m", help="Directory with manual token data files"
    ),
    output: str = OUTPUT_OPTION,
    save: Optional[Path] = typer.Option(None, "--save", "-s", help="Save output to file"),
    data_dir: Optional[Path] = DATA_DIR_OPTION,
    env_file: Optional[Path] = ENV_FILE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """
    Refresh the benchmark for a token, serving a fresh cached snapshot when possible.

    Examples:
        riskbench refresh 1 0x1f9840a85d5af5bf1d1762f925bdaddc4201f984
        riskbench refresh 1 0x1f98... --force --output json
    """
    setup_logging(verbose)
    formatter = _formatter(output)
    key = _resource_key(chain_id, address, kind)
    orchestrator = _build_orchestrator(env_file, data_dir, manual_dir)

    outcome = orchestrator.request_refresh(key, force=force, caller=caller, plan=plan)
    formatted = formatter.format_outcome(outcome)
    _emit(formatted)

    if save:
        save.parent.mkdir(parents=True, exist_ok=True)
        save_path = save.with_suffix(".json" if output.lower() == "json" else ".txt")
        text = formatted if output.lower() == "json" else TableFormatter(color=False).format_outcome(outcome)
        formatter.format_to_file(text, str(save_path))
        console.print(f"[green]Saved to {save_path}[/]")

    if isinstance(outcome, Failed):
        raise typer.Exit(1)


@app.command()
def show(
    chain_id: str = typer.Argument(..., help="Chain id"),
    address: str = typer.Argument(..., help="Token contract address"),
    kind: str = KIND_OPTION,
    output: str = OUTPUT_OPTION,
    data_dir: Optional[Path] = DATA_DIR_OPTION,
    env_file: Optional[Path] = ENV_FILE_OPTION,
) -> None:
    """Show the latest stored benchmark for a token."""
    formatter = _formatter(output)
    key = _resource_key(chain_id, address, kind)
    orchestrator = _build_orchestrator(env_file, data_dir)

    try:
        snapshot = orchestrator.get_latest_benchmark(key)
    except RiskBenchError as e:
        _fail(e)
    if snapshot is None:
        console.print(f"[yellow]No benchmark stored for {key}[/]")
        raise typer.Exit(1)

    _emit(formatter.format_snapshot(snapshot))


@app.command()
def job(
    job_id: str = typer.Argument(..., help="Job id"),
    output: str = OUTPUT_OPTION,
    data_dir: Optional[Path] = DATA_DIR_OPTION,
    env_file: Optional[Path] = ENV_FILE_OPTION,
) -> None:
    """Show the status of a refresh job."""
    formatter = _formatter(output)
    orchestrator = _build_orchestrator(env_file, data_dir)

    found = orchestrator.get_job_status(job_id)
    if found is None:
        console.print(f"[red]Job not found: {job_id}[/]")
        raise typer.Exit(1)

    _emit(formatter.format_job(found))


@app.command()
def history(
    chain_id: str = typer.Argument(..., help="Chain id"),
    address: str = typer.Argument(..., help="Token contract address"),
    kind: str = KIND_OPTION,
    limit: int = typer.Option(10, "--limit", "-n", help="Number of entries"),
    output: str = OUTPUT_OPTION,
    data_dir: Optional[Path] = DATA_DIR_OPTION,
    env_file: Optional[Path] = ENV_FILE_OPTION,
) -> None:
    """Show recent refresh attempts for a token, newest first."""
    formatter = _formatter(output)
    key = _resource_key(chain_id, address, kind)
    orchestrator = _build_orchestrator(env_file, data_dir)

    _emit(formatter.format_history(orchestrator.get_refresh_history(key, limit=limit)))


@app.command()
def stats(
    output: str = OUTPUT_OPTION,
    data_dir: Optional[Path] = DATA_DIR_OPTION,
    env_file: Optional[Path] = ENV_FILE_OPTION,
) -> None:
    """Show job counts by status and failure reason."""
    formatter = _formatter(output)
    orchestrator = _build_orchestrator(env_file, data_dir)

    _emit(formatter.format_stats(orchestrator.get_job_stats()))


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    console.print(f"Token Risk Benchmark v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
