"""CLI entry point for pillarflow."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import uuid
from pathlib import Path
from typing import Annotated, Any

import typer
import yaml
from rich import print as rprint
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from pillarflow.config import PillarflowConfig, configure_logging, load_config, resolve_config
from pillarflow.config.loader import DEFAULT_CONFIG_TEMPLATE, PROJECT_CONFIG
from pillarflow.freshness.checker import (
    check_document_freshness,
    check_staleness,
    document_freshness_report,
    mark_stale_documents,
)
from pillarflow.freshness.classifier import FreshnessStatus
from pillarflow.freshness.propagator import invalidate_stages
from pillarflow.interfaces.persistence import RecordNotFoundError
from pillarflow.metrics.models import AlertType
from pillarflow.metrics.monitor import evaluate_thresholds, get_thresholds, new_threshold, run_evaluation_cycle
from pillarflow.orchestration.hooks import StaticBudgetTierGenerator
from pillarflow.orchestration.orchestrator import StageCompletionOrchestrator
from pillarflow.pipeline.constants import STAGE_TITLES, StageType
from pillarflow.pipeline.models import DerivedDocument, Stage, StageStatus, Strategy, utcnow
from pillarflow.pipeline.phases import advance_phase, revert_phase, validate_forward, validate_reversion
from pillarflow.storage.sqlite_store import SQLiteStore

app = typer.Typer(
    name="pillarflow",
    help="Strategy workflow engine: phases, staleness, and metric alerts.",
)

phase_app = typer.Typer(help="Inspect and move a strategy's phase.")
app.add_typer(phase_app, name="phase")

metrics_app = typer.Typer(help="Manage KPI thresholds and alerts.")
app.add_typer(metrics_app, name="metrics")

config_app = typer.Typer(help="Manage pillarflow configuration.")
app.add_typer(config_app, name="config")

# Global state
_config: PillarflowConfig | None = None
_config_source: Path | None = None


def _get_config() -> PillarflowConfig:
    if _config is None:
        return load_config()
    return _config


def _get_store() -> SQLiteStore:
    return SQLiteStore(db_path=_get_config().storage.path)


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Path to pillarflow.yaml")
    ] = None,
) -> None:
    """Global options."""
    global _config, _config_source
    try:
        _config, _config_source = resolve_config(config)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    configure_logging(_config)


def _parse_stage_types(raw: list[str]) -> list[StageType]:
    """Accept "R T" or "R,T" style stage lists."""
    names = [part.strip().upper() for item in raw for part in item.split(",") if part.strip()]
    try:
        return [StageType(n) for n in names]
    except ValueError:
        valid = ", ".join(t.value for t in StageType)
        rprint(f"[red]Error:[/red] Unknown stage type in {names}. Valid: {valid}")
        raise typer.Exit(1)


def _load_strategy(store: SQLiteStore, strategy_id: str) -> Strategy:
    try:
        return store.get_strategy(strategy_id)
    except RecordNotFoundError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _stage_of(store: SQLiteStore, strategy_id: str, stage_type: StageType) -> Stage:
    for stage in store.list_stages(strategy_id):
        if stage.type is stage_type:
            return stage
    rprint(f"[red]Error:[/red] Strategy {strategy_id} has no stage {stage_type.value}")
    raise typer.Exit(1)


def _read_content(path: Path | None) -> dict[str, Any]:
    if path is None:
        return {}
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        rprint(f"[red]Error:[/red] Could not read content from '{path}': {e}")
        raise typer.Exit(1)
    if not isinstance(data, dict):
        rprint("[red]Error:[/red] Content must be a JSON object")
        raise typer.Exit(1)
    return data


_FRESHNESS_STYLE = {
    FreshnessStatus.FRESH: "green",
    FreshnessStatus.AGING: "yellow",
    FreshnessStatus.STALE: "red",
}


# ---------------------------------------------------------------------------
# Strategy commands
# ---------------------------------------------------------------------------


@app.command()
def create(
    name: str = typer.Argument(..., help="Brand or strategy name"),
    vertical: str | None = typer.Option(None, "--vertical", help="Business vertical (e.g. fintech)"),
    strategy_id: str | None = typer.Option(None, "--id", help="Explicit strategy id"),
) -> None:
    """Create a strategy with all eight stages pending."""
    store = _get_store()
    strategy = Strategy(id=strategy_id or str(uuid.uuid4()), name=name, vertical=vertical)
    try:
        store.create_strategy(strategy)
    except sqlite3.IntegrityError as e:
        rprint(f"[red]Error:[/red] Could not create strategy: {e}")
        raise typer.Exit(1)
    rprint(f"[green]Created[/green] strategy {strategy.id} ({name})")


@app.command()
def status(
    strategy_id: str = typer.Argument(..., help="Strategy id"),
) -> None:
    """Show a strategy's phase, lifecycle status and stages."""
    store = _get_store()
    strategy = _load_strategy(store, strategy_id)

    panel_text = (
        f"[bold]{strategy.name or strategy.id}[/bold]\n\n"
        f"[dim]Phase:[/dim]     {strategy.phase}\n"
        f"[dim]Status:[/dim]    {strategy.status.value}\n"
        f"[dim]Vertical:[/dim]  {strategy.vertical or '-'}\n"
        f"[dim]Completed:[/dim] {strategy.completed_at.isoformat() if strategy.completed_at else '-'}"
    )
    rprint(Panel(panel_text, title="Strategy", border_style="blue"))

    table = Table(title="Stages")
    table.add_column("type", style="cyan")
    table.add_column("title")
    table.add_column("status", style="green")
    table.add_column("generated", style="dim")
    table.add_column("stale")
    for stage in store.list_stages(strategy_id):
        table.add_row(
            stage.type.value,
            STAGE_TITLES[stage.type],
            stage.status.value,
            stage.generated_at.isoformat() if stage.generated_at else "-",
            f"[red]{stage.stale_reason}[/red]" if stage.is_stale else "-",
        )
    rprint(table)


@app.command()
def complete(
    strategy_id: str = typer.Argument(..., help="Strategy id"),
    stage: str = typer.Argument(..., help="Stage type (A, D, V, E, R, T, I, S)"),
    content_file: Path | None = typer.Option(None, "--content", help="JSON file with the stage content"),
) -> None:
    """Record a stage's generated content and run the post-generation sequence."""
    parsed = _parse_stage_types([stage])
    if len(parsed) != 1:
        rprint("[red]Error:[/red] Give exactly one stage type")
        raise typer.Exit(1)
    stage_type = parsed[0]
    store = _get_store()
    _load_strategy(store, strategy_id)
    content = _read_content(content_file)

    target = _stage_of(store, strategy_id, stage_type)
    store.record_generation(target.id, content, status=StageStatus.complete)

    orchestrator = StageCompletionOrchestrator(
        store,
        budget_generator=StaticBudgetTierGenerator(_get_config().budget),
    )

    async def _run() -> None:
        await orchestrator.on_stage_completed(strategy_id, target.id, stage_type, content)
        await orchestrator.drain()

    asyncio.run(_run())

    updated = store.get_strategy(strategy_id)
    rprint(
        f"[green]Stage {stage_type.value} complete.[/green] "
        f"Phase: {updated.phase}, status: {updated.status.value}"
    )


@app.command(name="add-document")
def add_document(
    strategy_id: str = typer.Argument(..., help="Strategy id"),
    sources: list[str] = typer.Option(..., "--source", "-s", help="Source stage type(s), e.g. -s R -s T"),
    kind: str = typer.Option("brief", "--kind", help="Document kind"),
    content: Path | None = typer.Option(None, "--content", help="JSON file with the document body"),
) -> None:
    """Register a derived document built from the given stages."""
    store = _get_store()
    _load_strategy(store, strategy_id)
    body = _read_content(content) if content is not None else None
    doc = DerivedDocument(
        id=str(uuid.uuid4()),
        strategy_id=strategy_id,
        kind=kind,
        source_stages=frozenset(_parse_stage_types(sources)),
        generated_at=utcnow(),
        content=body,
    )
    store.add_document(doc)
    rprint(f"[green]Added[/green] {kind} document {doc.id}")


@app.command()
def invalidate(
    strategy_id: str = typer.Argument(..., help="Strategy id"),
    stages: list[str] = typer.Argument(..., help="Stage type(s) to mark stale"),
    reason: str = typer.Option(..., "--reason", "-r", help="Why the stages are out of date"),
) -> None:
    """Mark stages stale and cascade to the documents built from them."""
    stage_types = _parse_stage_types(stages)
    store = _get_store()
    _load_strategy(store, strategy_id)
    try:
        result = invalidate_stages(store, strategy_id, stage_types, reason)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    rprint(
        f"[yellow]Marked {len(result.stages_marked)} stage(s) stale[/yellow], "
        f"{result.documents_marked} document(s) affected."
    )


@app.command()
def freshness(
    strategy_id: str = typer.Argument(..., help="Strategy id"),
    mark: bool = typer.Option(False, "--mark", help="Mark documents past the aging threshold stale"),
    document: str | None = typer.Option(None, "--document", "-d", help="Only check this document"),
) -> None:
    """Show stage and document freshness for a strategy."""
    store = _get_store()
    _load_strategy(store, strategy_id)
    profiles = _get_config().freshness.profiles

    if document is not None:
        try:
            entry = check_document_freshness(store, document, profiles)
        except RecordNotFoundError as e:
            rprint(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        style = _FRESHNESS_STYLE[entry.status]
        oldest = "-" if entry.oldest_assertion_days is None else f"{entry.oldest_assertion_days}d"
        rprint(f"{entry.document_id} ({entry.kind})")
        rprint(f"Status: [{style}]{entry.status.value}[/{style}], generated {entry.days_since_generation}d ago")
        rprint(f"Assertions: {entry.stale_assertions}/{entry.total_assertions} stale, oldest {oldest}")
        return

    if mark:
        marked = mark_stale_documents(store, strategy_id, profiles)
        rprint(f"[yellow]Marked {marked} document(s) stale.[/yellow]")

    stages = check_staleness(store, strategy_id, profiles)
    stage_table = Table(title="Stages not fresh")
    stage_table.add_column("type", style="cyan")
    stage_table.add_column("status")
    stage_table.add_column("days", justify="right")
    stage_table.add_column("stale reason", style="dim")
    for entry in stages.aging_or_stale:
        style = _FRESHNESS_STYLE[entry.status]
        stage_table.add_row(
            entry.stage_type.value,
            f"[{style}]{entry.status.value}[/{style}]",
            str(entry.days_since_update),
            entry.stale_reason or "-",
        )
    rprint(stage_table)

    report = document_freshness_report(store, strategy_id, profiles)
    doc_table = Table(title="Documents")
    doc_table.add_column("id", style="cyan")
    doc_table.add_column("kind")
    doc_table.add_column("status")
    doc_table.add_column("days", justify="right")
    doc_table.add_column("stale assertions", justify="right")
    for doc in report.documents:
        style = _FRESHNESS_STYLE[doc.status]
        doc_table.add_row(
            doc.document_id,
            doc.kind,
            f"[{style}]{doc.status.value}[/{style}]",
            str(doc.days_since_generation),
            f"{doc.stale_assertions}/{doc.total_assertions}",
        )
    rprint(doc_table)

    s = report.summary
    rprint(f"{s.total} document(s): {s.fresh} fresh, {s.aging} aging, {s.stale} stale (oldest {s.oldest_days}d)")


# ---------------------------------------------------------------------------
# Phase commands
# ---------------------------------------------------------------------------


@phase_app.command("check")
def phase_check(
    strategy_id: str = typer.Argument(..., help="Strategy id"),
    target: str = typer.Argument(..., help="Target phase"),
    revert: bool = typer.Option(False, "--revert", help="Check a backward move instead"),
) -> None:
    """Check whether a phase transition would be allowed, without applying it."""
    store = _get_store()
    strategy = _load_strategy(store, strategy_id)
    check = validate_reversion if revert else validate_forward
    result = check(strategy.phase, target)
    if not result.valid:
        rprint(f"[red]Not allowed:[/red] {result.error}")
        raise typer.Exit(1)
    rprint(f"[green]Allowed:[/green] {strategy.phase} -> {target}")


@phase_app.command("advance")
def phase_advance(
    strategy_id: str = typer.Argument(..., help="Strategy id"),
    target: str = typer.Argument(..., help="Target phase"),
) -> None:
    """Move a strategy forward to a later phase."""
    store = _get_store()
    _load_strategy(store, strategy_id)
    result, strategy = advance_phase(store, strategy_id, target)
    if not result.valid:
        rprint(f"[red]Error:[/red] {result.error}")
        raise typer.Exit(1)
    rprint(f"[green]Advanced[/green] to {strategy.phase} ({strategy.status.value})")


@phase_app.command("revert")
def phase_revert(
    strategy_id: str = typer.Argument(..., help="Strategy id"),
    target: str = typer.Argument(..., help="Earlier phase to return to"),
) -> None:
    """Move a strategy back to an earlier phase. Later-phase data is kept."""
    store = _get_store()
    _load_strategy(store, strategy_id)
    result, strategy = revert_phase(store, strategy_id, target)
    if not result.valid:
        rprint(f"[red]Error:[/red] {result.error}")
        raise typer.Exit(1)
    rprint(f"[green]Reverted[/green] to {strategy.phase} ({strategy.status.value})")


# ---------------------------------------------------------------------------
# Metric commands
# ---------------------------------------------------------------------------


@metrics_app.command("set")
def metrics_set(
    strategy_id: str = typer.Argument(..., help="Strategy id"),
    metric_key: str = typer.Argument(..., help="Metric key, unique per strategy"),
    current: float = typer.Option(0.0, "--current", help="Current value"),
    target: float = typer.Option(0.0, "--target", help="Target value"),
    alert_min: float | None = typer.Option(None, "--min", help="Alert when current falls below"),
    alert_max: float | None = typer.Option(None, "--max", help="Alert when current rises above"),
    stage: str = typer.Option("", "--stage", help="Owning stage"),
    label: str | None = typer.Option(None, "--label", help="Display label"),
    unit: str = typer.Option("%", "--unit", help="Unit of measure"),
) -> None:
    """Create or update a KPI threshold."""
    store = _get_store()
    _load_strategy(store, strategy_id)
    threshold = new_threshold(
        strategy_id,
        metric_key,
        metric_label=label or metric_key,
        stage=stage,
        current_value=current,
        target_value=target,
        alert_min=alert_min,
        alert_max=alert_max,
        unit=unit,
    )
    saved = store.upsert_threshold(threshold)
    rprint(f"[green]Saved[/green] threshold {saved.metric_key} ({saved.id})")


@metrics_app.command("list")
def metrics_list(
    strategy_id: str = typer.Argument(..., help="Strategy id"),
) -> None:
    """List KPI thresholds ordered by stage and key."""
    store = _get_store()
    _load_strategy(store, strategy_id)

    table = Table(title="Thresholds")
    table.add_column("stage", style="cyan")
    table.add_column("metric")
    table.add_column("current", justify="right")
    table.add_column("target", justify="right")
    table.add_column("min", justify="right")
    table.add_column("max", justify="right")
    for t in get_thresholds(store, strategy_id):
        table.add_row(
            t.stage or "-",
            t.metric_label,
            f"{t.current_value:g}{t.unit}",
            f"{t.target_value:g}{t.unit}",
            "-" if t.alert_min is None else f"{t.alert_min:g}",
            "-" if t.alert_max is None else f"{t.alert_max:g}",
        )
    rprint(table)


@metrics_app.command("evaluate")
def metrics_evaluate(
    strategy_id: str = typer.Argument(..., help="Strategy id"),
    record: bool = typer.Option(False, "--record", help="Record a signal for each alert"),
) -> None:
    """Evaluate thresholds and report breaches."""
    store = _get_store()
    _load_strategy(store, strategy_id)

    if record:
        cycle = run_evaluation_cycle(store, store, strategy_id)
        alerts = cycle.alerts
    else:
        alerts = evaluate_thresholds(store, strategy_id).alerts

    if not alerts:
        rprint("[green]No alerts.[/green]")
        return

    table = Table(title=f"Alerts ({len(alerts)})")
    table.add_column("metric", style="cyan")
    table.add_column("type", style="red")
    table.add_column("current", justify="right")
    table.add_column("bound", justify="right")
    for alert in alerts:
        bound = alert.alert_min if alert.type is AlertType.below_min else alert.alert_max
        table.add_row(alert.metric_label, alert.type.value, f"{alert.current_value:g}", f"{bound:g}")
    rprint(table)
    if record:
        rprint(f"[yellow]Recorded {cycle.signals_created} signal(s).[/yellow]")


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show() -> None:
    """Show the resolved configuration and the file it came from."""
    source = str(_config_source) if _config_source is not None else "built-in defaults"
    rprint(f"[dim]Source:[/dim] {source}")
    dumped = _get_config().model_dump(mode="json")
    rprint(Syntax(yaml.safe_dump(dumped, sort_keys=False), "yaml"))


@config_app.command("init")
def config_init(
    path: Path = typer.Option(PROJECT_CONFIG, "--path", help="Where to write the template"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write a starter config with the default freshness profiles."""
    if path.exists() and not force:
        rprint(f"[yellow]{path} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]Wrote[/green] {path}")
