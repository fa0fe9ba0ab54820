"""CLI review interface for dossier reconciliation.

Commands:
- ``consolidate``: merge extraction fragments and show the consolidated record
- ``compare``: diff the consolidated record against the client store snapshot
- ``apply``: turn the reviewer's field selection into a client store update
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from src.comparison.diff_engine import format_value
from src.comparison.models import DiffReport, FieldDifference
from src.comparison.review_payload import build_apply_payload, to_store_update
from src.extraction.consolidator import ConsolidatedRecord, field_path
from src.extraction.parsing import parse_date
from src.pipeline.reconciliation_pipeline import (
    ReconciliationPipeline,
    load_current,
    load_fragments,
    load_record,
    write_json,
)
from src.utils.config import Config, load_config
from src.utils.logging_setup import setup_logging

app = typer.Typer(help="Reconcile extracted loan documents with client data.")

console = Console(color_system=None, force_terminal=False, width=120)


def _load(config_path: Path) -> Config:
    if not config_path.exists():
        cfg = Config()
        setup_logging(cfg.logging)
        logger.warning("Config file {} not found, using defaults", config_path)
        return cfg
    cfg = load_config(config_path)
    setup_logging(cfg.logging)
    return cfg


def _parse_as_of(value: Optional[str]) -> date:
    if not value:
        return date.today()
    parsed = parse_date(value)
    if parsed is None:
        raise typer.BadParameter(f"Invalid date '{value}' (expected YYYY-MM-DD or DD/MM/YYYY)")
    return parsed


def _render_record(record: ConsolidatedRecord) -> None:
    table = Table(title=f"Consolidated record (as of {format_value(record.as_of)})")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_column("Source")

    for section, part in (
        ("principal", record.principal),
        ("conjoint", record.co_borrower),
        ("pret", record.loan),
    ):
        if part is None:
            continue
        for name in type(part).model_fields:
            value = getattr(part, name)
            if value is None:
                continue
            path = field_path(section, name)
            table.add_row(path, format_value(value), record.field_sources.get(path, "-"))

    calculated = record.calculated
    table.add_row("calcul.dateEffective", format_value(calculated.effective_start_date), "-")
    table.add_row(
        "calcul.capitalRestantDu", format_value(calculated.remaining_principal),
        record.field_sources.get("tableauAmortissement", "-"),
    )
    table.add_row(
        "calcul.dureeRestanteMois", format_value(calculated.remaining_duration_months),
        record.field_sources.get("tableauAmortissement", "-"),
    )
    console.print(table)
    console.print(
        f"Dossier type: {record.detected_type} | Confidence: {record.metadata.confidence:.2f}"
    )
    _render_messages("Missing fields", record.metadata.missing_fields)
    _render_messages("Warnings", record.metadata.warnings)


def _render_messages(title: str, messages: Sequence[str]) -> None:
    if not messages:
        return
    console.print(f"[bold]{title} ({len(messages)}):[/bold]")
    for message in messages:
        console.print(f"  - {message}")


def _render_diffs(diffs: Sequence[FieldDifference], title: str) -> None:
    if not diffs:
        return
    table = Table(title=title)
    table.add_column("Key", style="cyan")
    table.add_column("Label")
    table.add_column("Current")
    table.add_column("Extracted")
    table.add_column("Status")
    for diff in diffs:
        table.add_row(
            diff.key,
            diff.label,
            format_value(diff.current_value, diff.field),
            format_value(diff.extracted_value, diff.field),
            "new" if diff.is_new else "changed",
        )
    console.print(table)


def _render_report(report: DiffReport) -> None:
    if report.total_differences == 0:
        console.print("[green]No differences with the client data.[/green]")
    _render_diffs(report.principal_diffs, "Emprunteur principal")
    _render_diffs(report.conjoint_diffs, "Co-emprunteur")
    _render_diffs(report.loan_diffs, "Prêt")
    if report.has_type_mismatch:
        console.print(
            f"[yellow]Dossier type mismatch: current={report.current_type}, "
            f"detected={report.detected_type}[/yellow]"
        )
    console.print(
        f"Differences: {report.total_differences} | Confidence: {report.confidence:.2f}"
    )
    _render_messages("Unresolved fields", report.unresolved_fields)


@app.command("consolidate")
def consolidate(
    fragments: Path = typer.Argument(..., help="JSON file with extraction fragments."),
    as_of: Optional[str] = typer.Option(None, help="Reference date (default: today)."),
    output: Optional[Path] = typer.Option(None, help="Write the record as JSON to this path."),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
) -> None:
    """Merge extraction fragments into one consolidated record."""
    cfg = _load(config)
    reference = _parse_as_of(as_of)
    pipeline = ReconciliationPipeline(cfg)
    try:
        record = pipeline.consolidate(load_fragments(fragments), reference)
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    _render_record(record)
    if output:
        write_json(record, output)
        console.print(f"Record written to {output}")


@app.command("compare")
def compare(
    fragments: Path = typer.Argument(..., help="JSON file with extraction fragments."),
    current: Path = typer.Argument(..., help="JSON file with the current client data."),
    as_of: Optional[str] = typer.Option(None, help="Reference date (default: today)."),
    output: Optional[Path] = typer.Option(None, help="Write the diff report as JSON to this path."),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
) -> None:
    """Consolidate fragments and list differences with the client data."""
    cfg = _load(config)
    reference = _parse_as_of(as_of)
    pipeline = ReconciliationPipeline(cfg)
    try:
        result = pipeline.run(load_fragments(fragments), load_current(current), reference)
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    _render_report(result.report)
    if output:
        write_json(result, output)
        console.print(f"Report written to {output}")


@app.command("apply")
def apply(
    record: Path = typer.Argument(..., help="JSON file with a consolidated record."),
    current: Path = typer.Argument(..., help="JSON file with the current client data."),
    select: List[str] = typer.Option(
        [], "--select", "-s", help="Difference key to apply, e.g. principal.nom (repeatable)."
    ),
    select_all: bool = typer.Option(False, "--all", help="Apply every difference."),
    update_type: bool = typer.Option(False, help="Also switch the dossier type."),
    output: Optional[Path] = typer.Option(None, help="Write the store update as JSON to this path."),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
) -> None:
    """Build the client store update for the selected differences."""
    cfg = _load(config)
    pipeline = ReconciliationPipeline(cfg)
    try:
        extracted = load_record(record)
        report = pipeline.compare(extracted, load_current(current))
        selected = [diff.key for diff in report.all_diffs] if select_all else select
        payload = build_apply_payload(report, extracted, selected, update_type)
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    update = to_store_update(payload)
    if not update:
        console.print("[yellow]Nothing to apply.[/yellow]")
        return

    table = Table(title="Client store update")
    table.add_column("Column", style="cyan")
    table.add_column("New value")
    for column, value in update.items():
        table.add_row(column, format_value(value))
    console.print(table)
    if output:
        write_json({"update": update}, output)
        console.print(f"Update written to {output}")


def run() -> None:
    """Entrypoint for Typer."""
    app()


if __name__ == "__main__":
    run()
