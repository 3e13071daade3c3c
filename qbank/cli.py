"""
CLI Interface
=============
Command-line interface for the question import engine.

Usage:
    qbank parse <text_file> --kind mcq [options]
    qbank fix <records_json> [-o repaired.json]
    qbank dedup <records_json> [--db qbank.sqlite]
    qbank validate <result_json>
    qbank import-db <records_json> --db qbank.sqlite
"""

from __future__ import annotations

import json
import os
import sys
from functools import partial

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from . import __version__
from .dedup import DuplicateReconciler
from .engine import ParserConfig, ParserEngine
from .fixers import repair
from .models import (
    Diagnostic,
    Language,
    QuestionKind,
    dump_records,
    load_records,
)
from .store import fetch_full_records_by_ids, init_db, insert_records
from .validator import ValidationEngine

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="qbank")
def cli():
    """Question bank importer: parse, repair and deduplicate exam questions."""
    pass


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--kind", "-k",
    default="mcq",
    type=click.Choice([k.value for k in QuestionKind]),
    help="Question format of the input",
)
@click.option(
    "--lang",
    default="auto",
    type=click.Choice(["auto", "en", "bn"]),
    help="Record language (auto = detect per record)",
)
@click.option(
    "--output", "-o",
    default="output",
    help="Output directory for parsed data",
)
@click.option(
    "--no-save",
    is_flag=True,
    default=False,
    help="Do not write <name>_parsed.json",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option(
    "--log-file",
    default=None,
    help="Path to log file",
)
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
def parse(
    input_path: str,
    kind: str,
    lang: str,
    output: str,
    no_save: bool,
    log_level: str,
    log_file: str,
    json_output: bool,
):
    """Parse a pasted-text file into structured question records."""

    if json_output:
        # Suppress console output for JSON mode
        log_level = "ERROR"

    config = ParserConfig(
        kind=QuestionKind(kind),
        language=None if lang == "auto" else Language(lang),
        output_dir=output,
        save_output=not no_save,
        log_level=log_level,
        log_file=log_file,
    )

    if not json_output:
        console.print()
        console.print(
            Panel.fit(
                f"[bold cyan]Question Importer v{__version__}[/]\n"
                f"[dim]Parsing {kind.upper()}: "
                f"{os.path.basename(input_path)}[/]",
                border_style="cyan",
            )
        )
        console.print()

    try:
        engine = ParserEngine(config)

        if not json_output:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=console,
            ) as progress:
                task = progress.add_task("Parsing text...", total=1)
                result = engine.parse_file(input_path)
                progress.update(task, completed=1)

            _display_results(result)
        else:
            result = engine.parse_file(input_path)
            # Output clean JSON to stdout
            click.echo(json.dumps(
                result.model_dump(mode="json"),
                indent=2,
                ensure_ascii=False,
            ))

    except FileNotFoundError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/] {e}")
        if log_level == "DEBUG":
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.argument("records_json", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output", "-o",
    default=None,
    help="Write all records (repaired ones replaced) to this file",
)
def fix(records_json: str, output: str):
    """Run the corruption fixers over stored records."""

    records = _load_records_or_exit(records_json)
    diagnostics: list[Diagnostic] = []

    repaired = []
    table = Table(title="Repaired Records", border_style="cyan")
    table.add_column("#", justify="right")
    table.add_column("ID")
    table.add_column("Kind")
    table.add_column("Fixer", style="bold")
    table.add_column("Fields")

    for index, record in enumerate(records):
        result = repair(record, diagnostics)
        if result is None:
            repaired.append(record)
            continue
        repaired.append(result.record)
        table.add_row(
            str(index),
            record.id or "-",
            record.kind,
            result.fixer,
            ", ".join(sorted(result.fields.updates())),
        )

    console.print()
    console.print(table)
    console.print(
        f"[bold]Total:[/] {table.row_count} of {len(records)} records repaired"
    )
    console.print()

    if output:
        with open(output, "w", encoding="utf-8") as f:
            json.dump(dump_records(repaired), f, indent=2, ensure_ascii=False)
        console.print(f"[green]Saved:[/] {output}")


@cli.command()
@click.argument("records_json", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--db",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="SQLite store holding the full records",
)
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output confirmed groups as JSON",
)
def dedup(records_json: str, db: str, json_output: bool):
    """Find confirmed duplicate groups among records."""

    records = _load_records_or_exit(records_json)
    diagnostics: list[Diagnostic] = []

    fetch = partial(fetch_full_records_by_ids, db_path=db) if db else None
    reconciler = DuplicateReconciler(fetch, diagnostics=diagnostics)
    groups = reconciler.reconcile(records)

    if json_output:
        click.echo(json.dumps(
            [g.model_dump(mode="json") for g in groups],
            indent=2,
            ensure_ascii=False,
        ))
        return

    console.print()
    table = Table(title="Confirmed Duplicates", border_style="cyan")
    table.add_column("Original", style="bold")
    table.add_column("Kind")
    table.add_column("Question")
    table.add_column("Duplicates")

    for group in groups:
        original = group.original
        table.add_row(
            original.id or "-",
            original.kind,
            original.body_text[:60],
            ", ".join(d.id or "-" for d in group.duplicates),
        )

    console.print(table)
    dropped = sum(1 for d in diagnostics if d.reason.value != "placeholder_record")
    console.print(
        f"[bold]Total:[/] {len(groups)} groups, "
        f"{sum(len(g.duplicates) for g in groups)} duplicates, "
        f"{dropped} candidates dropped"
    )
    console.print()


@cli.command()
@click.argument("json_path", type=click.Path(exists=True, dir_okay=False))
def validate(json_path: str):
    """Validate a parse result or record list JSON."""

    with open(json_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Validation Report[/]\n"
            f"[dim]File: {json_path}[/]",
            border_style="cyan",
        )
    )

    if isinstance(data, dict) and "validation" in data:
        validation = data["validation"]
    else:
        records = _load_records_or_exit(json_path)
        validation = ValidationEngine().validate(records).model_dump()

    _display_validation_table(validation)


@cli.command("import-db")
@click.argument("records_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--db", required=True, help="SQLite database path")
def import_db(records_json: str, db: str):
    """Load records into the SQLite record store."""

    records = _load_records_or_exit(records_json)
    try:
        init_db(db)
        ids = insert_records(records, db_path=db)
    except Exception as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    console.print(f"[green]Stored {len(ids)} records in:[/] {db}")


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _load_records_or_exit(path: str):
    """Read a record list, or the `records` of a parse result."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("records", [])
        return load_records(data)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/] could not load records from {path}: {e}")
        sys.exit(1)


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_results(result):
    """Display parse results in a formatted table."""
    console.print()

    _display_validation_table(result.validation.model_dump())

    pv = result.parse_version
    console.print(
        f"[dim]Parser v{pv.parser_version} | "
        f"Blocks: {pv.block_count} | "
        f"Records: {pv.record_count} | "
        f"Timestamp: {pv.parse_timestamp}[/]"
    )
    console.print()


def _display_validation_table(validation: dict):
    """Display validation report as a rich table."""
    table = Table(title="Validation Report", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")

    total = validation.get("total_records", 0)
    complete = validation.get("complete_records", 0)
    rate = validation.get("success_rate", 0)

    # Status icons
    def status_icon(count, threshold=0):
        if count <= threshold:
            return "[green]✓[/]"
        return "[red]✗[/]"

    table.add_row(
        "Total Records",
        str(total),
        "[green]✓[/]" if total > 0 else "[red]✗[/]",
    )
    for kind, count in sorted(validation.get("records_by_kind", {}).items()):
        table.add_row(f"  {kind.upper()}", str(count), "")
    table.add_row(
        "Complete Records",
        f"{complete} ({rate}%)",
        "[green]✓[/]" if rate >= 90 else "[yellow]⚠[/]",
    )

    for key, label in [
        ("missing_metadata", "Missing Subject/Chapter"),
        ("missing_correct_answer", "Missing Correct Answer"),
        ("answer_not_in_options", "Answer Not In Options"),
        ("missing_explanation", "Missing Explanation"),
        ("parts_missing_answer", "CQ Parts Missing Answer"),
        ("parts_missing_marks", "CQ Parts Missing Marks"),
    ]:
        count = len(validation.get(key, []))
        table.add_row(label, str(count), status_icon(count))

    console.print(table)
    console.print()

    breakdown = validation.get("skip_breakdown", {})
    if breakdown:
        skip_table = Table(title="Skip Breakdown", border_style="yellow")
        skip_table.add_column("Reason", style="bold")
        skip_table.add_column("Count", justify="right")

        for reason, count in sorted(breakdown.items()):
            skip_table.add_row(reason, str(count))

        console.print(skip_table)
        console.print()


# ─── Entry point (for python -m qbank.cli) ────────────────────────────────────


if __name__ == "__main__":
    cli()
