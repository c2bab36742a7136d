"""jsmend CLI - Main entry point."""

from __future__ import annotations

import asyncio
import json
from collections import Counter
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from jsmend import __version__
from jsmend.batch import BatchProcessor
from jsmend.cli_utils import (
    EXIT_SYSTEM_ERROR,
    EXIT_USER_ERROR,
    configure_logging,
    diagnostics_option,
    disable_option,
    error,
    format_error_details,
    json_option,
    read_diagnostics,
    read_source,
    resolve_path,
    wire_config,
)
from jsmend.context import ContextAnalyzer
from jsmend.fixers.registry import create_default_registry
from jsmend.models import BatchResult
from jsmend.relint import SubprocessRelinter
from jsmend.report import build_report
from jsmend.validators import CodeValidator

app = typer.Typer(
    name="jsmend",
    help="jsmend - Repair JavaScript lint diagnostics without corrupting the surrounding code.",
    add_completion=False,
)

# Rich consoles for output
console = Console()
err_console = Console(stderr=True)


# -----------------------------------------------------------------------------
# Version and Main Callbacks
# -----------------------------------------------------------------------------


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"jsmend version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """jsmend - Repair JavaScript lint diagnostics without corrupting the surrounding code."""
    pass


# -----------------------------------------------------------------------------
# Fix Command
# -----------------------------------------------------------------------------


@app.command()
def fix(
    source: Path = typer.Argument(..., help="JavaScript file to repair."),
    diagnostics: Path = diagnostics_option(),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the fixed code to this file instead of stdout.",
    ),
    in_place: bool = typer.Option(
        False,
        "--in-place",
        "-i",
        help="Overwrite the source file with the fixed code.",
    ),
    report: bool = typer.Option(
        False,
        "--report",
        help="Include the detailed report.",
    ),
    json_output: bool = json_option(),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only output the fixed code.",
    ),
    disable: list[str] | None = disable_option(),
    relint_command: str | None = typer.Option(
        None,
        "--relint-command",
        help="Linter command re-run between fix waves; '{file}' is replaced by the file name.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Log every fix attempt.",
    ),
) -> None:
    """Apply fixes for the diagnostics reported against SOURCE.

    Fixes are applied bottom-to-top, each one syntax-checked. The fixed code
    is printed to stdout unless --output or --in-place is given.

    Exits with code 1 if the batch did not complete successfully.
    """
    configure_logging(verbose)
    if output is not None and in_place:
        error("--output and --in-place cannot be used together")

    source_path = resolve_path(source)
    code = read_source(source_path)
    found = read_diagnostics(resolve_path(diagnostics))
    config = wire_config(
        disabled_rules=disable,
        relint_command=relint_command,
        file_name=source_path.name,
        start_dir=source_path.parent,
    )

    analyzer = ContextAnalyzer(cache_size=config.cache_size)
    validator = CodeValidator(history_limit=config.history_limit)
    registry = create_default_registry(config, analyzer=analyzer, validator=validator)
    processor = BatchProcessor(registry, config=config, validator=validator, analyzer=analyzer)

    if config.relint_command:
        relinter = SubprocessRelinter(config.relint_command, default_file_name=config.file_name)
        result = asyncio.run(
            processor.process_batch_with_relinting(
                code, found, relint=relinter, file_name=config.file_name
            )
        )
    else:
        result = asyncio.run(processor.process_batch(code, found))

    destination = source_path if in_place else (resolve_path(output) if output else None)
    if destination is not None:
        try:
            destination.write_text(result.final_code, encoding="utf-8")
        except OSError as e:
            error(f"Cannot write {destination}: {e}", exit_code=EXIT_SYSTEM_ERROR)

    if json_output:
        payload: dict[str, Any] = result.to_dict()
        if report:
            payload["report"] = build_report(result)
        console.print_json(json.dumps(payload))
    else:
        if destination is None:
            typer.echo(result.final_code, nl=not result.final_code.endswith("\n"))
        # Keep stdout clean for the code when it is printed there
        out = err_console if destination is None else console
        if not quiet:
            _print_result(out, result, destination)
            if report:
                _print_report(out, build_report(result))

    if not result.success:
        raise typer.Exit(code=EXIT_USER_ERROR)


def _print_result(out: Console, result: BatchResult, destination: Path | None) -> None:
    """Print applied and failed fixes as tables."""
    if result.applied_fixes:
        table = Table(title="Applied Fixes")
        table.add_column("Line", justify="right", style="cyan")
        table.add_column("Column", justify="right")
        table.add_column("Rule", style="green")
        table.add_column("Message")
        for summary in result.applied_fixes:
            table.add_row(str(summary.line), str(summary.column), summary.rule_id or "-", summary.message)
        out.print(table)

    if result.failed_fixes:
        table = Table(title="Failed Fixes")
        table.add_column("Line", justify="right", style="cyan")
        table.add_column("Column", justify="right")
        table.add_column("Rule", style="yellow")
        table.add_column("Reason")
        for summary in result.failed_fixes:
            table.add_row(str(summary.line), str(summary.column), summary.rule_id or "-", summary.message)
        out.print(table)

    for note in result.warnings:
        out.print(f"[yellow]Warning:[/yellow] {note}")

    summary_line =f"Fixed {result.fixed_errors} of {result.total_errors} issues"
    if destination is not None:
        summary_line += f", wrote {destination}"
    if result.success:
        out.print(f"[green]Success:[/green] {summary_line}")
    else:
        out.print(f"[red]Error:[/red] {result.error or 'Batch failed'} ({summary_line})")


def _print_report(out: Console, data: dict[str, Any]) -> None:
    """Print the detailed report sections."""
    summary = data["summary"]
    out.print(
        f"Success rate: {summary['success_rate']}% "
        f"({summary['fixed_errors']}/{summary['total_errors']}), "
        f"{summary['processing_time']:.1f} ms"
    )
    if data["failed_fixes"]["by_reason"]:
        out.print("Failures by reason:")
        out.print(
            format_error_details(
                [f"{reason}: {count}" for reason, count in sorted(data["failed_fixes"]["by_reason"].items())]
            )
        )
    if data["recommendations"]:
        out.print("Recommendations:")
        out.print(format_error_details(data["recommendations"]))


# -----------------------------------------------------------------------------
# Check Command
# -----------------------------------------------------------------------------


@app.command()
def check(
    source: Path = typer.Argument(..., help="JavaScript file the diagnostics refer to."),
    diagnostics: Path = diagnostics_option(),
    json_output: bool = json_option(),
    disable: list[str] | None = disable_option(),
) -> None:
    """Report how many of the diagnostics can be fixed automatically."""
    configure_logging()
    source_path = resolve_path(source)
    code = read_source(source_path)
    found = read_diagnostics(resolve_path(diagnostics))
    config = wire_config(disabled_rules=disable, start_dir=source_path.parent)
    registry = create_default_registry(config)

    counts = Counter(d.rule_id or "(parser)" for d in found)
    fixable = [d for d in found if registry.is_fixable(d.rule_id)]
    applicable = 0
    for diagnostic in fixable:
        fixer = registry.get_fixer(diagnostic.rule_id)
        if fixer is not None and fixer.can_fix(code, diagnostic):
            applicable += 1

    rules: list[dict[str, Any]] = []
    for rule_id, count in sorted(counts.items()):
        if registry.is_fixable(rule_id):
            status = "fixable"
        elif registry.is_registered(rule_id):
            status = "disabled"
        else:
            status = "manual"
        rules.append({"rule_id": rule_id, "count": count, "status": status})

    if json_output:
        console.print_json(
            json.dumps(
                {
                    "total": len(found),
                    "fixable": len(fixable),
                    "applicable": applicable,
                    "rules": rules,
                }
            )
        )
        return

    console.print(f"{len(fixable)} of {len(found)} issues are auto-fixable")
    if fixable:
        console.print(f"{applicable} can be fixed at their reported positions")
    if not rules:
        return

    table = Table(title="Diagnostics by Rule")
    table.add_column("Rule", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Status")
    styles = {"fixable": "green", "disabled": "yellow", "manual": "red"}
    for entry in rules:
        style = styles[entry["status"]]
        table.add_row(entry["rule_id"], str(entry["count"]), f"[{style}]{entry['status']}[/{style}]")
    console.print(table)


# -----------------------------------------------------------------------------
# Rules Command
# -----------------------------------------------------------------------------


@app.command("rules")
def list_rules(
    json_output: bool = json_option(),
    disable: list[str] | None = disable_option(),
) -> None:
    """List the rules jsmend can fix."""
    configure_logging()
    config = wire_config(disabled_rules=disable)
    registry = create_default_registry(config)
    infos = [info for info in (registry.get_fixer_info(r) for r in registry.list_rules()) if info]

    if json_output:
        console.print_json(json.dumps({"rules": infos, "stats": registry.stats()}))
        return

    table = Table(title="Fixable Rules")
    table.add_column("Rule", style="cyan")
    table.add_column("Complexity")
    table.add_column("Enabled")
    table.add_column("Description")
    for info in infos:
        enabled = "[green]yes[/green]" if info["enabled"] else "[yellow]no[/yellow]"
        table.add_row(info["rule_id"], info["complexity"], enabled, info["description"])
    console.print(table)
