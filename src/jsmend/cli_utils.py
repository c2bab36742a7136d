"""CLI utility functions for jsmend.

Provides helper functions for:
- Config wiring: Extracting Typer CLI options and passing to load_config
- Input loading: Reading source files and linter diagnostics
- Error formatting: Consistent user-friendly error messages with exit codes
- Logging: Routing library log records through rich
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler

from jsmend.config import JsmendConfig, load_config
from jsmend.errors import DiagnosticsFormatError
from jsmend.models import Diagnostic
from jsmend.relint import diagnostics_from_data

# Exit code conventions
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1  # User error (bad input, missing file, failed batch)
EXIT_SYSTEM_ERROR = 2  # System error (permissions, I/O, etc.)


# -----------------------------------------------------------------------------
# Error Formatting Helpers
# -----------------------------------------------------------------------------


def error(msg: str, *, exit_code: int = EXIT_USER_ERROR) -> NoReturn:
    """Print an error message and exit with the given exit code.

    Args:
        msg: The error message to display.
        exit_code: Exit code to use (default: EXIT_USER_ERROR=1).

    Raises:
        typer.Exit: Always raises to exit the program.
    """
    styled_prefix = typer.style("Error:", fg=typer.colors.RED, bold=True)
    typer.echo(f"{styled_prefix} {msg}", err=True)
    raise typer.Exit(code=exit_code)


def warning(msg: str) -> None:
    """Print a warning message to stderr.

    Args:
        msg: The warning message to display.
    """
    styled_prefix = typer.style("Warning:", fg=typer.colors.YELLOW, bold=True)
    typer.echo(f"{styled_prefix} {msg}", err=True)


def success(msg: str) -> None:
    """Print a success message to stdout.

    Args:
        msg: The success message to display.
    """
    styled_prefix = typer.style("Success:", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"{styled_prefix} {msg}")


def format_error_details(errors: list[str]) -> str:
    """Format a list of error messages for display.

    Args:
        errors: List of error messages.

    Returns:
        Formatted string with bullet points.
    """
    if not errors:
        return ""
    return "\n".join(f"  - {e}" for e in errors)


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------


def configure_logging(verbose: bool = False) -> None:
    """Send jsmend log records to stderr through rich.

    Args:
        verbose: Log DEBUG records instead of WARNING and above.
    """
    handler = RichHandler(console=Console(stderr=True), show_path=False, markup=False)
    package_logger = logging.getLogger("jsmend")
    package_logger.handlers = [handler]
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.propagate = False


# -----------------------------------------------------------------------------
# Path and Input Helpers
# -----------------------------------------------------------------------------


def resolve_path(
    path: str | Path,
    base_path: Path | None = None,
) -> Path:
    """Resolve a path relative to a base path.

    Args:
        path: The path to resolve.
        base_path: Base path to resolve relative paths from. Defaults to cwd.

    Returns:
        Resolved absolute Path.
    """
    p = Path(path)
    base = base_path or Path.cwd()

    resolved = p.resolve() if p.is_absolute() else (base / p).resolve()

    return resolved


def ensure_file_exists(path: Path, path_type: str = "file") -> Path:
    """Ensure a path exists and is a regular file.

    Raises:
        typer.Exit: If the path doesn't exist or is not a file.
    """
    if not path.exists():
        error(f"{path_type} does not exist: {path}")

    if not path.is_file():
        error(f"{path_type} is not a file: {path}")

    return path


def read_source(path: Path) -> str:
    """Read a JavaScript source file.

    Raises:
        typer.Exit: If the file cannot be read.
    """
    ensure_file_exists(path, "Source file")
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        error(f"Cannot read source file {path}: {e}", exit_code=EXIT_SYSTEM_ERROR)


def load_diagnostics(path: Path) -> list[Diagnostic]:
    """Load linter diagnostics from a JSON file.

    Accepts ESLint's JSON report (a list of file results with ``messages``),
    a single result object, or a bare list of messages.

    Args:
        path: Path of the JSON file.

    Returns:
        Parsed diagnostics.

    Raises:
        DiagnosticsFormatError: If the file is not JSON of an accepted shape.
        OSError: If the file cannot be read.
    """
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DiagnosticsFormatError(f"Diagnostics file is not valid JSON: {e}") from e
    return diagnostics_from_data(data)


def read_diagnostics(path: Path) -> list[Diagnostic]:
    """Load diagnostics, exiting with a user error when the file is unusable."""
    ensure_file_exists(path, "Diagnostics file")
    try:
        return load_diagnostics(path)
    except DiagnosticsFormatError as e:
        error(f"Invalid diagnostics file {path}: {e}")
    except OSError as e:
        error(f"Cannot read diagnostics file {path}: {e}", exit_code=EXIT_SYSTEM_ERROR)


# -----------------------------------------------------------------------------
# Config Wiring Helper
# -----------------------------------------------------------------------------


def wire_config(
    disabled_rules: list[str] | None = None,
    relint_command: str | None = None,
    file_name: str | None = None,
    start_dir: Path | None = None,
) -> JsmendConfig:
    """Wire CLI options to load_config with appropriate overrides.

    Rules passed with --disable are added to the configured disabled rules.

    Args:
        disabled_rules: Rules to disable for this run.
        relint_command: Override for the re-lint command.
        file_name: Override for the file name hint.
        start_dir: Directory to start searching for config files.

    Returns:
        Fully resolved JsmendConfig instance.

    Raises:
        typer.Exit: If configuration is invalid.
    """
    cli_overrides: dict[str, Any] = {}

    if relint_command is not None:
        cli_overrides["relint_command"] = relint_command
    if file_name is not None:
        cli_overrides["file_name"] = file_name

    try:
        config = load_config(cli_overrides=cli_overrides, start_dir=start_dir)
    except ValueError as e:
        error(f"Invalid configuration: {e}", exit_code=EXIT_USER_ERROR)

    for rule_id in disabled_rules or []:
        if rule_id not in config.disabled_rules:
            config.disabled_rules.append(rule_id)
    return config


# -----------------------------------------------------------------------------
# Typer Option Factory Functions
# -----------------------------------------------------------------------------
# These factory functions create fresh Typer Option instances for each command.
# This is necessary because Typer consumes Option objects when decorating commands,
# so the same Option instance cannot be reused across multiple commands.


def diagnostics_option() -> Any:
    """Create a Typer Option for --diagnostics / -d."""
    return typer.Option(
        ...,
        "--diagnostics",
        "-d",
        help="JSON file with linter diagnostics (ESLint JSON format or a list of messages).",
    )


def disable_option() -> Any:
    """Create a Typer Option for --disable, which may be repeated."""
    return typer.Option(
        None,
        "--disable",
        help="Rule id to leave unfixed. May be given several times.",
    )


def json_option() -> Any:
    """Create a Typer Option for --json."""
    return typer.Option(
        False,
        "--json",
        help="Output as JSON.",
    )
