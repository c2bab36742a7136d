"""Configuration management for jsmend.

Handles configuration loading from multiple sources with precedence:
CLI args > environment variables > .jsmendrc > pyproject.toml > defaults
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

# tomllib is only available in Python 3.11+
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import-not-found]

CONSOLE_MODES = ("comment", "remove")
TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")


@dataclass
class JsmendConfig:
    """Configuration for a jsmend batch run.

    Attributes:
        relint_after_each_fix: Re-lint between waves of fixes when a re-lint
            capability is available.
        relint_batch_size: Number of fixes per wave between re-lints.
        relint_timeout: Seconds to wait for one re-lint before giving up.
        file_name: File name hint passed to the re-lint capability.
        halt_on_syntax_failure: Stop the batch after a fix breaks the syntax.
        no_console_mode: "comment" or "remove" for the no-console fixer.
        prefer_const: Let no-var emit const for never-reassigned bindings.
        disabled_rules: Rule ids registered but excluded from fixing.
        history_limit: Maximum fix records kept by the code validator.
        cache_size: Maximum cached contexts in the context analyzer.
        relint_command: Shell-style command used by the CLI to re-lint, with
            ``{file}`` replaced by file_name.
    """

    relint_after_each_fix: bool = True
    relint_batch_size: int = 5
    relint_timeout: float = 10.0
    file_name: str = "temp.js"
    halt_on_syntax_failure: bool = True
    no_console_mode: str = "comment"
    prefer_const: bool = True
    disabled_rules: list[str] = field(default_factory=list)
    history_limit: int = 100
    cache_size: int = 1000
    relint_command: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any configuration value is invalid.
        """
        if not isinstance(self.relint_batch_size, int) or self.relint_batch_size < 1:
            raise ValueError("relint_batch_size must be a positive integer")

        if not isinstance(self.relint_timeout, (int, float)) or self.relint_timeout <= 0:
            raise ValueError("relint_timeout must be a positive number")

        if not self.file_name or not isinstance(self.file_name, str):
            raise ValueError("file_name must be a non-empty string")

        if self.no_console_mode not in CONSOLE_MODES:
            raise ValueError(f"no_console_mode must be one of {', '.join(CONSOLE_MODES)}")

        if not isinstance(self.disabled_rules, list) or not all(
            isinstance(rule, str) and rule for rule in self.disabled_rules
        ):
            raise ValueError("disabled_rules must be a list of rule ids")

        if not isinstance(self.history_limit, int) or self.history_limit < 1:
            raise ValueError("history_limit must be a positive integer")

        if not isinstance(self.cache_size, int) or self.cache_size < 1:
            raise ValueError("cache_size must be a positive integer")

        if self.relint_command is not None and not self.relint_command.strip():
            raise ValueError("relint_command must not be empty")


def _get_config_field_names() -> set[str]:
    """Get the set of valid configuration field names.

    Returns:
        Set of field names from JsmendConfig.
    """
    return {f.name for f in fields(JsmendConfig)}


def find_config_file(filename: str = ".jsmendrc", start_dir: Path | None = None) -> Path | None:
    """Find a configuration file by traversing up the directory tree.

    Args:
        filename: Name of the config file to find.
        start_dir: Directory to start searching from. Defaults to current directory.

    Returns:
        Path to the config file if found, None otherwise.
    """
    current = start_dir or Path.cwd()
    current = current.resolve()

    while True:
        config_path = current / filename
        if config_path.is_file():
            return config_path

        parent = current.parent
        if parent == current:
            # Reached filesystem root
            return None
        current = parent


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load a TOML file and return its contents.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        tomllib.TOMLDecodeError: If the file is not valid TOML.
    """
    with open(path, "rb") as f:
        result: dict[str, Any] = tomllib.load(f)
        return result


def _load_from_jsmendrc(start_dir: Path | None = None) -> dict[str, Any]:
    """Load configuration from a .jsmendrc file, or an empty dict if there is none."""
    config_path = find_config_file(".jsmendrc", start_dir)
    if config_path is None:
        return {}

    try:
        data = _load_toml_file(config_path)
        # Filter to only valid config fields
        valid_fields = _get_config_field_names()
        return {k: v for k, v in data.items() if k in valid_fields}
    except (tomllib.TOMLDecodeError, OSError):
        return {}


def _load_from_pyproject(start_dir: Path | None = None) -> dict[str, Any]:
    """Load configuration from the pyproject.toml [tool.jsmend] section."""
    config_path = find_config_file("pyproject.toml", start_dir)
    if config_path is None:
        return {}

    try:
        data = _load_toml_file(config_path)
        tool_section = data.get("tool", {})
        jsmend_section = tool_section.get("jsmend", {})

        valid_fields = _get_config_field_names()
        return {k: v for k, v in jsmend_section.items() if k in valid_fields}
    except (tomllib.TOMLDecodeError, OSError):
        return {}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got '{value}'")


def _load_from_env() -> dict[str, Any]:
    """Load configuration from environment variables.

    Environment variables are prefixed with JSMEND_ and use uppercase names,
    for example JSMEND_RELINT_TIMEOUT or JSMEND_DISABLED_RULES (comma separated).

    Raises:
        ValueError: If a variable cannot be converted to the field's type.
    """
    converters: dict[str, Any] = {
        "relint_after_each_fix": _parse_bool,
        "relint_batch_size": lambda name, v: int(v),
        "relint_timeout": lambda name, v: float(v),
        "file_name": lambda name, v: v,
        "halt_on_syntax_failure": _parse_bool,
        "no_console_mode": lambda name, v: v,
        "prefer_const": _parse_bool,
        "disabled_rules": lambda name, v: [r.strip() for r in v.split(",") if r.strip()],
        "history_limit": lambda name, v: int(v),
        "cache_size": lambda name, v: int(v),
        "relint_command": lambda name, v: v,
    }

    result: dict[str, Any] = {}
    for config_key, convert in converters.items():
        env_var = f"JSMEND_{config_key.upper()}"
        value = os.environ.get(env_var)
        if value is not None:
            result[config_key] = convert(env_var, value)

    return result


def _merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
    """Merge configuration dictionaries; later ones take precedence."""
    result: dict[str, Any] = {}
    for config in configs:
        for key, value in config.items():
            if value is not None:
                result[key] = value
    return result


def load_config(
    cli_overrides: dict[str, Any] | None = None,
    start_dir: Path | None = None,
) -> JsmendConfig:
    """Load configuration with full precedence chain.

    Precedence (highest to lowest):
    1. CLI arguments (cli_overrides)
    2. Environment variables (JSMEND_*)
    3. .jsmendrc file
    4. pyproject.toml [tool.jsmend] section
    5. Default values

    Args:
        cli_overrides: Configuration overrides from CLI arguments.
        start_dir: Directory to start searching for config files.

    Returns:
        Fully resolved JsmendConfig instance.

    Raises:
        ValueError: If the resulting configuration is invalid.
    """
    pyproject_config = _load_from_pyproject(start_dir)
    jsmendrc_config = _load_from_jsmendrc(start_dir)
    env_config = _load_from_env()
    cli_config = cli_overrides or {}

    valid_fields = _get_config_field_names()
    cli_config = {k: v for k, v in cli_config.items() if k in valid_fields and v is not None}

    merged = _merge_configs(
        pyproject_config,
        jsmendrc_config,
        env_config,
        cli_config,
    )

    return JsmendConfig(**merged)
