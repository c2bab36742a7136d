"""Fixer registry for mapping rule ids to fixer instances.

The registry provides the lookup the batch processor uses to find the
fixer for a diagnostic. Rules can be disabled without being unregistered,
so their metadata stays available for reporting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from jsmend.context import ContextAnalyzer
from jsmend.fixers.base import BaseFixer
from jsmend.validators.code_validator import CodeValidator

if TYPE_CHECKING:
    from jsmend.config import JsmendConfig


@dataclass
class _Entry:
    fixer: BaseFixer
    enabled: bool = True


class FixerRegistry:
    """Registry that maps rule ids to fixer instances.

    Example:
        >>> registry = FixerRegistry()
        >>> registry.register(SemiFixer())
        >>> fixer = registry.get_fixer("semi")
        >>> if fixer and fixer.can_fix(code, diagnostic):
        ...     result = fixer.fix(code, diagnostic)
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        """Initialize an empty registry.

        Args:
            logger: Sink for registry messages. Defaults to the module logger.
        """
        self._entries: dict[str, _Entry] = {}
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    def register(self, fixer: BaseFixer) -> bool:
        """Register a fixer under its rule id.

        Registering a second fixer for a rule id already present is a no-op;
        the first registration wins.

        Args:
            fixer: A BaseFixer instance.

        Returns:
            True if the fixer was added, False if the rule was already registered.

        Raises:
            ValueError: If fixer is not a BaseFixer or has no rule_id.
        """
        if not isinstance(fixer, BaseFixer):
            raise ValueError(f"Cannot register {type(fixer).__name__}: not a BaseFixer")
        rule_id = fixer.rule_id
        if not rule_id:
            raise ValueError(f"Fixer class {type(fixer).__name__} has no rule_id defined")
        if rule_id in self._entries:
            self.logger.debug(
                "Fixer for rule '%s' already registered: %s",
                rule_id,
                type(self._entries[rule_id].fixer).__name__,
            )
            return False
        self._entries[rule_id] = _Entry(fixer=fixer)
        self.logger.debug("Registered %s for rule '%s'", type(fixer).__name__, rule_id)
        return True

    def unregister(self, rule_id: str) -> bool:
        """Remove a rule's fixer. Returns True if it was registered."""
        return self._entries.pop(rule_id, None) is not None

    def get_fixer(self, rule_id: str | None) -> BaseFixer | None:
        """Get the fixer for a rule id.

        Returns:
            The fixer if one is registered and enabled, None otherwise.
        """
        if rule_id is None:
            return None
        entry = self._entries.get(rule_id)
        if entry is None or not entry.enabled:
            return None
        return entry.fixer

    def is_fixable(self, rule_id: str | None) -> bool:
        """Check if a registered, enabled fixer exists for the rule id."""
        return self.get_fixer(rule_id) is not None

    def is_registered(self, rule_id: str) -> bool:
        return rule_id in self._entries

    def set_enabled(self, rule_id: str, enabled: bool) -> bool:
        """Enable or disable a rule without unregistering it.

        Returns:
            True if the rule is registered, False otherwise.
        """
        entry = self._entries.get(rule_id)
        if entry is None:
            self.logger.warning("Cannot %s unknown rule '%s'", "enable" if enabled else "disable", rule_id)
            return False
        entry.enabled = enabled
        return True

    def is_enabled(self, rule_id: str) -> bool:
        entry = self._entries.get(rule_id)
        return entry is not None and entry.enabled

    def get_fixable_rules(self) -> list[str]:
        """List enabled rule ids.

        Returns:
            Sorted list of rule ids with an enabled fixer.
        """
        return sorted(rule_id for rule_id, entry in self._entries.items() if entry.enabled)

    def list_rules(self) -> list[str]:
        """List all registered rule ids, enabled or not."""
        return sorted(self._entries)

    def get_fixer_info(self, rule_id: str) -> dict[str, Any] | None:
        """Describe one registered fixer, or None if the rule is unknown."""
        entry = self._entries.get(rule_id)
        if entry is None:
            return None
        return {
            "rule_id": rule_id,
            "fixer": type(entry.fixer).__name__,
            "complexity": entry.fixer.complexity,
            "description": entry.fixer.description,
            "enabled": entry.enabled,
        }

    def stats(self) -> dict[str, Any]:
        """Count registered fixers by state and complexity."""
        complexity: dict[str, int] = {"simple": 0, "complex": 0}
        for entry in self._entries.values():
            complexity[entry.fixer.complexity] = complexity.get(entry.fixer.complexity, 0) + 1
        enabled = sum(1 for entry in self._entries.values() if entry.enabled)
        return {
            "total": len(self._entries),
            "enabled": enabled,
            "disabled": len(self._entries) - enabled,
            "complexity": complexity,
        }

    def validate_fixers(self) -> dict[str, list[str]]:
        """Check every fixer is registered under its own rule id and has a tier.

        Returns:
            Dict with "valid" and "invalid" rule id lists.
        """
        result: dict[str, list[str]] = {"valid": [], "invalid": []}
        for rule_id, entry in sorted(self._entries.items()):
            fixer = entry.fixer
            ok = fixer.rule_id == rule_id and fixer.complexity in ("simple", "complex")
            result["valid" if ok else "invalid"].append(rule_id)
        return result

    def clear(self) -> None:
        """Remove all registrations."""
        self._entries.clear()


def create_default_registry(
    config: JsmendConfig | None = None,
    analyzer: ContextAnalyzer | None = None,
    validator: CodeValidator | None = None,
    logger: logging.Logger | None = None,
) -> FixerRegistry:
    """Create a registry populated with all built-in fixers.

    Args:
        config: Configuration supplying rule options and disabled rules.
        analyzer: Context analyzer shared by all fixers.
        validator: Code validator shared by all fixers.
        logger: Sink for registry messages.

    Returns:
        A FixerRegistry with every built-in rule registered.
    """
    # Import here to avoid circular imports
    from jsmend.config import JsmendConfig
    from jsmend.fixers.braces import BraceStyleFixer, CurlyFixer
    from jsmend.fixers.comma_dangle import CommaDangleFixer
    from jsmend.fixers.declarations import NoVarFixer, PreferConstFixer
    from jsmend.fixers.loops import PreferForOfFixer
    from jsmend.fixers.no_console import NoConsoleFixer
    from jsmend.fixers.operators import EqeqeqFixer, NoPlusplusFixer
    from jsmend.fixers.quotes import QuotesFixer
    from jsmend.fixers.semicolons import NoExtraSemiFixer, SemiFixer
    from jsmend.fixers.templates import PreferTemplateFixer
    from jsmend.fixers.ternary import NoTernaryFixer
    from jsmend.fixers.unused_vars import NoUnusedVarsFixer
    from jsmend.fixers.whitespace import (
        EolLastFixer,
        IndentFixer,
        NoTrailingSpacesFixer,
        SpaceBeforeBlocksFixer,
    )

    config = config or JsmendConfig()
    analyzer = analyzer or ContextAnalyzer(cache_size=config.cache_size)
    validator = validator or CodeValidator(history_limit=config.history_limit)
    shared = {"analyzer": analyzer, "validator": validator}

    registry = FixerRegistry(logger=logger)
    for fixer in (
        SemiFixer(**shared),
        NoExtraSemiFixer(**shared),
        NoTrailingSpacesFixer(**shared),
        EolLastFixer(**shared),
        QuotesFixer(**shared),
        EqeqeqFixer(**shared),
        CommaDangleFixer(**shared),
        NoConsoleFixer(mode=config.no_console_mode, **shared),
        SpaceBeforeBlocksFixer(**shared),
        NoPlusplusFixer(**shared),
        BraceStyleFixer(**shared),
        IndentFixer(**shared),
        NoVarFixer(prefer_const=config.prefer_const, **shared),
        PreferConstFixer(**shared),
        PreferForOfFixer(**shared),
        PreferTemplateFixer(**shared),
        NoTernaryFixer(**shared),
        CurlyFixer(**shared),
        NoUnusedVarsFixer(**shared),
    ):
        registry.register(fixer)

    for rule_id in config.disabled_rules:
        registry.set_enabled(rule_id, False)
    return registry
