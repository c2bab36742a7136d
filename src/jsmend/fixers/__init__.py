"""Rule fixers for JavaScript lint diagnostics.

Every fixer repairs the diagnostics of one lint rule and never returns
partially edited or unparseable code.
"""

from __future__ import annotations

from jsmend.fixers.base import BaseFixer, FixResult
from jsmend.fixers.braces import BraceStyleFixer, CurlyFixer
from jsmend.fixers.comma_dangle import CommaDangleFixer
from jsmend.fixers.declarations import NoVarFixer, PreferConstFixer
from jsmend.fixers.loops import PreferForOfFixer
from jsmend.fixers.no_console import NoConsoleFixer
from jsmend.fixers.operators import EqeqeqFixer, NoPlusplusFixer
from jsmend.fixers.quotes import QuotesFixer
from jsmend.fixers.registry import (
    FixerRegistry,
    create_default_registry,
)
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

__all__ = [
    # Base types
    "BaseFixer",
    "FixResult",
    # Registry
    "FixerRegistry",
    "create_default_registry",
    # Simple fixers
    "BraceStyleFixer",
    "CommaDangleFixer",
    "EolLastFixer",
    "EqeqeqFixer",
    "NoConsoleFixer",
    "NoExtraSemiFixer",
    "NoPlusplusFixer",
    "NoTrailingSpacesFixer",
    "QuotesFixer",
    "SemiFixer",
    "SpaceBeforeBlocksFixer",
    # Complex fixers
    "CurlyFixer",
    "IndentFixer",
    "NoTernaryFixer",
    "NoUnusedVarsFixer",
    "NoVarFixer",
    "PreferConstFixer",
    "PreferForOfFixer",
    "PreferTemplateFixer",
]
