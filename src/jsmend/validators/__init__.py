"""Syntax and structural validation of patched JavaScript source."""

from __future__ import annotations

from jsmend.validators.base import (
    FixRecord,
    SemanticCheck,
    Snapshot,
    SnapshotComparison,
    SyntaxCheck,
)
from jsmend.validators.code_validator import CodeValidator, check_brackets, count_keyword

__all__ = [
    # Result models
    "FixRecord",
    "SemanticCheck",
    "Snapshot",
    "SnapshotComparison",
    "SyntaxCheck",
    # Validator
    "CodeValidator",
    "check_brackets",
    "count_keyword",
]
