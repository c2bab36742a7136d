"""jsmend - Repair JavaScript lint diagnostics without corrupting the surrounding code."""

from __future__ import annotations

__version__ = "0.1.0"

from jsmend.batch import BatchProcessor
from jsmend.config import JsmendConfig, load_config
from jsmend.context import ContextAnalyzer
from jsmend.fixers.registry import FixerRegistry, create_default_registry
from jsmend.models import BatchResult, Diagnostic, FixSummary
from jsmend.report import build_report
from jsmend.validators import CodeValidator

__all__ = [
    "__version__",
    # Core components
    "BatchProcessor",
    "CodeValidator",
    "ContextAnalyzer",
    "FixerRegistry",
    "create_default_registry",
    # Models
    "BatchResult",
    "Diagnostic",
    "FixSummary",
    # Configuration and reporting
    "JsmendConfig",
    "build_report",
    "load_config",
]
