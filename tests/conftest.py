"""Pytest configuration and fixtures for jsmend tests."""

import os

import pytest

# Set a fixed terminal width to prevent line wrapping issues in CI
# This must be set before any Rich imports
os.environ.setdefault("COLUMNS", "200")
os.environ.setdefault("LINES", "50")
# Disable Rich's terminal detection to ensure consistent output
os.environ.setdefault("TERM", "dumb")

from jsmend.context import ContextAnalyzer  # noqa: E402
from jsmend.validators import CodeValidator  # noqa: E402


@pytest.fixture
def analyzer() -> ContextAnalyzer:
    """A fresh context analyzer."""
    return ContextAnalyzer()


@pytest.fixture
def validator() -> CodeValidator:
    """A fresh code validator."""
    return CodeValidator()
