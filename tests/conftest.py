"""Pytest configuration and fixtures for gapverify tests"""

import sys
from pathlib import Path
from typing import Optional

import pytest

# Ensure src directory is in Python path before any imports
project_root = Path(__file__).resolve().parent.parent
src_path = project_root / "src"

if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from gapverify.ci.scripted_executor import ScriptedTestExecutor  # noqa: E402
from gapverify.config import Settings  # noqa: E402
from gapverify.determinism import DeterminismScorer  # noqa: E402
from gapverify.models import Category, CategoryResult  # noqa: E402


class StubValidator:
    """Validator returning a fixed result, or raising a fixed error."""

    def __init__(
        self,
        category: Category,
        result: Optional[CategoryResult] = None,
        error: Optional[Exception] = None,
    ):
        self.category = category
        self.result = result or CategoryResult(passed=True, details="ok", score=1.0)
        self.error = error
        self.calls: list[str] = []

    def validate(self, gap_id: str) -> CategoryResult:
        self.calls.append(gap_id)
        if self.error is not None:
            raise self.error
        return self.result


def make_validators(**overrides) -> dict:
    """Passing stub validators for every category, with per-category overrides.

    Keyword names are lower-case category member names, e.g.
    ``functional=CategoryResult(passed=False)`` or ``determinism=RuntimeError()``.
    """
    validators = {}
    for category in Category:
        override = overrides.get(category.name.lower())
        if isinstance(override, Exception):
            validators[category] = StubValidator(category, error=override)
        else:
            validators[category] = StubValidator(category, result=override)
    return validators


@pytest.fixture
def zero_delay_scorer():
    """Determinism scorer that never pauses between trials."""
    return DeterminismScorer(trial_delay_seconds=0.0)


@pytest.fixture
def scripted_executor():
    return ScriptedTestExecutor()


@pytest.fixture
def stub_validators():
    return make_validators()


@pytest.fixture
def tmp_settings(tmp_path):
    """Settings isolated from the developer's environment and .env."""
    return Settings(
        _env_file=None,
        evidence_dir="evidence",
        iterations_dir="iterations",
        trial_delay_seconds=0.0,
        build_command="build-tool --check",
        test_command="test-tool -q",
        integration_tools=[],
    )
