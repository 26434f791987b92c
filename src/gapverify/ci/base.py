"""Test Executor boundary.

The engine never compiles or runs tests itself; it talks to whatever object
satisfies ``TestExecutor`` and consumes the counts it returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol


class TestScope(str, Enum):
    __test__ = False

    UNIT = "unit"
    BEHAVIORAL = "behavioral"
    ALL = "all"


@dataclass(frozen=True)
class TestExecutionResult:
    """Counts reported by one executor invocation."""

    __test__ = False

    total: int
    passed: int
    failed: int
    skipped: int = 0
    elapsed: float = 0.0
    error: Optional[str] = None

    @property
    def all_passed(self) -> bool:
        """Zero failures and at least one executed case."""
        return self.total > 0 and self.failed == 0

    @classmethod
    def unavailable(cls, reason: str, elapsed: float = 0.0) -> "TestExecutionResult":
        """Result for an executor that could not run at all."""
        return cls(total=0, passed=0, failed=0, skipped=0, elapsed=elapsed, error=reason)


class TestExecutor(Protocol):
    """Runs the tests of ``scope`` whose names match ``match``."""

    def run(self, scope: TestScope, match: str) -> TestExecutionResult:
        ...
