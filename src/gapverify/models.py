"""
Value types shared by validators, the orchestrator, reporters and the
iteration controller.

All of them are immutable once built: a verdict or an iteration record is
evidence, and evidence is never edited after the fact.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Fixed bar for "deterministic enough for QA". Per-gap catalog thresholds may
# loosen the Determinism *category* pass bar, never this one.
STABILITY_THRESHOLD = 0.95


class Category(str, Enum):
    """Independent correctness dimensions checked per gap.

    Declaration order is the evaluation and failure-reason order.
    """

    FUNCTIONAL = "Functional"
    PLATFORM_CORRECTNESS = "PlatformCorrectness"
    DETERMINISM = "Determinism"
    CONCURRENCY_ISOLATION = "ConcurrencyIsolation"

    @classmethod
    def ordered(cls, selected=None) -> list["Category"]:
        """Return ``selected`` (default: all) in declaration order."""
        if selected is None:
            return list(cls)
        chosen = {cls(item) for item in selected}
        return [category for category in cls if category in chosen]


ALL_CATEGORIES: tuple[Category, ...] = tuple(Category)


class CategoryResult(BaseModel):
    """Outcome of one category validator invocation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    passed: bool
    details: str = ""
    score: float = Field(default=1.0, ge=0.0, le=1.0)


class TestStatus(str, Enum):
    """Aggregate verdict for a gap."""

    __test__ = False  # not a pytest test class

    PASSED = "PASS"
    FAILED = "FAIL"
    SKIPPED = "SKIPPED"
    TESTED_PENDING_QA = "Tested - Pending QA"

    @property
    def is_success(self) -> bool:
        return self in (TestStatus.PASSED, TestStatus.TESTED_PENDING_QA)


class GapTestResult(BaseModel):
    """
    Aggregate verdict for one orchestrator run over one gap.

    ``category_results`` keeps the per-category outcomes that produced the
    verdict so reports never need to re-run a validator.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    gap_id: str
    description: str
    status: TestStatus
    failure_reason: str | None = None
    follow_up_gaps: list[str] = Field(default_factory=list)
    execution_time: float = Field(default=0.0, ge=0.0, description="Wall-clock seconds")
    determinism_score: float = Field(default=0.0, ge=0.0, le=1.0)
    category_results: dict[Category, CategoryResult] = Field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.status.is_success

    @property
    def is_deterministic(self) -> bool:
        return self.determinism_score >= STABILITY_THRESHOLD

    def category_passed(self, category: Category) -> bool | None:
        """Pass flag for ``category``; None when it was not evaluated."""
        outcome = self.category_results.get(category)
        return None if outcome is None else outcome.passed


class IterationRecord(BaseModel):
    """Evidence for one pass of the iteration loop."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    iteration_number: int = Field(ge=1)
    timestamp: datetime
    open_gap_count: int = Field(ge=0)
    closed_gap_count: int = Field(ge=0)
    converged: bool
    state: str
    build_passed: bool | None = None
    tests_passed: bool | None = None
    open_gap_ids: list[str] = Field(default_factory=list)
