"""Determinism category: the gap's tests pass repeatably."""

from __future__ import annotations

import logging

from gapverify.ci.base import TestExecutor, TestScope
from gapverify.determinism import DeterminismScorer
from gapverify.models import STABILITY_THRESHOLD, Category, CategoryResult

logger = logging.getLogger(__name__)


class DeterminismValidator:
    """Scores repeated full-scope runs of the gap's tests.

    ``threshold`` is the category pass bar. It defaults to the stability
    threshold and may be loosened per gap; it never changes what counts as
    stable.
    """

    category = Category.DETERMINISM

    def __init__(
        self,
        executor: TestExecutor,
        scorer: DeterminismScorer,
        runs: int = 3,
        threshold: float = STABILITY_THRESHOLD,
    ):
        if runs < 1:
            raise ValueError("runs must be >= 1")
        self.executor = executor
        self.scorer = scorer
        self.runs = runs
        self.threshold = threshold

    def with_overrides(self, runs: int | None = None, threshold: float | None = None) -> "DeterminismValidator":
        """Copy of this validator with per-gap runs/threshold applied."""
        return DeterminismValidator(
            executor=self.executor,
            scorer=self.scorer,
            runs=runs if runs is not None else self.runs,
            threshold=threshold if threshold is not None else self.threshold,
        )

    def validate(self, gap_id: str) -> CategoryResult:
        logger.info(f"[Determinism] Running determinism tests for {gap_id}")

        def probe() -> bool:
            return self.executor.run(TestScope.ALL, gap_id).all_passed

        result = self.scorer.score(gap_id, probe, runs=self.runs)
        passed = result.score >= self.threshold

        lines = [
            f"Test Runs: {result.runs}",
            f"Passed: {result.successes}/{result.runs}",
            f"Determinism Score: {result.score * 100:.1f}%",
            f"Status: {'Stable' if result.is_stable else 'Flaky'}",
        ]
        if result.flakiness_sources:
            sources = sorted(source.description for source in result.flakiness_sources)
            lines.append(f"Suspected Sources: {', '.join(sources)}")

        return CategoryResult(passed=passed, details="\n".join(lines), score=result.score)
