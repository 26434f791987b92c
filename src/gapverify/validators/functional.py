"""Functional correctness: the gap's unit and behavioral tests pass."""

from __future__ import annotations

import logging

from gapverify.ci.base import TestExecutionResult, TestExecutor, TestScope
from gapverify.exceptions import ExecutorUnavailableError
from gapverify.models import Category, CategoryResult

logger = logging.getLogger(__name__)


class FunctionalValidator:
    category = Category.FUNCTIONAL

    def __init__(self, executor: TestExecutor):
        self.executor = executor

    def _run_scope(self, scope: TestScope, gap_id: str) -> TestExecutionResult:
        try:
            return self.executor.run(scope, gap_id)
        except ExecutorUnavailableError as e:
            logger.warning(f"[Functional] {gap_id}: executor unavailable for {scope.value}: {e}")
            return TestExecutionResult.unavailable(str(e))

    def validate(self, gap_id: str) -> CategoryResult:
        logger.info(f"[Functional] Running functional correctness tests for {gap_id}")
        unit = self._run_scope(TestScope.UNIT, gap_id)
        behavioral = self._run_scope(TestScope.BEHAVIORAL, gap_id)

        passed = unit.all_passed and behavioral.all_passed
        lines = [
            f"Unit Tests: {unit.passed}/{unit.total} passed",
            f"Behavioral Tests: {behavioral.passed}/{behavioral.total} passed",
        ]
        for label, execution in (("Unit", unit), ("Behavioral", behavioral)):
            if execution.error:
                lines.append(f"{label} executor error: {execution.error}")

        return CategoryResult(passed=passed, details="\n".join(lines), score=1.0)
