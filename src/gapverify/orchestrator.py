"""Gap Orchestrator.

Runs the category validators for a gap, aggregates their results into one
verdict and derives follow-up gaps.

Architecture:
- Validators for one gap run concurrently (asyncio.gather over worker threads)
- Gaps in a batch run concurrently under a bounded semaphore
- Every failure local to a gap or a category becomes a FAIL verdict
- Only evidence write failures (EvidenceWriteError) reach the caller

Usage:
    orchestrator = GapOrchestrator(validators, catalog=GapCatalog.default())
    result = asyncio.run(orchestrator.validate_gap("GAP-001", "No Xcode Project"))
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from gapverify.catalog import GapCatalog
from gapverify.exceptions import EvidenceWriteError, MalformedGapEntryError, ValidatorFailureError
from gapverify.models import (
    ALL_CATEGORIES,
    STABILITY_THRESHOLD,
    Category,
    CategoryResult,
    GapTestResult,
    TestStatus,
)
from gapverify.validators.base import CategoryValidator
from gapverify.validators.determinism import DeterminismValidator

logger = logging.getLogger(__name__)

FOLLOW_UP_SUFFIXES = (
    (Category.FUNCTIONAL, "FUNC"),
    (Category.PLATFORM_CORRECTNESS, "PLATFORM"),
)
FLAKY_SUFFIX = "FLAKY"


def select_status(all_passed: bool, determinism_score: float) -> TestStatus:
    """Aggregate status: any failure wins, then the stability bar decides."""
    if not all_passed:
        return TestStatus.FAILED
    if determinism_score >= STABILITY_THRESHOLD:
        return TestStatus.TESTED_PENDING_QA
    return TestStatus.PASSED


def build_failure_reason(category_results: Mapping[Category, CategoryResult]) -> Optional[str]:
    """Newline-joined ``<Category>: <details>`` for failing categories, in category order."""
    reasons = [
        f"{category.value}: {category_results[category].details}"
        for category in Category.ordered(category_results)
        if not category_results[category].passed
    ]
    return "\n".join(reasons) if reasons else None


def build_follow_up_gaps(gap_id: str, category_results: Mapping[Category, CategoryResult]) -> list[str]:
    """Follow-up ids in fixed FUNC, PLATFORM, FLAKY order.

    FLAKY depends only on the determinism score, not on whether the
    Determinism category passed under a per-gap threshold.
    """
    follow_ups = [
        f"{gap_id}-{suffix}"
        for category, suffix in FOLLOW_UP_SUFFIXES
        if category in category_results and not category_results[category].passed
    ]
    determinism = category_results.get(Category.DETERMINISM)
    if determinism is not None and determinism.score < STABILITY_THRESHOLD:
        follow_ups.append(f"{gap_id}-{FLAKY_SUFFIX}")
    return follow_ups


def failed_result(gap_id: str, description: str, reason: str, execution_time: float = 0.0) -> GapTestResult:
    """Synthetic FAIL verdict for a gap that could not be evaluated."""
    return GapTestResult(
        gap_id=gap_id,
        description=description,
        status=TestStatus.FAILED,
        failure_reason=reason,
        follow_up_gaps=[],
        execution_time=max(execution_time, 0.0),
        determinism_score=0.0,
    )


def _entry_fields(entry: Any) -> tuple[str, str]:
    """Best-effort (gap_id, description) from a possibly malformed batch entry."""
    if not isinstance(entry, (tuple, list)):
        return "", ""
    gap_id = str(entry[0]) if len(entry) > 0 and entry[0] else ""
    description = str(entry[1]) if len(entry) > 1 and entry[1] else ""
    return gap_id, description


class GapOrchestrator:
    """Validates gaps by running their category validators.

    Args:
        validators: One validator per category
        catalog: Optional catalog for per-gap category sets and thresholds
        reporter: Optional reporter; ``report(result)`` is called per verdict
        clock: Monotonic clock in seconds, injectable for tests
        max_concurrency: Max gaps validated at once in ``validate_gaps``
    """

    def __init__(
        self,
        validators: Mapping[Category, CategoryValidator],
        catalog: Optional[GapCatalog] = None,
        reporter: Optional[Any] = None,
        clock: Callable[[], float] = time.monotonic,
        max_concurrency: int = 4,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.validators = dict(validators)
        self.catalog = catalog
        self.reporter = reporter
        self._clock = clock
        self.max_concurrency = max_concurrency

    def _select_categories(self, gap_id: str, categories: Optional[Sequence[Category]]) -> list[Category]:
        if categories is not None:
            return Category.ordered(categories)
        if self.catalog is not None:
            return self.catalog.categories_for(gap_id)
        return list(ALL_CATEGORIES)

    def _validator_for(self, category: Category, gap_id: str) -> Optional[CategoryValidator]:
        validator = self.validators.get(category)
        if (
            isinstance(validator, DeterminismValidator)
            and self.catalog is not None
            and self.catalog.get(gap_id) is not None
        ):
            thresholds = self.catalog.thresholds_for(gap_id)
            return validator.with_overrides(runs=thresholds.determinism_runs, threshold=thresholds.determinism)
        return validator

    async def _run_validator(
        self, category: Category, validator: Optional[CategoryValidator], gap_id: str
    ) -> CategoryResult:
        if validator is None:
            logger.error(f"[Orchestrator] {gap_id}: no validator configured for {category.value}")
            return CategoryResult(passed=False, details="No validator configured", score=0.0)
        try:
            return await asyncio.to_thread(validator.validate, gap_id)
        except ValidatorFailureError as e:
            logger.error(f"[Orchestrator] {gap_id}: {e}")
            return CategoryResult(passed=False, details=f"Validator error: {e.reason}", score=0.0)
        except Exception as e:
            logger.error(f"[Orchestrator] {gap_id}: {category.value} validator raised: {e}")
            return CategoryResult(passed=False, details=f"Validator error: {e}", score=0.0)

    async def _evaluate(
        self,
        gap_id: str,
        description: str,
        categories: Optional[Sequence[Category]],
        start: float,
    ) -> GapTestResult:
        selected = self._select_categories(gap_id, categories)
        if not selected:
            logger.error(f"[Orchestrator] {gap_id}: no categories selected")
            return failed_result(gap_id, description, "No categories selected", execution_time=self._clock() - start)
        outcomes = await asyncio.gather(
            *(self._run_validator(c, self._validator_for(c, gap_id), gap_id) for c in selected)
        )
        category_results = dict(zip(selected, outcomes))

        all_passed = all(result.passed for result in outcomes)
        determinism = category_results.get(Category.DETERMINISM)
        # Without a Determinism category there is no score to gate QA on
        determinism_score = determinism.score if determinism is not None else 1.0

        return GapTestResult(
            gap_id=gap_id,
            description=description,
            status=select_status(all_passed, determinism_score),
            failure_reason=build_failure_reason(category_results),
            follow_up_gaps=build_follow_up_gaps(gap_id, category_results),
            execution_time=max(self._clock() - start, 0.0),
            determinism_score=determinism_score,
            category_results=category_results,
        )

    def _report(self, result: GapTestResult) -> None:
        if self.reporter is not None:
            self.reporter.report(result)

    async def validate_gap(
        self,
        gap_id: str,
        description: str,
        categories: Optional[Sequence[Category]] = None,
    ) -> GapTestResult:
        """Validate one gap and return its verdict.

        Raises:
            EvidenceWriteError: If the wired reporter cannot persist the verdict
        """
        logger.info(f"[Orchestrator] Validating {gap_id} - {description}")
        start = self._clock()
        try:
            result = await self._evaluate(gap_id, description, categories, start)
        except Exception as e:
            logger.exception(f"[Orchestrator] Error validating {gap_id}")
            result = failed_result(
                gap_id,
                description,
                f"Exception during test execution: {e}",
                execution_time=self._clock() - start,
            )

        logger.info(
            f"[Orchestrator] {gap_id}: {result.status.value} "
            f"(determinism={result.determinism_score:.2f}, follow-ups={len(result.follow_up_gaps)})"
        )
        self._report(result)
        return result

    async def validate_gaps(self, entries: Iterable[Any]) -> list[GapTestResult]:
        """Validate ``(gap_id, description)`` entries independently.

        Results come back in input order. A bad entry or a failing gap is
        recorded as FAIL and never stops the rest of the batch.

        Raises:
            EvidenceWriteError: After the whole batch ran, if any verdict
                could not be persisted
        """
        entries = list(entries)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _one(index: int, entry: Any) -> GapTestResult:
            try:
                gap_id, description = entry
                if not isinstance(gap_id, str) or not gap_id.strip():
                    raise MalformedGapEntryError(f"entry {index + 1} has an empty gap id")
            except (TypeError, ValueError, MalformedGapEntryError) as e:
                logger.error(f"[Orchestrator] Skipping malformed entry {index + 1}: {entry!r}")
                result = failed_result(*_entry_fields(entry), reason=f"Malformed gap entry: {e}")
                self._report(result)
                return result

            async with semaphore:
                return await self.validate_gap(gap_id, description)

        logger.info(f"[Orchestrator] Validating batch of {len(entries)} gaps")
        outcomes = await asyncio.gather(
            *(_one(index, entry) for index, entry in enumerate(entries)),
            return_exceptions=True,
        )

        results: list[GapTestResult] = []
        evidence_error: Optional[EvidenceWriteError] = None
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, GapTestResult):
                results.append(outcome)
                continue
            if isinstance(outcome, EvidenceWriteError):
                evidence_error = evidence_error or outcome
            elif isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            results.append(
                failed_result(*_entry_fields(entries[index]), reason=f"Exception during test execution: {outcome}")
            )

        if evidence_error is not None:
            raise evidence_error

        passed = sum(1 for r in results if r.is_success)
        logger.info(f"[Orchestrator] Batch complete: {passed}/{len(results)} gaps passed")
        return results
