"""Determinism scoring: run a probe repeatedly and classify instability.

Trials of one probe run strictly one after another. Running them
concurrently would add scheduler-induced flakiness on top of whatever the
probe itself does and corrupt the classification below.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from gapverify.models import STABILITY_THRESHOLD

logger = logging.getLogger(__name__)

DEFAULT_TRIAL_DELAY_SECONDS = 0.1


class FlakinessSource(str, Enum):
    """Heuristically inferred cause of trial-to-trial instability."""

    TIMING = "Timing"
    RANDOM_DATA = "RandomData"
    NETWORK_DEPENDENCY = "NetworkDependency"
    RACE_CONDITION = "RaceCondition"
    ENVIRONMENT_STATE = "EnvironmentState"
    ASYNC_TIMING_ISSUE = "AsyncTimingIssue"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    FlakinessSource.TIMING: "Timing-dependent behavior",
    FlakinessSource.RANDOM_DATA: "Random data generation",
    FlakinessSource.NETWORK_DEPENDENCY: "Network dependency",
    FlakinessSource.RACE_CONDITION: "Race condition",
    FlakinessSource.ENVIRONMENT_STATE: "Environment state dependency",
    FlakinessSource.ASYNC_TIMING_ISSUE: "Async/await timing issues",
}


@dataclass(frozen=True)
class DeterminismResult:
    """Outcome of repeated trials of one probe.

    ``score`` is always derived from ``successes``/``runs`` so the two can
    never drift apart.
    """

    probe_id: str
    runs: int
    successes: int
    flakiness_sources: frozenset[FlakinessSource] = field(default_factory=frozenset)
    trial_results: tuple[bool, ...] = ()

    def __post_init__(self) -> None:
        if self.runs < 1:
            raise ValueError(f"runs must be >= 1, got {self.runs}")
        if not 0 <= self.successes <= self.runs:
            raise ValueError(f"successes must be within [0, {self.runs}], got {self.successes}")

    @property
    def failures(self) -> int:
        return self.runs - self.successes

    @property
    def score(self) -> float:
        return self.successes / self.runs

    @property
    def is_stable(self) -> bool:
        return self.score >= STABILITY_THRESHOLD


def count_alternations(results: Sequence[bool]) -> int:
    """Number of adjacent pairs whose outcomes differ."""
    return sum(1 for a, b in zip(results, results[1:]) if a != b)


def longest_failure_run(results: Sequence[bool]) -> int:
    """Length of the longest streak of consecutive failures."""
    longest = current = 0
    for passed in results:
        if passed:
            current = 0
        else:
            current += 1
            longest = max(longest, current)
    return longest


def classify_flakiness(results: Sequence[bool]) -> set[FlakinessSource]:
    """Infer likely flakiness sources from a pass/fail sequence.

    The three rules are independent; every rule that fires contributes.
    """
    sources: set[FlakinessSource] = set()
    if not results:
        return sources

    runs = len(results)

    # Alternating pass/fail points at timing or races
    if count_alternations(results) > runs // 2:
        sources.update({FlakinessSource.TIMING, FlakinessSource.RACE_CONDITION})

    # Sustained failure streaks point at environment state
    if longest_failure_run(results) >= 2:
        sources.add(FlakinessSource.ENVIRONMENT_STATE)

    # Neither mostly passing nor mostly failing
    pass_rate = sum(1 for r in results if r) / runs
    if 0.2 < pass_rate < 0.8:
        sources.add(FlakinessSource.RANDOM_DATA)

    return sources


class DeterminismScorer:
    """Runs a boolean probe N times and scores its repeatability.

    Args:
        trial_delay_seconds: Pause between trials (0 disables it)
        sleep: Delay strategy, injectable so tests run without real pauses
    """

    def __init__(
        self,
        trial_delay_seconds: float = DEFAULT_TRIAL_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if trial_delay_seconds < 0:
            raise ValueError("trial_delay_seconds must be >= 0")
        self.trial_delay_seconds = trial_delay_seconds
        self._sleep = sleep

    def score(self, probe_id: str, probe: Callable[[], bool], runs: int = 3) -> DeterminismResult:
        """Execute ``probe`` ``runs`` times sequentially and score it.

        A probe that raises counts as a failed trial and marks the result
        with ENVIRONMENT_STATE.
        """
        if runs < 1:
            raise ValueError(f"runs must be >= 1, got {runs}")

        logger.info(f"[Determinism] Checking {probe_id} ({runs} runs)")

        results: list[bool] = []
        raised = False
        for run in range(1, runs + 1):
            try:
                outcome = bool(probe())
            except Exception as e:
                logger.warning(f"[Determinism] {probe_id} run {run}/{runs} raised: {e}")
                outcome = False
                raised = True
            results.append(outcome)
            logger.debug(f"[Determinism] {probe_id} run {run}/{runs}: {'pass' if outcome else 'fail'}")

            if run < runs and self.trial_delay_seconds > 0:
                self._sleep(self.trial_delay_seconds)

        sources = classify_flakiness(results)
        if raised:
            sources.add(FlakinessSource.ENVIRONMENT_STATE)

        result = DeterminismResult(
            probe_id=probe_id,
            runs=runs,
            successes=sum(1 for r in results if r),
            flakiness_sources=frozenset(sources),
            trial_results=tuple(results),
        )
        logger.info(
            f"[Determinism] {probe_id}: {result.successes}/{runs} "
            f"(score={result.score:.2f}, stable={result.is_stable})"
        )
        return result
