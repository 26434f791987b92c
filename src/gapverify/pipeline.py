"""
Gap status pipeline.

A gap moves through a fixed approval order:

    OPEN -> IMPLEMENTED_PENDING_TEST -> TESTED_PENDING_QA -> QA_VALIDATED
         -> UAT_APPROVED -> PLATFORM_VALIDATED -> PRODUCTION_ELIGIBLE

FAILED hangs off IMPLEMENTED_PENDING_TEST and only leads back to it after
rework. The orchestrator owns the transitions up to TESTED_PENDING_QA/FAILED;
later stages belong to human or agent approval steps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from gapverify.exceptions import InvalidStatusTransitionError
from gapverify.models import ALL_CATEGORIES, Category, GapTestResult, TestStatus

logger = logging.getLogger(__name__)


class GapStatus(str, Enum):
    OPEN = "Open"
    IMPLEMENTED_PENDING_TEST = "ImplementedPendingTest"
    TESTED_PENDING_QA = "TestedPendingQA"
    FAILED = "Failed"
    QA_VALIDATED = "QAValidated"
    UAT_APPROVED = "UATApproved"
    PLATFORM_VALIDATED = "PlatformValidated"
    PRODUCTION_ELIGIBLE = "ProductionEligible"


PIPELINE_ORDER: tuple[GapStatus, ...] = (
    GapStatus.OPEN,
    GapStatus.IMPLEMENTED_PENDING_TEST,
    GapStatus.TESTED_PENDING_QA,
    GapStatus.QA_VALIDATED,
    GapStatus.UAT_APPROVED,
    GapStatus.PLATFORM_VALIDATED,
    GapStatus.PRODUCTION_ELIGIBLE,
)

_ALLOWED: dict[GapStatus, frozenset[GapStatus]] = {
    current: frozenset({nxt}) for current, nxt in zip(PIPELINE_ORDER, PIPELINE_ORDER[1:])
}
_ALLOWED[GapStatus.IMPLEMENTED_PENDING_TEST] = frozenset(
    {GapStatus.TESTED_PENDING_QA, GapStatus.FAILED}
)
_ALLOWED[GapStatus.FAILED] = frozenset({GapStatus.IMPLEMENTED_PENDING_TEST})
_ALLOWED[GapStatus.PRODUCTION_ELIGIBLE] = frozenset()


@dataclass(frozen=True)
class StatusTransition:
    """One recorded status change."""

    from_status: GapStatus
    to_status: GapStatus
    actor: str
    at: datetime
    note: Optional[str] = None


@dataclass
class Gap:
    """A unit of required engineering work tracked through the pipeline."""

    id: str
    description: str
    category_set: tuple[Category, ...] = ALL_CATEGORIES
    status: GapStatus = GapStatus.OPEN
    history: list[StatusTransition] = field(default_factory=list)


def can_transition(current: GapStatus, target: GapStatus) -> bool:
    """Check whether ``current -> target`` is a legal pipeline edge."""
    return target in _ALLOWED.get(current, frozenset())


def transition(
    gap: Gap,
    target: GapStatus,
    actor: str,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Gap:
    """Move ``gap`` to ``target``, recording the change.

    Raises:
        InvalidStatusTransitionError: If the edge is not in the pipeline
    """
    if not can_transition(gap.status, target):
        raise InvalidStatusTransitionError(gap.id, gap.status.value, target.value)

    gap.history.append(
        StatusTransition(
            from_status=gap.status,
            to_status=target,
            actor=actor,
            at=now or datetime.now(timezone.utc),
            note=note,
        )
    )
    logger.info(f"[Pipeline] {gap.id}: {gap.status.value} -> {target.value} ({actor})")
    gap.status = target
    return gap


def apply_test_result(gap: Gap, result: GapTestResult, actor: str = "orchestrator") -> Gap:
    """Apply an orchestrator verdict to ``gap``.

    OPEN gaps are first marked implemented, since a validation run means the
    work was claimed done. TESTED_PENDING_QA and FAIL verdicts then move the
    gap forward; PASS (passing but flaky) and SKIPPED leave it waiting for
    another test round. Gaps already at or past TESTED_PENDING_QA are not
    touched by the orchestrator.
    """
    if result.gap_id != gap.id:
        raise ValueError(f"Result for {result.gap_id} applied to gap {gap.id}")

    if gap.status not in (
        GapStatus.OPEN,
        GapStatus.IMPLEMENTED_PENDING_TEST,
        GapStatus.FAILED,
    ):
        logger.warning(
            f"[Pipeline] {gap.id} is at {gap.status.value}; orchestrator verdict "
            f"{result.status.value} not applied"
        )
        return gap

    if gap.status in (GapStatus.OPEN, GapStatus.FAILED):
        transition(gap, GapStatus.IMPLEMENTED_PENDING_TEST, actor, note="validation requested")

    if result.status is TestStatus.TESTED_PENDING_QA:
        transition(gap, GapStatus.TESTED_PENDING_QA, actor)
    elif result.status is TestStatus.FAILED:
        transition(gap, GapStatus.FAILED, actor, note=result.failure_reason)

    return gap
