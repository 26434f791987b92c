"""Tests for the gap status pipeline."""

from datetime import datetime, timezone

import pytest

from gapverify.exceptions import InvalidStatusTransitionError
from gapverify.models import GapTestResult, TestStatus
from gapverify.pipeline import (
    PIPELINE_ORDER,
    Gap,
    GapStatus,
    apply_test_result,
    can_transition,
    transition,
)


def verdict(status, gap_id="GAP-001"):
    return GapTestResult(gap_id=gap_id, description="d", status=status, determinism_score=1.0)


class TestTransitions:
    """Tests for legal and illegal pipeline edges."""

    def test_forward_edges_are_legal(self):
        for current, nxt in zip(PIPELINE_ORDER, PIPELINE_ORDER[1:]):
            assert can_transition(current, nxt)

    def test_skipping_a_stage_is_illegal(self):
        assert not can_transition(GapStatus.OPEN, GapStatus.TESTED_PENDING_QA)
        assert not can_transition(GapStatus.TESTED_PENDING_QA, GapStatus.UAT_APPROVED)

    def test_backward_edges_are_illegal(self):
        assert not can_transition(GapStatus.QA_VALIDATED, GapStatus.TESTED_PENDING_QA)
        assert not can_transition(GapStatus.TESTED_PENDING_QA, GapStatus.FAILED)

    def test_failed_only_returns_to_implemented(self):
        assert can_transition(GapStatus.IMPLEMENTED_PENDING_TEST, GapStatus.FAILED)
        assert can_transition(GapStatus.FAILED, GapStatus.IMPLEMENTED_PENDING_TEST)
        assert not can_transition(GapStatus.FAILED, GapStatus.TESTED_PENDING_QA)
        assert not can_transition(GapStatus.OPEN, GapStatus.FAILED)

    def test_production_eligible_is_final(self):
        assert not any(can_transition(GapStatus.PRODUCTION_ELIGIBLE, s) for s in GapStatus)

    def test_transition_records_history(self):
        gap = Gap(id="GAP-001", description="d")
        at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        transition(gap, GapStatus.IMPLEMENTED_PENDING_TEST, actor="dev", note="done", now=at)

        assert gap.status is GapStatus.IMPLEMENTED_PENDING_TEST
        assert len(gap.history) == 1
        record = gap.history[0]
        assert record.from_status is GapStatus.OPEN
        assert record.to_status is GapStatus.IMPLEMENTED_PENDING_TEST
        assert record.actor == "dev"
        assert record.at == at

    def test_illegal_transition_raises_and_leaves_gap_untouched(self):
        gap = Gap(id="GAP-001", description="d")
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            transition(gap, GapStatus.QA_VALIDATED, actor="dev")

        assert exc_info.value.gap_id == "GAP-001"
        assert gap.status is GapStatus.OPEN
        assert gap.history == []


class TestApplyTestResult:
    """Tests for applying orchestrator verdicts."""

    def test_open_gap_reaches_tested_pending_qa(self):
        gap = apply_test_result(Gap(id="GAP-001", description="d"), verdict(TestStatus.TESTED_PENDING_QA))
        assert gap.status is GapStatus.TESTED_PENDING_QA
        assert [t.to_status for t in gap.history] == [
            GapStatus.IMPLEMENTED_PENDING_TEST,
            GapStatus.TESTED_PENDING_QA,
        ]

    def test_failure_moves_gap_to_failed(self):
        gap = Gap(id="GAP-001", description="d", status=GapStatus.IMPLEMENTED_PENDING_TEST)
        apply_test_result(gap, verdict(TestStatus.FAILED))
        assert gap.status is GapStatus.FAILED

    def test_failed_gap_can_pass_after_rework(self):
        gap = Gap(id="GAP-001", description="d", status=GapStatus.FAILED)
        apply_test_result(gap, verdict(TestStatus.TESTED_PENDING_QA))
        assert gap.status is GapStatus.TESTED_PENDING_QA

    def test_flaky_pass_waits_at_implemented(self):
        gap = apply_test_result(Gap(id="GAP-001", description="d"), verdict(TestStatus.PASSED))
        assert gap.status is GapStatus.IMPLEMENTED_PENDING_TEST

    def test_later_stages_are_not_touched(self):
        gap = Gap(id="GAP-001", description="d", status=GapStatus.QA_VALIDATED)
        apply_test_result(gap, verdict(TestStatus.FAILED))
        assert gap.status is GapStatus.QA_VALIDATED
        assert gap.history == []

    def test_mismatched_gap_id_raises(self):
        with pytest.raises(ValueError):
            apply_test_result(Gap(id="GAP-001", description="d"), verdict(TestStatus.FAILED, gap_id="GAP-002"))
