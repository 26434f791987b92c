"""Iteration Controller.

Drives the outer gap-closure loop over one scope:

    Idle -> GapAnalysis -> MasterDocument -> Dispatch -> Verification
         -> StatusUpdate -> ConvergenceCheck -> {GapAnalysis | Converged | Paused}

Zero open gaps at the first analysis goes straight to Converged. An
exhausted iteration budget ends in Paused. Each iteration's record is
written before the next iteration starts.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Sequence

from gapverify.catalog import GapCatalog
from gapverify.ci.gate_runner import GateResult
from gapverify.iteration.evidence import IterationEvidenceWriter
from gapverify.iteration.planning import DispatchPlan, DispatchPlanner
from gapverify.iteration.presence import PresenceProbe
from gapverify.models import GapTestResult, IterationRecord
from gapverify.pipeline import Gap, GapStatus, apply_test_result

logger = logging.getLogger(__name__)

# Statuses the orchestrator may still move; later stages belong to QA/UAT
_REVALIDATE = (GapStatus.OPEN, GapStatus.IMPLEMENTED_PENDING_TEST, GapStatus.FAILED)


class IterationState(str, Enum):
    IDLE = "Idle"
    GAP_ANALYSIS = "GapAnalysis"
    MASTER_DOCUMENT = "MasterDocument"
    DISPATCH = "Dispatch"
    VERIFICATION = "Verification"
    STATUS_UPDATE = "StatusUpdate"
    CONVERGENCE_CHECK = "ConvergenceCheck"
    CONVERGED = "Converged"
    PAUSED = "Paused"

    @property
    def is_terminal(self) -> bool:
        return self in (IterationState.CONVERGED, IterationState.PAUSED)


class Gates(Protocol):
    def run_build(self) -> GateResult: ...

    def run_tests(self) -> GateResult: ...


@dataclass(frozen=True)
class StateTransition:
    from_state: IterationState
    to_state: IterationState
    iteration: int
    at: datetime


@dataclass
class IterationOutcome:
    """Terminal state plus every record and state change of a run."""

    final_state: IterationState
    records: list[IterationRecord] = field(default_factory=list)
    transitions: list[StateTransition] = field(default_factory=list)
    gaps: dict[str, Gap] = field(default_factory=dict)

    @property
    def converged(self) -> bool:
        return self.final_state is IterationState.CONVERGED

    @property
    def iterations(self) -> int:
        return len(self.records)

    @property
    def visited_states(self) -> list[IterationState]:
        return [t.to_state for t in self.transitions]


class IterationController:
    """Runs the gap-closure loop until convergence or the budget runs out.

    Args:
        scope_ids: Gap ids in scope, in catalog order
        catalog: Gap catalog for descriptions and dependencies
        presence_probe: Decides whether a gap's closure artifact exists
        gate_runner: Build and test-suite gates
        evidence_writer: Durable sink for iteration artifacts
        max_iterations: Iteration budget (>= 1)
        orchestrator: Optional GapOrchestrator used to re-validate gaps
        dispatcher: Optional external hand-off called with each DispatchPlan
        now: Clock for records and transitions
    """

    def __init__(
        self,
        scope_ids: Sequence[str],
        catalog: GapCatalog,
        presence_probe: PresenceProbe,
        gate_runner: Gates,
        evidence_writer: IterationEvidenceWriter,
        max_iterations: int,
        orchestrator: Optional[Any] = None,
        dispatcher: Optional[Callable[[DispatchPlan], None]] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
        self.scope_ids = list(dict.fromkeys(scope_ids))
        self.catalog = catalog
        self.presence_probe = presence_probe
        self.gate_runner = gate_runner
        self.evidence = evidence_writer
        self.max_iterations = max_iterations
        self.orchestrator = orchestrator
        self.dispatcher = dispatcher
        self.planner = DispatchPlanner(catalog)
        self._now = now

        self.state = IterationState.IDLE
        self.gaps: dict[str, Gap] = {
            gap_id: Gap(
                id=gap_id,
                description=catalog.description_for(gap_id),
                category_set=tuple(catalog.categories_for(gap_id)),
            )
            for gap_id in self.scope_ids
        }
        self._transitions: list[StateTransition] = []
        self._iteration = 0

    def _enter(self, state: IterationState) -> None:
        self._transitions.append(
            StateTransition(from_state=self.state, to_state=state, iteration=self._iteration, at=self._now())
        )
        logger.info(f"[Iteration {self._iteration}] {self.state.value} -> {state.value}")
        self.state = state

    def _analyze(self) -> tuple[list[str], list[str]]:
        open_ids: list[str] = []
        closed_ids: list[str] = []
        for gap_id in self.scope_ids:
            try:
                closed = self.presence_probe.is_closed(gap_id)
            except Exception as e:
                logger.error(f"[Iteration {self._iteration}] Presence probe failed for {gap_id}: {e}")
                closed = False
            (closed_ids if closed else open_ids).append(gap_id)
        return open_ids, closed_ids

    def _gap_status_payload(self, open_ids: list[str], closed_ids: list[str]) -> dict[str, Any]:
        return {
            "iteration": self._iteration,
            "timestamp": self._now().isoformat(),
            "open_count": len(open_ids),
            "closed_count": len(closed_ids),
            "gaps": [
                {
                    "gap_id": gap_id,
                    "description": self.gaps[gap_id].description,
                    "closed": gap_id in closed_ids,
                    "pipeline_status": self.gaps[gap_id].status.value,
                }
                for gap_id in self.scope_ids
            ],
        }

    def _dispatch(self, plan: DispatchPlan) -> Optional[str]:
        if self.dispatcher is None:
            logger.info(f"[Iteration {self._iteration}] No dispatcher wired; plan is advisory only")
            return None
        try:
            self.dispatcher(plan)
        except Exception as e:
            logger.error(f"[Iteration {self._iteration}] Dispatcher failed: {e}")
            return str(e)
        return None

    def _revalidate(self) -> list[GapTestResult]:
        if self.orchestrator is None:
            return []
        entries = [
            (gap_id, gap.description) for gap_id, gap in self.gaps.items() if gap.status in _REVALIDATE
        ]
        if not entries:
            return []
        logger.info(f"[Iteration {self._iteration}] Re-validating {len(entries)} gaps")
        return asyncio.run(self.orchestrator.validate_gaps(entries))

    def _apply_verdicts(self, verdicts: list[GapTestResult]) -> list[dict[str, str]]:
        changes: list[dict[str, str]] = []
        for verdict in verdicts:
            gap = self.gaps.get(verdict.gap_id)
            if gap is None:
                continue
            before = len(gap.history)
            apply_test_result(gap, verdict)
            changes += [
                {"gap_id": gap.id, "from": t.from_status.value, "to": t.to_status.value}
                for t in gap.history[before:]
            ]
        return changes

    def _record(
        self,
        open_ids: list[str],
        closed_ids: list[str],
        next_state: IterationState,
        gates: Optional[tuple[GateResult, GateResult]] = None,
    ) -> IterationRecord:
        record = IterationRecord(
            iteration_number=self._iteration,
            timestamp=self._now(),
            open_gap_count=len(open_ids),
            closed_gap_count=len(closed_ids),
            converged=not open_ids,
            state=next_state.value,
            build_passed=gates[0].passed if gates else None,
            tests_passed=gates[1].passed if gates else None,
            open_gap_ids=list(open_ids),
        )
        self.evidence.write_record(record)
        return record

    def run(self) -> IterationOutcome:
        """Run the loop to a terminal state.

        Raises:
            EvidenceWriteError: If iteration evidence cannot be persisted
        """
        records: list[IterationRecord] = []
        logger.info(
            f"[Iteration] Starting loop over {len(self.scope_ids)} gaps "
            f"(max {self.max_iterations} iterations)"
        )

        while True:
            self._iteration += 1
            self._enter(IterationState.GAP_ANALYSIS)
            open_ids, closed_ids = self._analyze()
            self.evidence.write_gap_status(self._iteration, self._gap_status_payload(open_ids, closed_ids))
            logger.info(f"[Iteration {self._iteration}] {len(open_ids)} open, {len(closed_ids)} closed")

            if not open_ids:
                self._enter(IterationState.CONVERGED)
                records.append(self._record(open_ids, closed_ids, IterationState.CONVERGED))
                break

            self._enter(IterationState.MASTER_DOCUMENT)
            plan = self.planner.plan(open_ids, closed_ids)
            self.evidence.write_master_document(
                self._iteration, self.planner.render_master_document(plan, self._iteration)
            )
            self.evidence.write_dispatch_plan(self._iteration, self.planner.render_dispatch_plan(plan, self._iteration))
            if not plan.validation_passed:
                for error in plan.validation_errors:
                    logger.warning(f"[Iteration {self._iteration}] Planning: {error}")

            self._enter(IterationState.DISPATCH)
            dispatch_error = self._dispatch(plan)

            self._enter(IterationState.VERIFICATION)
            gates = (self.gate_runner.run_build(), self.gate_runner.run_tests())
            self.evidence.write_gates(self._iteration, gates)
            verdicts = self._revalidate()

            self._enter(IterationState.STATUS_UPDATE)
            changes = self._apply_verdicts(verdicts)
            self.evidence.write_status_update(
                self._iteration,
                {
                    "iteration": self._iteration,
                    "timestamp": self._now().isoformat(),
                    "gates": {gate.name: gate.label for gate in gates},
                    "dispatch_error": dispatch_error,
                    "verdicts": [
                        {
                            "gap_id": v.gap_id,
                            "status": v.status.value,
                            "determinism_score": v.determinism_score,
                            "follow_up_gaps": list(v.follow_up_gaps),
                        }
                        for v in verdicts
                    ],
                    "transitions": changes,
                    "pipeline": {gap_id: gap.status.value for gap_id, gap in self.gaps.items()},
                },
            )

            self._enter(IterationState.CONVERGENCE_CHECK)
            open_ids, closed_ids = self._analyze()
            if not open_ids:
                next_state = IterationState.CONVERGED
            elif self._iteration >= self.max_iterations:
                next_state = IterationState.PAUSED
            else:
                next_state = IterationState.GAP_ANALYSIS

            records.append(self._record(open_ids, closed_ids, next_state, gates))
            if next_state.is_terminal:
                self._enter(next_state)
                break

        logger.info(f"[Iteration] Finished in {self.state.value} after {self._iteration} iteration(s)")
        return IterationOutcome(
            final_state=self.state,
            records=records,
            transitions=list(self._transitions),
            gaps=self.gaps,
        )
