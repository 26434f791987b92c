"""Tests for the iteration loop: presence, planning, evidence and control."""

import json
from datetime import datetime, timezone

import pytest

from conftest import make_validators
from gapverify.catalog import GapCatalog
from gapverify.ci.gate_runner import GateResult
from gapverify.exceptions import EvidenceWriteError
from gapverify.iteration import (
    ArtifactPresenceProbe,
    DispatchPlanner,
    IterationController,
    IterationEvidenceWriter,
    IterationState,
)
from gapverify.models import CategoryResult
from gapverify.orchestrator import GapOrchestrator
from gapverify.pipeline import GapStatus

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def catalog():
    return GapCatalog.from_mapping(
        {
            "gaps": [
                {"id": "GAP-010", "description": "API client", "priority": "P0", "artifacts": ["src/api.py"]},
                {
                    "id": "GAP-011",
                    "description": "Streaming",
                    "priority": "P1",
                    "depends_on": ["GAP-010"],
                    "artifacts": ["src/stream.py"],
                },
                {
                    "id": "GAP-012",
                    "description": "Hunt view",
                    "priority": "P0",
                    "depends_on": ["GAP-010"],
                    "artifacts": ["src/hunt.py"],
                },
                {
                    "id": "GAP-014",
                    "description": "Incident view",
                    "priority": "P2",
                    "depends_on": ["GAP-011", "GAP-012"],
                    "artifacts": ["src/incident.py"],
                },
                {"id": "GAP-020", "description": "Icons", "priority": "P3", "artifacts": ["assets/*.png"]},
            ],
        }
    )


class FakeProbe:
    """Presence probe backed by a mutable set of closed gap ids."""

    def __init__(self, closed=()):
        self.closed = set(closed)
        self.calls = 0

    def is_closed(self, gap_id):
        self.calls += 1
        return gap_id in self.closed


class FakeGates:
    def __init__(self, build=True, tests=True):
        self.build = build
        self.tests = tests
        self.calls = 0

    def run_build(self):
        self.calls += 1
        return GateResult(name="build", passed=self.build, log="build log")

    def run_tests(self):
        self.calls += 1
        return GateResult(name="tests", passed=self.tests, log="tests log")


def make_controller(catalog, tmp_path, probe, gates=None, max_iterations=3, **kwargs):
    return IterationController(
        scope_ids=catalog.ids(),
        catalog=catalog,
        presence_probe=probe,
        gate_runner=gates or FakeGates(),
        evidence_writer=IterationEvidenceWriter(tmp_path / "run"),
        max_iterations=max_iterations,
        now=lambda: NOW,
        **kwargs,
    )


class TestArtifactPresenceProbe:
    def test_closed_only_when_every_glob_matches(self, tmp_path, catalog):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "api.py").write_text("", encoding="utf-8")
        probe = ArtifactPresenceProbe(tmp_path, catalog)

        assert probe.is_closed("GAP-010")
        assert not probe.is_closed("GAP-011")
        assert not probe.is_closed("GAP-404")

    def test_wildcard_artifacts(self, tmp_path, catalog):
        probe = ArtifactPresenceProbe(tmp_path, catalog)
        assert not probe.is_closed("GAP-020")
        (tmp_path / "assets").mkdir()
        (tmp_path / "assets" / "icon_512.png").write_bytes(b"")
        assert probe.is_closed("GAP-020")


class TestDispatchPlanner:
    def test_waves_respect_dependencies(self, catalog):
        plan = DispatchPlanner(catalog).plan(catalog.ids())

        assert plan.validation_passed
        assert plan.waves == {
            1: ["GAP-010", "GAP-020"],
            2: ["GAP-012", "GAP-011"],
            3: ["GAP-014"],
        }
        assert plan.task_list == ["GAP-010", "GAP-020", "GAP-012", "GAP-011", "GAP-014"]

    def test_closed_dependencies_are_satisfied(self, catalog):
        plan = DispatchPlanner(catalog).plan(["GAP-011", "GAP-014"], closed_ids=["GAP-010", "GAP-012"])
        assert plan.waves == {1: ["GAP-011"], 2: ["GAP-014"]}
        assert plan.closed_ids == ["GAP-010", "GAP-012"]

    def test_inter_wave_edges(self, catalog):
        plan = DispatchPlanner(catalog).plan(catalog.ids())
        edges = {(e.depends_on, e.gap_id, e.from_wave, e.to_wave) for e in plan.edges}
        assert ("GAP-010", "GAP-011", 1, 2) in edges
        assert ("GAP-011", "GAP-014", 2, 3) in edges
        assert len(edges) == 4

        text = DispatchPlanner(catalog).render_dispatch_plan(plan, iteration=1)
        assert "## Wave 1 (2 parallel)" in text
        assert "- GAP-010 (wave 1) -> GAP-011 (wave 2)" in text

    def test_cycle_is_reported(self):
        cyclic = GapCatalog.from_mapping(
            {
                "gaps": [
                    {"id": "A", "description": "a", "depends_on": ["B"]},
                    {"id": "B", "description": "b", "depends_on": ["A"]},
                    {"id": "C", "description": "c"},
                ]
            }
        )
        plan = DispatchPlanner(cyclic).plan(["A", "B", "C"])

        assert not plan.validation_passed
        assert plan.waves == {1: ["C"]}
        assert "cycle" in plan.validation_errors[0]
        assert plan.task_list == ["C", "A", "B"]

    def test_shared_artifact_splits_waves(self):
        shared = GapCatalog.from_mapping(
            {
                "gaps": [
                    {"id": "A", "description": "a", "artifacts": ["README.md"]},
                    {"id": "B", "description": "b", "artifacts": ["README.md"]},
                ]
            }
        )
        plan = DispatchPlanner(shared).plan(["A", "B"])
        assert plan.waves == {1: ["A"], 2: ["B"]}

    def test_master_document_lists_tasks_in_order(self, catalog):
        planner = DispatchPlanner(catalog)
        plan = planner.plan(["GAP-011", "GAP-010"], closed_ids=["GAP-020"])
        text = planner.render_master_document(plan, iteration=2)

        assert text.startswith("# Master Gap Document (Iteration 2)")
        assert text.index("**GAP-010**") < text.index("**GAP-011**")
        assert "~~GAP-020~~" in text


class TestIterationEvidenceWriter:
    def test_gates_file_format(self, tmp_path):
        writer = IterationEvidenceWriter(tmp_path)
        path = writer.write_gates(
            1,
            [GateResult(name="build", passed=True, log="ok"), GateResult(name="tests", passed=False, log="boom")],
        )
        assert path == tmp_path / "iteration_01" / "verification_gates.txt"
        assert path.read_text(encoding="utf-8") == "build: PASS\ntests: FAIL\n"
        assert (tmp_path / "iteration_01" / "tests.log").read_text(encoding="utf-8") == "boom"

    def test_write_failure_raises(self, tmp_path):
        blocker = tmp_path / "run"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(EvidenceWriteError):
            IterationEvidenceWriter(blocker).write_master_document(1, "# doc")

    def test_runs_started_in_the_same_second_get_separate_directories(self, tmp_path):
        first = IterationEvidenceWriter.for_new_run(tmp_path / "iterations", "20261019_101500")
        second = IterationEvidenceWriter.for_new_run(tmp_path / "iterations", "20261019_101500")

        assert first.run_dir == tmp_path / "iterations" / "20261019_101500"
        assert second.run_dir == tmp_path / "iterations" / "20261019_101500-1"

        first.write_gap_status(1, {"open": ["GAP-001"]})
        second.write_gap_status(1, {"open": []})
        assert json.loads((first.iteration_dir(1) / "gap_status.json").read_text(encoding="utf-8")) == {
            "open": ["GAP-001"]
        }

    def test_run_directory_failure_raises(self, tmp_path):
        blocker = tmp_path / "iterations"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(EvidenceWriteError):
            IterationEvidenceWriter.for_new_run(blocker, "20261019_101500")


class TestIterationController:
    """Tests for IterationController.run."""

    def test_converges_immediately_when_nothing_is_open(self, tmp_path, catalog):
        gates = FakeGates()
        dispatched = []
        controller = make_controller(
            catalog, tmp_path, FakeProbe(closed=catalog.ids()), gates=gates, dispatcher=dispatched.append
        )

        outcome = controller.run()

        assert outcome.final_state is IterationState.CONVERGED
        assert outcome.visited_states == [IterationState.GAP_ANALYSIS, IterationState.CONVERGED]
        assert IterationState.DISPATCH not in outcome.visited_states
        assert IterationState.VERIFICATION not in outcome.visited_states
        assert gates.calls == 0
        assert dispatched == []
        assert len(outcome.records) == 1
        assert outcome.records[0].converged

        run_dir = tmp_path / "run" / "iteration_01"
        assert (run_dir / "gap_status.json").exists()
        assert (run_dir / "iteration_record.json").exists()
        assert not (run_dir / "verification_gates.txt").exists()

    def test_pauses_when_budget_is_exhausted(self, tmp_path, catalog):
        probe = FakeProbe(closed={"GAP-010"})
        controller = make_controller(catalog, tmp_path, probe, gates=FakeGates(tests=False), max_iterations=2)

        outcome = controller.run()

        assert outcome.final_state is IterationState.PAUSED
        assert [r.iteration_number for r in outcome.records] == [1, 2]
        assert [r.state for r in outcome.records] == ["GapAnalysis", "Paused"]
        assert all(r.open_gap_count == 4 for r in outcome.records)
        assert outcome.records[0].tests_passed is False

        for n in (1, 2):
            iteration_dir = tmp_path / "run" / f"iteration_{n:02d}"
            for name in (
                "gap_status.json",
                "master_document.md",
                "dispatch_plan.md",
                "verification_gates.txt",
                "status_update.json",
                "iteration_record.json",
            ):
                assert (iteration_dir / name).exists(), name
        gates_text = (tmp_path / "run" / "iteration_01" / "verification_gates.txt").read_text(encoding="utf-8")
        assert gates_text == "build: PASS\ntests: FAIL\n"

    def test_full_state_sequence_for_one_iteration(self, tmp_path, catalog):
        outcome = make_controller(catalog, tmp_path, FakeProbe(), max_iterations=1).run()
        assert outcome.visited_states == [
            IterationState.GAP_ANALYSIS,
            IterationState.MASTER_DOCUMENT,
            IterationState.DISPATCH,
            IterationState.VERIFICATION,
            IterationState.STATUS_UPDATE,
            IterationState.CONVERGENCE_CHECK,
            IterationState.PAUSED,
        ]
        assert outcome.transitions[0].from_state is IterationState.IDLE

    def test_converges_after_dispatch_closes_gaps(self, tmp_path, catalog):
        probe = FakeProbe()

        def dispatcher(plan):
            probe.closed.update(plan.task_list)

        outcome = make_controller(catalog, tmp_path, probe, dispatcher=dispatcher).run()

        assert outcome.converged
        assert outcome.iterations == 1
        assert outcome.records[-1].open_gap_count == 0
        assert outcome.records[-1].closed_gap_count == 5

    def test_dispatcher_failure_is_recorded_not_raised(self, tmp_path, catalog):
        def dispatcher(plan):
            raise RuntimeError("agents offline")

        outcome = make_controller(catalog, tmp_path, FakeProbe(), dispatcher=dispatcher, max_iterations=1).run()

        assert outcome.final_state is IterationState.PAUSED
        status = json.loads((tmp_path / "run" / "iteration_01" / "status_update.json").read_text(encoding="utf-8"))
        assert status["dispatch_error"] == "agents offline"

    def test_orchestrator_verdicts_update_pipeline(self, tmp_path, catalog):
        validators = make_validators(functional=CategoryResult(passed=False, details="Unit Tests: 0/1 passed"))
        orchestrator = GapOrchestrator(validators, catalog=catalog)
        outcome = make_controller(
            catalog, tmp_path, FakeProbe(), orchestrator=orchestrator, max_iterations=1
        ).run()

        assert all(gap.status is GapStatus.FAILED for gap in outcome.gaps.values())
        status = json.loads((tmp_path / "run" / "iteration_01" / "status_update.json").read_text(encoding="utf-8"))
        assert len(status["verdicts"]) == 5
        assert {"gap_id": "GAP-010", "from": "Open", "to": "ImplementedPendingTest"} in status["transitions"]
        assert status["pipeline"]["GAP-010"] == "Failed"

    def test_record_is_written_before_next_iteration(self, tmp_path, catalog):
        seen = []
        writer = IterationEvidenceWriter(tmp_path / "run")

        class Probe(FakeProbe):
            def is_closed(self, gap_id):
                seen.append(sorted(p.name for p in (tmp_path / "run").glob("iteration_*/iteration_record.json")))
                return super().is_closed(gap_id)

        controller = IterationController(
            scope_ids=["GAP-010"],
            catalog=catalog,
            presence_probe=Probe(),
            gate_runner=FakeGates(),
            evidence_writer=writer,
            max_iterations=2,
            now=lambda: NOW,
        )
        controller.run()

        # Probe calls: iteration 1 analysis + check, then iteration 2 analysis
        assert seen[0] == []
        assert len(seen[2]) == 1

    def test_rejects_zero_budget(self, tmp_path, catalog):
        with pytest.raises(ValueError):
            make_controller(catalog, tmp_path, FakeProbe(), max_iterations=0)

    def test_evidence_failure_propagates(self, tmp_path, catalog):
        blocker = tmp_path / "run"
        blocker.write_text("", encoding="utf-8")
        controller = IterationController(
            scope_ids=catalog.ids(),
            catalog=catalog,
            presence_probe=FakeProbe(),
            gate_runner=FakeGates(),
            evidence_writer=IterationEvidenceWriter(blocker),
            max_iterations=1,
        )
        with pytest.raises(EvidenceWriteError):
            controller.run()
