"""Master task list and wave-grouped dispatch planning for open gaps."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Set

from gapverify.catalog import GapCatalog, Priority

_PRIORITY_RANK = {priority: rank for rank, priority in enumerate(Priority)}


@dataclass(frozen=True)
class WaveEdge:
    """A dependency that crosses waves: ``gap_id`` waits on ``depends_on``."""

    depends_on: str
    gap_id: str
    from_wave: int
    to_wave: int


@dataclass
class DispatchPlan:
    """Advisory plan for one iteration; the engine never executes it."""

    waves: Dict[int, List[str]]  # wave_number -> list of gap ids
    task_list: List[str]
    edges: List[WaveEdge]
    validation_passed: bool
    validation_errors: List[str]
    closed_ids: List[str] = field(default_factory=list)
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class DispatchPlanner:
    """Groups open gaps into dependency-respecting waves.

    A gap lands in the first wave after all of its open dependencies.
    Dependencies that are already closed, or that are not part of the open
    set, count as satisfied. Gaps sharing a closure artifact are kept in
    different waves so parallel workers do not collide on the same files.
    """

    def __init__(self, catalog: GapCatalog) -> None:
        self.catalog = catalog

    def _sort_key(self, gap_id: str) -> tuple:
        definition = self.catalog.get(gap_id)
        rank = _PRIORITY_RANK[definition.priority] if definition else len(_PRIORITY_RANK)
        return (rank, gap_id)

    def _open_deps(self, gap_id: str, open_ids: Set[str]) -> Set[str]:
        definition = self.catalog.get(gap_id)
        if definition is None:
            return set()
        return set(definition.depends_on) & open_ids

    def _artifacts(self, gap_id: str) -> Set[str]:
        definition = self.catalog.get(gap_id)
        return set(definition.artifacts) if definition else set()

    def plan(self, open_ids: Iterable[str], closed_ids: Iterable[str] = ()) -> DispatchPlan:
        """Build waves over ``open_ids``.

        Returns:
            DispatchPlan; on a dependency cycle the waves built so far are
            kept, ``validation_passed`` is False and the stuck gaps are
            appended to the end of the task list.
        """
        pending = sorted(set(open_ids), key=self._sort_key)
        open_set = set(pending)
        waves: Dict[int, List[str]] = {}
        assigned: Set[str] = set()
        errors: List[str] = []
        current_wave = 1

        while len(assigned) < len(pending):
            candidates = self._find_wave_candidates(pending, open_set, assigned)
            if not candidates:
                stuck = [gap_id for gap_id in pending if gap_id not in assigned]
                errors.append(f"Dependency cycle: cannot schedule gaps {stuck}")
                break
            waves[current_wave] = candidates
            assigned.update(candidates)
            current_wave += 1

        task_list = [gap_id for wave in waves.values() for gap_id in wave]
        task_list += [gap_id for gap_id in pending if gap_id not in assigned]

        edges = self._edges(waves, open_set)
        errors += self._validate_plan(waves, open_set)

        return DispatchPlan(
            waves=waves,
            task_list=task_list,
            edges=edges,
            validation_passed=not errors,
            validation_errors=errors,
            closed_ids=sorted(closed_ids),
        )

    def _find_wave_candidates(self, pending: List[str], open_set: Set[str], assigned: Set[str]) -> List[str]:
        candidates: List[str] = []
        wave_artifacts: Set[str] = set()

        for gap_id in pending:
            if gap_id in assigned:
                continue
            if not self._open_deps(gap_id, open_set).issubset(assigned):
                continue
            artifacts = self._artifacts(gap_id)
            if artifacts & wave_artifacts:
                continue  # artifact conflict, next wave
            candidates.append(gap_id)
            wave_artifacts.update(artifacts)

        return candidates

    def _edges(self, waves: Dict[int, List[str]], open_set: Set[str]) -> List[WaveEdge]:
        wave_of = {gap_id: num for num, gap_ids in waves.items() for gap_id in gap_ids}
        edges: List[WaveEdge] = []
        for num, gap_ids in waves.items():
            for gap_id in gap_ids:
                for dep in sorted(self._open_deps(gap_id, open_set)):
                    if dep in wave_of:
                        edges.append(WaveEdge(depends_on=dep, gap_id=gap_id, from_wave=wave_of[dep], to_wave=num))
        return edges

    def _validate_plan(self, waves: Dict[int, List[str]], open_set: Set[str]) -> List[str]:
        errors: List[str] = []
        for wave_num, gap_ids in waves.items():
            for gap_id in gap_ids:
                same_wave = self._open_deps(gap_id, open_set) & set(gap_ids)
                if same_wave:
                    errors.append(f"Wave {wave_num}: {gap_id} depends on same-wave gaps {sorted(same_wave)}")
        return errors

    # -- rendering --------------------------------------------------------

    def render_master_document(self, plan: DispatchPlan, iteration: int) -> str:
        lines = [
            f"# Master Gap Document (Iteration {iteration})",
            "",
            f"**Generated:** {plan.generated_at}",
            f"**Open gaps:** {len(plan.task_list)}",
            f"**Closed gaps:** {len(plan.closed_ids)}",
            "",
            "## Ordered Task List",
            "",
        ]
        if not plan.task_list:
            lines.append("_No open gaps._")
        for position, gap_id in enumerate(plan.task_list, start=1):
            definition = self.catalog.get(gap_id)
            priority = definition.priority.value if definition else "-"
            lines.append(f"{position}. **{gap_id}** [{priority}] {self.catalog.description_for(gap_id)}")
            if definition:
                for criterion in definition.acceptance_criteria:
                    lines.append(f"   - [ ] {criterion}")
                if definition.depends_on:
                    lines.append(f"   - Depends on: {', '.join(definition.depends_on)}")

        if plan.closed_ids:
            lines += ["", "## Closed", ""]
            lines += [f"- ~~{gap_id}~~ {self.catalog.description_for(gap_id)}" for gap_id in plan.closed_ids]

        if plan.validation_errors:
            lines += ["", "## Planning Errors", ""]
            lines += [f"- {error}" for error in plan.validation_errors]

        return "\n".join(lines) + "\n"

    def render_dispatch_plan(self, plan: DispatchPlan, iteration: int) -> str:
        lines = [
            f"# Dispatch Plan (Iteration {iteration})",
            "",
            f"**Waves:** {len(plan.waves)}",
            f"**Validation:** {'passed' if plan.validation_passed else 'FAILED'}",
            "",
        ]
        for wave_num, gap_ids in plan.waves.items():
            lines.append(f"## Wave {wave_num} ({len(gap_ids)} parallel)")
            lines.append("")
            for gap_id in gap_ids:
                lines.append(f"- {gap_id}: {self.catalog.description_for(gap_id)}")
            lines.append("")

        lines += ["## Inter-wave Dependencies", ""]
        if plan.edges:
            for edge in plan.edges:
                lines.append(
                    f"- {edge.depends_on} (wave {edge.from_wave}) -> {edge.gap_id} (wave {edge.to_wave})"
                )
        else:
            lines.append("_None._")

        if plan.validation_errors:
            lines += ["", "## Unscheduled", ""]
            lines += [f"- {error}" for error in plan.validation_errors]

        return "\n".join(lines) + "\n"
