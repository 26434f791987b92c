"""Outer gap-closure loop: analysis, planning, gates, evidence."""

from gapverify.ci.gate_runner import GateResult, GateRunner

from .controller import IterationController, IterationOutcome, IterationState, StateTransition
from .evidence import IterationEvidenceWriter
from .planning import DispatchPlan, DispatchPlanner, WaveEdge
from .presence import ArtifactPresenceProbe, PresenceProbe

__all__ = [
    "ArtifactPresenceProbe",
    "DispatchPlan",
    "DispatchPlanner",
    "GateResult",
    "GateRunner",
    "IterationController",
    "IterationEvidenceWriter",
    "IterationOutcome",
    "IterationState",
    "PresenceProbe",
    "StateTransition",
    "WaveEdge",
]
