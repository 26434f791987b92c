"""Durable per-iteration evidence.

Layout under the run directory::

    iteration_01/
        gap_status.json
        master_document.md
        dispatch_plan.md
        verification_gates.txt
        build.log / tests.log
        status_update.json
        iteration_record.json
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from gapverify.ci.gate_runner import GateResult
from gapverify.exceptions import EvidenceWriteError
from gapverify.models import IterationRecord

logger = logging.getLogger(__name__)

GAP_STATUS_FILE = "gap_status.json"
MASTER_DOCUMENT_FILE = "master_document.md"
DISPATCH_PLAN_FILE = "dispatch_plan.md"
GATES_FILE = "verification_gates.txt"
STATUS_UPDATE_FILE = "status_update.json"
RECORD_FILE = "iteration_record.json"


class IterationEvidenceWriter:
    """Writes iteration artifacts; any failure raises EvidenceWriteError."""

    def __init__(self, run_dir: Path):
        self.run_dir = Path(run_dir)

    @classmethod
    def for_new_run(cls, base_dir: Path, name: str) -> "IterationEvidenceWriter":
        """Writer for a freshly created ``base_dir/name``.

        A run directory is never shared: if ``name`` is taken (two runs in
        the same second) ``name-1``, ``name-2``, ... are tried.
        """
        base_dir = Path(base_dir)
        try:
            base_dir.mkdir(parents=True, exist_ok=True)
            candidate = base_dir / name
            suffix = 0
            while True:
                try:
                    candidate.mkdir()
                    break
                except FileExistsError:
                    suffix += 1
                    candidate = base_dir / f"{name}-{suffix}"
        except OSError as e:
            raise EvidenceWriteError(f"Cannot create run directory under {base_dir}: {e}", path=base_dir) from e
        logger.info(f"[Evidence] Run directory {candidate}")
        return cls(candidate)

    def iteration_dir(self, iteration: int) -> Path:
        return self.run_dir / f"iteration_{iteration:02d}"

    def _write(self, iteration: int, name: str, content: str) -> Path:
        path = self.iteration_dir(iteration) / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise EvidenceWriteError(f"Cannot write iteration evidence {path}: {e}", path=path) from e
        logger.debug(f"[Evidence] Wrote {path}")
        return path

    def _write_json(self, iteration: int, name: str, payload: Any) -> Path:
        return self._write(iteration, name, json.dumps(payload, indent=2, ensure_ascii=False, default=str))

    def write_gap_status(self, iteration: int, payload: dict[str, Any]) -> Path:
        return self._write_json(iteration, GAP_STATUS_FILE, payload)

    def write_master_document(self, iteration: int, text: str) -> Path:
        return self._write(iteration, MASTER_DOCUMENT_FILE, text)

    def write_dispatch_plan(self, iteration: int, text: str) -> Path:
        return self._write(iteration, DISPATCH_PLAN_FILE, text)

    def write_gates(self, iteration: int, gates: Iterable[GateResult]) -> Path:
        """``<name>: PASS|FAIL`` lines plus one ``<name>.log`` per gate."""
        gates = list(gates)
        for gate in gates:
            self._write(iteration, f"{gate.name}.log", gate.log)
        return self._write(iteration, GATES_FILE, "".join(f"{gate.name}: {gate.label}\n" for gate in gates))

    def write_status_update(self, iteration: int, payload: dict[str, Any]) -> Path:
        return self._write_json(iteration, STATUS_UPDATE_FILE, payload)

    def write_record(self, record: IterationRecord) -> Path:
        return self._write(record.iteration_number, RECORD_FILE, record.model_dump_json(indent=2))
