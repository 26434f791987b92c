"""Test reporter: renders verdicts and persists per-gap evidence.

``report(result)`` prints the console block and writes one JSON and one
Markdown file per call into the evidence directory. Files are created
exclusively and never overwritten; a name clash gets a numeric suffix.
A failed write raises EvidenceWriteError, since missing evidence breaks the
audit trail.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Sequence, TextIO

from gapverify.exceptions import EvidenceWriteError
from gapverify.models import GapTestResult
from gapverify.reporting.renderers import (
    ReportFormat,
    render,
    render_console_block,
    render_markdown,
    result_record,
)

logger = logging.getLogger(__name__)

FILENAME_TIMESTAMP = "%Y-%m-%d_%H-%M-%S"


@dataclass(frozen=True)
class ReportArtifacts:
    """Files written by one ``report()`` call."""

    json_path: Path
    markdown_path: Path


def _safe_id(gap_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", gap_id) or "unknown"


class TestReporter:
    """Renders and persists gap verification reports.

    Args:
        evidence_dir: Directory receiving per-gap JSON/Markdown files
        stream: Where console blocks are printed (None disables printing)
        now: Clock for timestamps, injectable for tests
    """

    __test__ = False

    def __init__(
        self,
        evidence_dir: Path,
        stream: Optional[TextIO] = sys.stdout,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.evidence_dir = Path(evidence_dir)
        self.stream = stream
        self._now = now

    def render(self, results: Sequence[GapTestResult], format: ReportFormat = ReportFormat.MARKDOWN) -> str:
        return render(results, format, generated_at=self._now())

    def report(self, result: GapTestResult) -> ReportArtifacts:
        """Print the console block and persist JSON + Markdown evidence.

        Raises:
            EvidenceWriteError: If the evidence files cannot be written
        """
        if self.stream is not None:
            self.stream.write(render_console_block(result))
            self.stream.flush()

        timestamp = self._now()
        record = {**result_record(result), "timestamp": timestamp.isoformat()}
        json_text = json.dumps(record, indent=2, ensure_ascii=False)
        markdown_text = render_markdown([result], generated_at=timestamp)

        try:
            self.evidence_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise EvidenceWriteError(f"Cannot create evidence directory: {e}", path=self.evidence_dir) from e

        stem = f"test-report-{_safe_id(result.gap_id)}-{timestamp.strftime(FILENAME_TIMESTAMP)}"
        artifacts = self._write_pair(stem, json_text, markdown_text)
        logger.info(f"[Reporter] Evidence for {result.gap_id} written to {artifacts.json_path}")
        return artifacts

    def _write_pair(self, stem: str, json_text: str, markdown_text: str) -> ReportArtifacts:
        suffix = 0
        while True:
            name = stem if suffix == 0 else f"{stem}-{suffix}"
            json_path = self.evidence_dir / f"{name}.json"
            markdown_path = self.evidence_dir / f"{name}.md"
            if json_path.exists() or markdown_path.exists():
                suffix += 1
                continue
            try:
                self._create(json_path, json_text)
            except FileExistsError:
                suffix += 1
                continue
            try:
                self._create(markdown_path, markdown_text)
            except FileExistsError:
                # JSON half is already on disk and stays as evidence
                suffix += 1
                continue
            return ReportArtifacts(json_path=json_path, markdown_path=markdown_path)

    @staticmethod
    def _create(path: Path, content: str) -> None:
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(content)
        except FileExistsError:
            raise
        except OSError as e:
            raise EvidenceWriteError(f"Cannot write evidence file {path}: {e}", path=path) from e
