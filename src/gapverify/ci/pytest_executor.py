"""Pytest-backed Test Executor.

Shells out to pytest for one scope, selecting tests by keyword (the gap id)
and by a scope marker expression, then parses the summary counts.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import sys
import time
from pathlib import Path
from typing import Optional

from gapverify.ci.base import TestExecutionResult, TestScope
from gapverify.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# pytest exit codes
EXIT_OK = 0
EXIT_TESTS_FAILED = 1
EXIT_NO_TESTS_COLLECTED = 5


class PytestExecutor:
    """Runs pytest for a scope and reports total/passed/failed/skipped.

    Responsibilities:
    1. Build the pytest command for the scope and match pattern
    2. Execute it with a timeout
    3. Parse the summary line
    4. Persist the raw output as a log next to the evidence
    """

    def __init__(
        self,
        workspace: Path,
        settings: Optional[Settings] = None,
        log_dir: Optional[Path] = None,
    ):
        self.workspace = workspace
        self.settings = settings or default_settings
        self.log_dir = log_dir

    def build_command(self, scope: TestScope, match: str) -> list[str]:
        cmd = [sys.executable, "-m", "pytest", *self.settings.test_paths, "-q", "--no-header", "-rN"]
        if match:
            cmd += ["-k", match]
        marker_expr = self._marker_expr(scope)
        if marker_expr:
            cmd += ["-m", marker_expr]
        return cmd

    def _marker_expr(self, scope: TestScope) -> Optional[str]:
        if scope is TestScope.UNIT:
            return self.settings.unit_marker_expr
        if scope is TestScope.BEHAVIORAL:
            return self.settings.behavioral_marker_expr
        return None

    def run(self, scope: TestScope, match: str) -> TestExecutionResult:
        cmd = self.build_command(scope, match)
        label = f"{scope.value}:{match or '*'}"
        logger.info(f"[PytestExecutor] Running {label}")

        env = os.environ.copy()
        env.setdefault("PYTHONPATH", str(self.workspace / "src"))
        env["PYTHONUTF8"] = "1"

        timeout_seconds = self.settings.test_timeout_seconds
        start_time = time.monotonic()
        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.workspace),
                capture_output=True,
                text=True,
                timeout=timeout_seconds,
                env=env,
            )
        except subprocess.TimeoutExpired:
            elapsed = time.monotonic() - start_time
            logger.error(f"[PytestExecutor] {label} timed out after {elapsed:.1f}s")
            return TestExecutionResult.unavailable(
                f"pytest timed out after {timeout_seconds}s", elapsed=round(elapsed, 2)
            )
        except OSError as e:
            logger.error(f"[PytestExecutor] Could not launch pytest for {label}: {e}")
            return TestExecutionResult.unavailable(f"pytest unavailable: {e}")

        elapsed = time.monotonic() - start_time
        output = result.stdout + result.stderr
        self._persist_log(scope, match, result.stdout + "\n\n--- STDERR ---\n\n" + result.stderr)

        if result.returncode == EXIT_NO_TESTS_COLLECTED:
            logger.warning(f"[PytestExecutor] {label}: no tests collected")
            return TestExecutionResult(total=0, passed=0, failed=0, skipped=0, elapsed=round(elapsed, 2))

        passed, failed, skipped, errors = self.parse_counts(output)
        failed += errors
        error = None
        if result.returncode not in (EXIT_OK, EXIT_TESTS_FAILED):
            error = f"pytest exited with code {result.returncode}"
            # Internal/usage errors with no parsed failures must still fail
            failed = max(failed, 1)

        execution = TestExecutionResult(
            total=passed + failed + skipped,
            passed=passed,
            failed=failed,
            skipped=skipped,
            elapsed=round(elapsed, 2),
            error=error,
        )
        logger.info(
            f"[PytestExecutor] {label}: {execution.passed}/{execution.total} passed "
            f"({execution.failed} failed, {execution.skipped} skipped) in {elapsed:.1f}s"
        )
        return execution

    @staticmethod
    def parse_counts(output: str) -> tuple[int, int, int, int]:
        """Parse pytest output into (passed, failed, skipped, errors)."""
        passed = failed = skipped = errors = 0
        for line in output.split("\n"):
            line_lower = line.lower()
            collection_error = re.search(r"(\d+)\s+errors?\s+during\s+collection", line_lower)
            if collection_error:
                errors = int(collection_error.group(1))
                continue

            passed_match = re.search(r"(\d+)\s+passed", line_lower)
            if passed_match:
                passed = int(passed_match.group(1))

            failed_match = re.search(r"(\d+)\s+failed", line_lower)
            if failed_match:
                failed = int(failed_match.group(1))

            skipped_match = re.search(r"(\d+)\s+skipped", line_lower)
            if skipped_match:
                skipped = int(skipped_match.group(1))

            error_match = re.search(r"(\d+)\s+errors?(?!\s+during)", line_lower)
            if error_match:
                errors = int(error_match.group(1))

        return passed, failed, skipped, errors

    def _persist_log(self, scope: TestScope, match: str, content: str) -> Optional[Path]:
        """Persist raw pytest output; best effort, the counts are the evidence."""
        if self.log_dir is None:
            return None
        safe_match = re.sub(r"[^A-Za-z0-9_.-]", "_", match or "all")
        log_path = self.log_dir / f"pytest_{scope.value}_{safe_match}.log"
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            log_path.write_text(content, encoding="utf-8")
            return log_path
        except OSError as log_err:
            logger.warning(f"[PytestExecutor] Failed to write log {log_path}: {log_err}")
            return None
