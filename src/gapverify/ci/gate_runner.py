"""Verification gate runner.

Runs the configured "build" and "test suite" commands for the iteration
loop. Gates are reported alongside gap status; they never close gaps and
failures are recorded, not retried.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from gapverify.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

BUILD_GATE = "build"
TESTS_GATE = "tests"


@dataclass(frozen=True)
class GateResult:
    """Outcome of one gate command."""

    name: str
    passed: bool
    log: str
    duration_seconds: float = 0.0
    command: Optional[str] = None

    @property
    def label(self) -> str:
        return "PASS" if self.passed else "FAIL"


class GateRunner:
    """Runs build/test gate commands inside the repository root."""

    def __init__(self, repo_root: Path, settings: Optional[Settings] = None):
        self.repo_root = repo_root
        self.settings = settings or default_settings

    def run_build(self) -> GateResult:
        return self.run_gate(BUILD_GATE, self.settings.build_command)

    def run_tests(self) -> GateResult:
        return self.run_gate(TESTS_GATE, self.settings.test_command)

    def run_gate(self, name: str, command: Optional[str]) -> GateResult:
        if not command:
            logger.warning(f"[Gate:{name}] No command configured; recording FAIL")
            return GateResult(name=name, passed=False, log="gate command not configured")

        timeout_seconds = self.settings.gate_timeout_seconds
        env = os.environ.copy()
        env["PYTHONUTF8"] = "1"

        logger.info(f"[Gate:{name}] Running: {command}")
        start_time = time.monotonic()
        try:
            result = subprocess.run(
                shlex.split(command),
                cwd=str(self.repo_root),
                capture_output=True,
                text=True,
                timeout=timeout_seconds,
                env=env,
            )
        except subprocess.TimeoutExpired:
            duration = time.monotonic() - start_time
            logger.error(f"[Gate:{name}] Timed out after {duration:.1f}s")
            return GateResult(
                name=name,
                passed=False,
                log=f"Command timed out after {timeout_seconds}s",
                duration_seconds=round(duration, 2),
                command=command,
            )
        except OSError as e:
            logger.error(f"[Gate:{name}] Could not launch command: {e}")
            return GateResult(name=name, passed=False, log=f"Command unavailable: {e}", command=command)

        duration = time.monotonic() - start_time
        passed = result.returncode == 0
        log = self._trim_output(result.stdout + "\n\n--- STDERR ---\n\n" + result.stderr)

        if passed:
            logger.info(f"[Gate:{name}] PASS in {duration:.1f}s")
        else:
            logger.warning(f"[Gate:{name}] FAIL (exit {result.returncode})")

        return GateResult(
            name=name,
            passed=passed,
            log=log,
            duration_seconds=round(duration, 2),
            command=command,
        )

    def _trim_output(self, output: str, limit: int = 20000) -> str:
        if len(output) <= limit:
            return output
        return output[: limit // 2] + "\n\n... (truncated) ...\n\n" + output[-limit // 2 :]
