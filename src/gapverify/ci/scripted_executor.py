"""Scripted Test Executor for deterministic tests and dry runs."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict, deque
from typing import Iterable, Optional, Union

from gapverify.ci.base import TestExecutionResult, TestScope

logger = logging.getLogger(__name__)

Outcome = Union[TestExecutionResult, BaseException]

DEFAULT_RESULT = TestExecutionResult(total=1, passed=1, failed=0)


class ScriptedTestExecutor:
    """Returns pre-scripted results instead of running anything.

    Results are queued per ``(scope, match)``. Each call pops the next queued
    outcome; the last one is repeated once the queue runs dry. An exception
    instance in the script is raised instead of returned. Unscripted calls
    get ``default``.
    """

    def __init__(self, default: Optional[Outcome] = DEFAULT_RESULT):
        self.default = default
        self._scripts: dict[tuple[TestScope, str], deque[Outcome]] = defaultdict(deque)
        self._lock = threading.Lock()
        self.calls: list[tuple[TestScope, str]] = []

    def script(self, scope: TestScope, match: str, outcomes: Union[Outcome, Iterable[Outcome]]) -> "ScriptedTestExecutor":
        if isinstance(outcomes, (TestExecutionResult, BaseException)):
            outcomes = [outcomes]
        with self._lock:
            self._scripts[(scope, match)].extend(outcomes)
        return self

    def run(self, scope: TestScope, match: str) -> TestExecutionResult:
        with self._lock:
            self.calls.append((scope, match))
            queue = self._scripts.get((scope, match))
            if queue:
                outcome = queue.popleft() if len(queue) > 1 else queue[0]
            else:
                outcome = self.default

        if outcome is None:
            raise LookupError(f"No scripted result for {scope.value}:{match}")
        if isinstance(outcome, BaseException):
            logger.debug(f"[ScriptedExecutor] {scope.value}:{match} raising {outcome!r}")
            raise outcome
        return outcome
