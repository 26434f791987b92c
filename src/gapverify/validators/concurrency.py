"""Concurrency isolation contract checks.

Two contracts: state that drives the UI is only mutated from the designated
UI-thread context, and background work never touches that state directly.
No static analyzer ships with the engine, so the default analyzer reports
passing placeholders and says so in the details. A real analyzer plugs in
through ``ConcurrencyAnalyzer`` and goes through the same pass/fail contract.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from gapverify.exceptions import ValidatorFailureError
from gapverify.models import Category, CategoryResult
from gapverify.validators.base import check_mark

logger = logging.getLogger(__name__)


class ConcurrencyAnalyzer(Protocol):
    mode: str

    def ui_state_confined_to_main_thread(self, gap_id: str) -> bool:
        ...

    def background_work_isolated(self, gap_id: str) -> bool:
        ...


class SimulatedConcurrencyAnalyzer:
    """Placeholder analyzer used until a static analyzer is wired in."""

    mode = "simulated"

    def ui_state_confined_to_main_thread(self, gap_id: str) -> bool:
        return True

    def background_work_isolated(self, gap_id: str) -> bool:
        return True


class ConcurrencyIsolationValidator:
    category = Category.CONCURRENCY_ISOLATION

    def __init__(self, analyzer: Optional[ConcurrencyAnalyzer] = None):
        self.analyzer = analyzer or SimulatedConcurrencyAnalyzer()

    def validate(self, gap_id: str) -> CategoryResult:
        logger.info(f"[Concurrency] Validating concurrency isolation for {gap_id}")
        mode = getattr(self.analyzer, "mode", "analyzer")
        try:
            confined = bool(self.analyzer.ui_state_confined_to_main_thread(gap_id))
            isolated = bool(self.analyzer.background_work_isolated(gap_id))
        except Exception as e:
            raise ValidatorFailureError(self.category.value, f"{mode} analyzer error: {e}") from e

        details = "\n".join(
            [
                f"UI State Confinement: {check_mark(confined)}",
                f"Background Task Isolation: {check_mark(isolated)}",
                f"Mode: {mode}",
            ]
        )
        return CategoryResult(passed=confined and isolated, details=details, score=1.0)
