"""Category validators: one independent check per correctness dimension."""

from typing import Optional

from gapverify.ci.base import TestExecutor
from gapverify.config import Settings, settings as default_settings
from gapverify.determinism import DeterminismScorer
from gapverify.models import Category

from .base import CategoryValidator
from .concurrency import ConcurrencyAnalyzer, ConcurrencyIsolationValidator, SimulatedConcurrencyAnalyzer
from .determinism import DeterminismValidator
from .functional import FunctionalValidator
from .platform import PlatformCorrectnessValidator


def build_default_validators(
    executor: TestExecutor,
    scorer: DeterminismScorer,
    settings: Optional[Settings] = None,
) -> dict[Category, CategoryValidator]:
    """Wire the four standard validators around one executor and scorer."""
    settings = settings or default_settings
    return {
        Category.FUNCTIONAL: FunctionalValidator(executor),
        Category.PLATFORM_CORRECTNESS: PlatformCorrectnessValidator(settings=settings),
        Category.DETERMINISM: DeterminismValidator(executor, scorer, runs=settings.determinism_runs),
        Category.CONCURRENCY_ISOLATION: ConcurrencyIsolationValidator(),
    }


__all__ = [
    "CategoryValidator",
    "ConcurrencyAnalyzer",
    "ConcurrencyIsolationValidator",
    "DeterminismValidator",
    "FunctionalValidator",
    "PlatformCorrectnessValidator",
    "SimulatedConcurrencyAnalyzer",
    "build_default_validators",
]
