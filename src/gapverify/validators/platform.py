"""Platform/environment correctness.

Three OS-level probes: storage directories are reachable, the process
lifecycle behaves (main thread alive, an event loop can start and stop), and
the platform services the gap relies on can be found. None of them touch
anything beyond filesystem and OS queries.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from gapverify.config import Settings, settings as default_settings
from gapverify.models import Category, CategoryResult
from gapverify.validators.base import check_mark

logger = logging.getLogger(__name__)

Probe = Callable[[], bool]

STORAGE_CHECK = "Storage Reachability"
LIFECYCLE_CHECK = "Lifecycle Sanity"
INTEGRATION_CHECK = "Platform Integration"


def storage_reachable() -> bool:
    """Home and temp directories exist and the temp directory is writable."""
    home = Path.home()
    temp_dir = Path(tempfile.gettempdir())
    return home.is_dir() and temp_dir.is_dir() and os.access(temp_dir, os.W_OK)


def lifecycle_sane() -> bool:
    """The main thread is alive and a fresh event loop can run and close."""
    if not threading.main_thread().is_alive():
        return False

    async def _noop() -> bool:
        return True

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(_noop())
    finally:
        loop.close()


def make_integration_probe(tools: Sequence[str]) -> Probe:
    """Probe that every required platform tool is on PATH."""

    def integration_reachable() -> bool:
        missing = [tool for tool in tools if shutil.which(tool) is None]
        if missing:
            logger.info(f"[Platform] Missing platform tools: {', '.join(missing)}")
        return not missing

    return integration_reachable


def default_checks(settings: Optional[Settings] = None) -> dict[str, Probe]:
    settings = settings or default_settings
    return {
        STORAGE_CHECK: storage_reachable,
        LIFECYCLE_CHECK: lifecycle_sane,
        INTEGRATION_CHECK: make_integration_probe(settings.integration_tools),
    }


class PlatformCorrectnessValidator:
    category = Category.PLATFORM_CORRECTNESS

    def __init__(self, checks: Optional[Mapping[str, Probe]] = None, settings: Optional[Settings] = None):
        self.checks = dict(checks) if checks is not None else default_checks(settings)

    def validate(self, gap_id: str) -> CategoryResult:
        logger.info(f"[Platform] Running platform correctness checks for {gap_id}")
        outcomes: dict[str, bool] = {}
        for name, probe in self.checks.items():
            try:
                outcomes[name] = bool(probe())
            except Exception as e:
                logger.warning(f"[Platform] {gap_id}: check '{name}' raised: {e}")
                outcomes[name] = False

        passed = bool(outcomes) and all(outcomes.values())
        details = "\n".join(f"{name}: {check_mark(ok)}" for name, ok in outcomes.items())
        return CategoryResult(passed=passed, details=details, score=1.0)
