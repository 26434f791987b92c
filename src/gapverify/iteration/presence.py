"""Gap presence probes for the analysis step of the iteration loop."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from gapverify.catalog import ClosureValidation, GapCatalog

logger = logging.getLogger(__name__)


class PresenceProbe(Protocol):
    def is_closed(self, gap_id: str) -> bool:
        """True when the closure artifact or condition of ``gap_id`` exists."""
        ...


class ArtifactPresenceProbe:
    """Closes a gap when every one of its catalog artifact globs matches a path.

    Patterns are resolved relative to ``repo_root`` with ``Path.glob``, so
    ``**/`` prefixes search the whole tree.
    """

    def __init__(self, repo_root: Path, catalog: GapCatalog):
        self.repo_root = Path(repo_root)
        self.catalog = catalog

    def _artifact_exists(self, pattern: str) -> bool:
        try:
            return next(iter(self.repo_root.glob(pattern)), None) is not None
        except (OSError, ValueError) as e:
            logger.warning(f"[Presence] Cannot evaluate pattern {pattern!r}: {e}")
            return False

    def check(self, gap_id: str) -> ClosureValidation:
        return self.catalog.validate_closure(gap_id, self._artifact_exists)

    def is_closed(self, gap_id: str) -> bool:
        validation = self.check(gap_id)
        if not validation.closed:
            logger.debug(f"[Presence] {gap_id} open: {'; '.join(validation.remaining_issues)}")
        return validation.closed
