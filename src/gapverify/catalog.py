"""Gap catalog: known gaps, their closure criteria and verification settings.

The catalog is data (YAML), not code. The orchestrator looks up which
categories a gap requires and any per-gap thresholds; the iteration loop
looks up scopes, dependencies and closure artifacts.

Usage:
    catalog = GapCatalog.default()
    catalog.categories_for("GAP-004")
    catalog.scope("mvp")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gapverify.exceptions import CatalogError
from gapverify.models import ALL_CATEGORIES, Category

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "gap_catalog.yaml"
FULL_SCOPE = "full"


class GapKind(str, Enum):
    FUNCTIONAL = "Functional"
    PERFORMANCE = "Performance"
    SECURITY = "Security"
    ACCESSIBILITY = "Accessibility"
    INTEGRATION = "Integration"
    UI_UX = "UI/UX"
    DOCUMENTATION = "Documentation"


class Priority(str, Enum):
    CRITICAL = "P0"
    HIGH = "P1"
    MEDIUM = "P2"
    LOW = "P3"


class GapThresholds(BaseModel):
    """Per-gap verification knobs.

    Unset fields fall back to the validator configured from settings.
    """

    model_config = ConfigDict(extra="forbid")

    determinism: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    determinism_runs: Optional[int] = Field(default=None, ge=1)


class GapDefinition(BaseModel):
    """One catalog entry."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    description: str
    kind: GapKind = GapKind.FUNCTIONAL
    priority: Priority = Priority.MEDIUM
    acceptance_criteria: list[str] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=lambda: list(ALL_CATEGORIES))
    thresholds: GapThresholds = Field(default_factory=GapThresholds)
    artifacts: list[str] = Field(default_factory=list)
    depends_on: list[str] = Field(default_factory=list)

    @field_validator("categories")
    @classmethod
    def _order_categories(cls, v: list[Category]) -> list[Category]:
        if not v:
            raise ValueError("a gap must require at least one category")
        return Category.ordered(v)


class CatalogFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: str = "1.0"
    gaps: list[GapDefinition] = Field(default_factory=list)
    scopes: dict[str, list[str]] = Field(default_factory=dict)


@dataclass
class ClosureValidation:
    """Whether a gap's closure criteria are met."""

    gap_id: str
    closed: bool
    verification_notes: list[str] = field(default_factory=list)
    remaining_issues: list[str] = field(default_factory=list)


class GapCatalog:
    """Registry of known gaps, looked up by id."""

    def __init__(
        self,
        definitions: Iterable[GapDefinition] = (),
        scopes: Optional[dict[str, list[str]]] = None,
    ):
        self._gaps: dict[str, GapDefinition] = {}
        for definition in definitions:
            if definition.id in self._gaps:
                raise CatalogError(f"Duplicate gap id in catalog: {definition.id}")
            self._gaps[definition.id] = definition
        self._scopes: dict[str, list[str]] = {name: list(ids) for name, ids in (scopes or {}).items()}
        self._check_references()

    # -- construction -----------------------------------------------------

    @classmethod
    def from_mapping(cls, data: Any, source: str = "<mapping>") -> "GapCatalog":
        if not isinstance(data, dict):
            raise CatalogError(f"Catalog {source} must be a mapping, got {type(data).__name__}")
        try:
            parsed = CatalogFile.model_validate(data)
        except ValidationError as e:
            raise CatalogError(f"Invalid catalog {source}: {e}") from e
        return cls(parsed.gaps, parsed.scopes)

    @classmethod
    def load(cls, path: Path) -> "GapCatalog":
        """Load a catalog from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise CatalogError(f"Cannot read catalog {path}: {e}") from e
        except yaml.YAMLError as e:
            raise CatalogError(f"Malformed YAML in catalog {path}: {e}") from e

        catalog = cls.from_mapping(data, source=str(path))
        logger.info(f"[Catalog] Loaded {len(catalog)} gaps from {path}")
        return catalog

    @classmethod
    def default(cls) -> "GapCatalog":
        """Catalog shipped with the package."""
        return cls.load(DEFAULT_CATALOG_PATH)

    def _check_references(self) -> None:
        for definition in self._gaps.values():
            unknown = [dep for dep in definition.depends_on if dep not in self._gaps]
            if unknown:
                raise CatalogError(f"Gap {definition.id} depends on unknown gaps: {unknown}")
        for name, ids in self._scopes.items():
            unknown = [gap_id for gap_id in ids if gap_id not in self._gaps]
            if unknown:
                raise CatalogError(f"Scope '{name}' references unknown gaps: {unknown}")

    # -- lookups ----------------------------------------------------------

    def __len__(self) -> int:
        return len(self._gaps)

    def __contains__(self, gap_id: object) -> bool:
        return gap_id in self._gaps

    def ids(self) -> list[str]:
        return list(self._gaps)

    def definitions(self) -> list[GapDefinition]:
        return list(self._gaps.values())

    def get(self, gap_id: str) -> Optional[GapDefinition]:
        return self._gaps.get(gap_id)

    def register(self, definition: GapDefinition) -> None:
        """Add or replace a gap definition."""
        unknown = [dep for dep in definition.depends_on if dep not in self._gaps and dep != definition.id]
        if unknown:
            raise CatalogError(f"Gap {definition.id} depends on unknown gaps: {unknown}")
        self._gaps[definition.id] = definition

    def description_for(self, gap_id: str) -> str:
        definition = self._gaps.get(gap_id)
        return definition.description if definition else f"Gap {gap_id} validation"

    def categories_for(self, gap_id: str) -> list[Category]:
        """Required categories; unknown gaps get all four."""
        definition = self._gaps.get(gap_id)
        return list(definition.categories) if definition else list(ALL_CATEGORIES)

    def thresholds_for(self, gap_id: str) -> GapThresholds:
        definition = self._gaps.get(gap_id)
        return definition.thresholds if definition else GapThresholds()

    def scope_names(self) -> list[str]:
        names = list(self._scopes)
        if FULL_SCOPE not in names:
            names.append(FULL_SCOPE)
        return names

    def scope(self, name: str) -> list[str]:
        """Ordered gap ids for a named scope; ``full`` defaults to every gap."""
        if name in self._scopes:
            return list(self._scopes[name])
        if name == FULL_SCOPE:
            return self.ids()
        raise CatalogError(f"Unknown scope '{name}' (known: {', '.join(self.scope_names())})")

    def dependents_of(self, gap_id: str) -> list[str]:
        return [d.id for d in self._gaps.values() if gap_id in d.depends_on]

    # -- closure ----------------------------------------------------------

    def validate_closure(self, gap_id: str, artifact_exists: Callable[[str], bool]) -> ClosureValidation:
        """Check that every closure artifact of ``gap_id`` is present."""
        definition = self._gaps.get(gap_id)
        if definition is None:
            return ClosureValidation(
                gap_id=gap_id,
                closed=False,
                verification_notes=["Gap not found in catalog"],
                remaining_issues=[f"Gap ID {gap_id} not registered"],
            )

        if not definition.artifacts:
            return ClosureValidation(
                gap_id=gap_id,
                closed=False,
                remaining_issues=["No closure artifacts declared"],
            )

        notes: list[str] = []
        issues: list[str] = []
        for pattern in definition.artifacts:
            if artifact_exists(pattern):
                notes.append(f"✓ artifact present: {pattern}")
            else:
                issues.append(f"✗ artifact missing: {pattern}")

        closed = not issues
        for criterion in definition.acceptance_criteria:
            (notes if closed else issues).append(f"{'✓' if closed else '✗'} {criterion}")

        return ClosureValidation(
            gap_id=gap_id,
            closed=closed,
            verification_notes=notes,
            remaining_issues=issues,
        )
