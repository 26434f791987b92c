"""Configuration module for gapverify settings.

Every component receives its collaborators explicitly; this module only
supplies defaults for the CLI wiring and for callers that do not care.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="GAPVERIFY_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Evidence locations are resolved relative to the repository root being verified.
    evidence_dir: str = ".gapverify/evidence/test_reports"
    iterations_dir: str = ".gapverify/iterations"
    catalog_path: str | None = None

    # Determinism trials. The 0.1s pause reduces cache-locality false positives;
    # tests set it to zero.
    trial_delay_seconds: float = Field(default=0.1, ge=0.0)
    determinism_runs: int = Field(default=3, ge=1)

    max_concurrent_gaps: int = Field(default=4, ge=1)

    # Pytest executor
    test_paths: list[str] = Field(default_factory=lambda: ["tests"])
    unit_marker_expr: str = "not behavioral"
    behavioral_marker_expr: str = "behavioral"
    test_timeout_seconds: int = 600

    # Verification gates
    build_command: str = "python -m compileall -q src"
    test_command: str = "python -m pytest -q"
    gate_timeout_seconds: int = 900

    # Platform integration reachability
    integration_tools: list[str] = Field(default_factory=lambda: ["git"])

    log_level: str = "INFO"


settings = Settings()


def get_settings() -> Settings:
    """Build a fresh Settings instance (re-reads environment and .env)."""

    return Settings()
