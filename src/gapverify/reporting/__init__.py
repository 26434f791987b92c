"""Report rendering and evidence persistence."""

from .renderers import (
    ReportFormat,
    render,
    render_archetype,
    render_console,
    render_json,
    render_markdown,
)
from .reporter import ReportArtifacts, TestReporter

__all__ = [
    "ReportArtifacts",
    "ReportFormat",
    "TestReporter",
    "render",
    "render_archetype",
    "render_console",
    "render_json",
    "render_markdown",
]
