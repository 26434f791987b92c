"""gapverify - gap-closure verification engine.

Validates engineering gaps across functional, platform, determinism and
concurrency dimensions, reports verdicts as evidence, and drives the outer
loop until every gap in a scope is closed.
"""

__version__ = "0.3.0"
