"""Common contract for category validators."""

from __future__ import annotations

from typing import Protocol

from gapverify.models import Category, CategoryResult


def check_mark(ok: bool) -> str:
    return "✓" if ok else "✗"


class CategoryValidator(Protocol):
    """Validates one correctness category for a gap.

    Implementations keep no state between calls.
    """

    category: Category

    def validate(self, gap_id: str) -> CategoryResult:
        ...
