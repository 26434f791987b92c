"""Test execution and verification gate collaborators."""

from .base import TestExecutionResult, TestExecutor, TestScope
from .gate_runner import GateResult, GateRunner
from .pytest_executor import PytestExecutor
from .scripted_executor import ScriptedTestExecutor

__all__ = [
    "GateResult",
    "GateRunner",
    "PytestExecutor",
    "ScriptedTestExecutor",
    "TestExecutionResult",
    "TestExecutor",
    "TestScope",
]
