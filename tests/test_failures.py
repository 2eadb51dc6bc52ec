"""Tests for hive.utils.failures.detect_failure."""

import pytest

from hive.utils.failures import detect_failure


@pytest.mark.parametrize("output", [
    "Tool run_command: Error: module not installed",
    "npm ERR! missing script: build",
    "FAIL tests/test_app.py::test_add",
    "Traceback (most recent call last):\n  File \"app.py\"",
    "SyntaxError: invalid syntax",
    "cannot find module 'express'",
])
def test_failure_detected(output):
    assert detect_failure(["ok", output]) == output


@pytest.mark.parametrize("output", [
    "All 12 tests passed",
    '{"handoff": true, "target_agent": "Tester", "reason": "ready"}',
    "Wrote 3 files",
])
def test_healthy_output(output):
    assert detect_failure([output]) is None


def test_empty_outputs():
    assert detect_failure([]) is None


def test_first_failure_wins():
    assert detect_failure(["error: one", "failed: two"]) == "error: one"
