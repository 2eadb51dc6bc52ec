"""Failure check: deterministic scan of tool output for signs a step must be retried.

Returns the first failing tool output, or None if the step looks healthy.
"""

import re

_FAILURE_PATTERNS = [
    re.compile(r"error:", re.IGNORECASE),
    re.compile(r"failed:", re.IGNORECASE),
    re.compile(r"exception:", re.IGNORECASE),
    re.compile(r"\bFAIL\b"),
    re.compile(r"ERR!"),
    re.compile(r"cannot find", re.IGNORECASE),
    re.compile(r"not found", re.IGNORECASE),
    re.compile(r"syntax error", re.IGNORECASE),
    re.compile(r"Traceback \(most recent call last\)"),
]


def detect_failure(tool_outputs: list[str]) -> str | None:
    """Return the first tool output matching a failure pattern.

    Only outputs of command-running and file tools are passed in; handoff
    and delegation outputs are JSON and never match.
    """
    for output in tool_outputs:
        for pattern in _FAILURE_PATTERNS:
            if pattern.search(output):
                return output
    return None
