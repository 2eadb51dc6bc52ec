"""Input validation — checks caller input before a workflow run starts."""

import re

_THREAD_ID_RE = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


def validate_input(message: str) -> str:
    """Validate that the user message is a non-empty string.

    Returns the stripped input on success.
    Raises ValueError if input is empty or whitespace-only.
    """
    if not isinstance(message, str) or not message.strip():
        raise ValueError("Message must be a non-empty string.")
    return message.strip()


def validate_thread_id(thread_id: str) -> str:
    """Validate a thread identifier; it doubles as a checkpoint file name."""
    if not isinstance(thread_id, str) or not _THREAD_ID_RE.match(thread_id):
        raise ValueError(
            f"Invalid thread id {thread_id!r}: use 1-128 letters, digits, '.', '_' or '-'."
        )
    if thread_id in (".", ".."):
        raise ValueError(f"Invalid thread id {thread_id!r}.")
    return thread_id
