"""Shared parsing and LLM utilities for agent responses."""

import asyncio
import logging
import re

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from hive.errors import UpstreamErrorKind, UpstreamInvocationError

logger = logging.getLogger(__name__)

# Backoff between transient-error retries.
RETRY_WAIT = wait_exponential(multiplier=1, min=2, max=16)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

_STATUS_KINDS = {
    400: UpstreamErrorKind.MALFORMED_REQUEST,
    401: UpstreamErrorKind.AUTH_ERROR,
    403: UpstreamErrorKind.AUTH_ERROR,
    404: UpstreamErrorKind.MALFORMED_REQUEST,
    408: UpstreamErrorKind.TIMEOUT,
    422: UpstreamErrorKind.MALFORMED_REQUEST,
    429: UpstreamErrorKind.RATE_LIMITED,
}


def strip_fences(text: str) -> str:
    """Strip markdown code fences from LLM output if present."""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text.strip()


def message_text(message) -> str:
    """Return the text of a chat message, flattening content-block lists."""
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return ""


def _status_code(exc: BaseException) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    # Provider SDK errors (anthropic, google) expose status_code directly.
    code = getattr(exc, "status_code", None)
    return code if isinstance(code, int) else None


def _is_transient(exc: BaseException) -> bool:
    """Return True if the exception is a transient HTTP/network error worth retrying."""
    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError)):
        return True
    return _status_code(exc) in (429, 500, 502, 503)


def classify_exception(exc: BaseException) -> UpstreamErrorKind | None:
    """Map a raw invocation failure onto the upstream error taxonomy.

    Returns None for exceptions that are not invocation failures (programming
    errors), which callers should let propagate unchanged.
    """
    if isinstance(exc, UpstreamInvocationError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return UpstreamErrorKind.TIMEOUT
    if isinstance(exc, httpx.TransportError):
        return UpstreamErrorKind.SERVER_ERROR
    code = _status_code(exc)
    if code is None:
        return None
    if code in _STATUS_KINDS:
        return _STATUS_KINDS[code]
    if code >= 500:
        return UpstreamErrorKind.SERVER_ERROR
    return UpstreamErrorKind.MALFORMED_REQUEST


async def invoke_with_retry(llm, messages, max_retries: int = 2, timeout: float | None = None):
    """Call ``await llm.ainvoke(messages)`` with exponential backoff on transient errors.

    Retries on HTTP 429/500/502/503, connection errors, and timeouts. Each
    attempt is bounded by ``timeout`` seconds. Once retries are spent, or on
    a non-transient failure, the error is raised as UpstreamInvocationError.
    """

    async def _invoke():
        if timeout is None:
            return await llm.ainvoke(messages)
        return await asyncio.wait_for(llm.ainvoke(messages), timeout=timeout)

    def _before_sleep(retry_state):
        logger.warning(
            "[HIVE] Transient error: %r. Retrying in %.0fs (attempt %d/%d)...",
            retry_state.outcome.exception(),
            retry_state.next_action.sleep,
            retry_state.attempt_number,
            max_retries,
        )

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_retries + 1),  # +1 because first attempt counts
            wait=RETRY_WAIT,
            retry=retry_if_exception(
                lambda exc: _is_transient(exc) or isinstance(exc, asyncio.TimeoutError)
            ),
            reraise=True,
            before_sleep=_before_sleep,
        ):
            with attempt:
                return await _invoke()
    except Exception as exc:
        kind = classify_exception(exc)
        if kind is None:
            raise
        raise UpstreamInvocationError(kind, str(exc) or type(exc).__name__) from exc
