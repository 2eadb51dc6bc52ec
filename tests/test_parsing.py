"""Tests for hive.utils.parsing: strip_fences, message_text, classify_exception, invoke_with_retry."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from langchain_core.messages import AIMessage
from tenacity import wait_none

from hive.errors import UpstreamErrorKind, UpstreamInvocationError
from hive.utils.parsing import classify_exception, invoke_with_retry, message_text, strip_fences


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://api.example.com")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"status {code}", request=request, response=response)


# --- strip_fences ---

class TestStripFences:
    def test_strip_json_fences(self):
        text = '```json\n{"key": "value"}\n```'
        assert strip_fences(text) == '{"key": "value"}'

    def test_strip_plain_fences(self):
        text = '```\n{"key": "value"}\n```'
        assert strip_fences(text) == '{"key": "value"}'

    def test_no_fences_returns_stripped(self):
        text = '  {"key": "value"}  '
        assert strip_fences(text) == '{"key": "value"}'

    def test_fences_with_extra_whitespace(self):
        text = '```json\n\n  {"key": "value"}  \n\n```'
        assert strip_fences(text).startswith("{")


# --- message_text ---

class TestMessageText:
    def test_string_content(self):
        assert message_text(AIMessage(content="hello")) == "hello"

    def test_content_blocks(self):
        msg = AIMessage(content=[{"type": "text", "text": "a"}, {"type": "tool_use", "id": "x"}, "b"])
        assert message_text(msg) == "ab"


# --- classify_exception ---

class TestClassifyException:
    @pytest.mark.parametrize("code,kind", [
        (429, UpstreamErrorKind.RATE_LIMITED),
        (500, UpstreamErrorKind.SERVER_ERROR),
        (503, UpstreamErrorKind.SERVER_ERROR),
        (401, UpstreamErrorKind.AUTH_ERROR),
        (403, UpstreamErrorKind.AUTH_ERROR),
        (400, UpstreamErrorKind.MALFORMED_REQUEST),
    ])
    def test_status_codes(self, code, kind):
        assert classify_exception(_status_error(code)) == kind

    def test_timeouts(self):
        assert classify_exception(asyncio.TimeoutError()) == UpstreamErrorKind.TIMEOUT
        assert classify_exception(httpx.ReadTimeout("slow")) == UpstreamErrorKind.TIMEOUT

    def test_connect_error_is_server_error(self):
        assert classify_exception(httpx.ConnectError("refused")) == UpstreamErrorKind.SERVER_ERROR

    def test_sdk_style_status_code(self):
        exc = Exception("overloaded")
        exc.status_code = 529
        assert classify_exception(exc) == UpstreamErrorKind.SERVER_ERROR

    def test_programming_error_unclassified(self):
        assert classify_exception(KeyError("oops")) is None


# --- invoke_with_retry ---

@patch("hive.utils.parsing.RETRY_WAIT", wait_none())
class TestInvokeWithRetry:
    def _mock_llm(self, side_effect):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=side_effect)
        return llm

    def test_succeeds_on_first_try(self):
        llm = self._mock_llm([AIMessage(content='{"ok": true}')])

        result = asyncio.run(invoke_with_retry(llm, ["hi"]))

        assert result.content == '{"ok": true}'
        assert llm.ainvoke.call_count == 1

    def test_retries_on_connect_error(self):
        llm = self._mock_llm([httpx.ConnectError("connection refused"), AIMessage(content="ok")])

        result = asyncio.run(invoke_with_retry(llm, ["hi"]))

        assert result.content == "ok"
        assert llm.ainvoke.call_count == 2

    def test_retries_on_429(self):
        llm = self._mock_llm([_status_error(429), AIMessage(content="ok")])

        result = asyncio.run(invoke_with_retry(llm, ["hi"]))

        assert result.content == "ok"
        assert llm.ainvoke.call_count == 2

    def test_raises_after_max_retries(self):
        llm = self._mock_llm([httpx.ConnectError(f"fail {i}") for i in range(3)])

        with pytest.raises(UpstreamInvocationError) as exc_info:
            asyncio.run(invoke_with_retry(llm, ["hi"], max_retries=2))

        assert exc_info.value.kind == UpstreamErrorKind.SERVER_ERROR
        assert exc_info.value.retryable
        assert llm.ainvoke.call_count == 3  # 1 initial + 2 retries

    def test_does_not_retry_on_auth_error(self):
        llm = self._mock_llm([_status_error(401)])

        with pytest.raises(UpstreamInvocationError) as exc_info:
            asyncio.run(invoke_with_retry(llm, ["hi"]))

        assert exc_info.value.kind == UpstreamErrorKind.AUTH_ERROR
        assert not exc_info.value.retryable
        assert llm.ainvoke.call_count == 1  # no retry for 401

    def test_timeout_is_classified(self):
        async def slow(_messages):
            await asyncio.sleep(10)

        llm = MagicMock()
        llm.ainvoke = slow

        with pytest.raises(UpstreamInvocationError) as exc_info:
            asyncio.run(invoke_with_retry(llm, ["hi"], max_retries=0, timeout=0.01))

        assert exc_info.value.kind == UpstreamErrorKind.TIMEOUT

    def test_programming_errors_propagate(self):
        llm = self._mock_llm([KeyError("bug")])

        with pytest.raises(KeyError):
            asyncio.run(invoke_with_retry(llm, ["hi"]))
