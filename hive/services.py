"""Boundaries to the collaborators the orchestration core depends on.

- LLM invocation (``LLMService``): LangChain chat models behind a timeout,
  transient-error retry and error classification.
- Response cache (``ResponseCache``): optional; a hit skips the invocation.
- Cost/usage ledger (``UsageLedger``): fire-and-forget; its failures are
  logged and never abort a run.
- Tool execution (``ToolExecutor``): file, shell and database tools live
  outside the core and return opaque strings.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Protocol

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from hive.config import get_config
from hive.utils.parsing import invoke_with_retry, message_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageRecord:
    agent: str
    model: str
    tokens_in: int
    tokens_out: int
    latency_ms: int
    thread_id: str | None = None


class ResponseCache(Protocol):
    def get(self, key: tuple) -> AIMessage | None: ...

    def set(self, key: tuple, response: AIMessage) -> None: ...


class UsageLedger(Protocol):
    def record(self, usage: UsageRecord) -> None: ...


class ToolExecutor(Protocol):
    async def execute(self, name: str, args: dict) -> str: ...


class InMemoryResponseCache:
    """Process-local cache keyed by (system prompt, user message, model)."""

    def __init__(self):
        self._entries: dict[tuple, AIMessage] = {}
        self._lock = threading.Lock()

    def get(self, key: tuple) -> AIMessage | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: tuple, response: AIMessage) -> None:
        with self._lock:
            self._entries[key] = response

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class InMemoryUsageLedger:
    """Keeps every usage record in memory; useful for the CLI summary and tests."""

    def __init__(self):
        self.records: list[UsageRecord] = []
        self._lock = threading.Lock()

    def record(self, usage: UsageRecord) -> None:
        with self._lock:
            self.records.append(usage)

    def totals(self) -> dict[str, int]:
        with self._lock:
            return {
                "calls": len(self.records),
                "tokens_in": sum(r.tokens_in for r in self.records),
                "tokens_out": sum(r.tokens_out for r in self.records),
            }


def make_chat_model(model: str, temperature: float = 0.2):
    """Build the LangChain chat model for a model name."""
    if model.startswith("gemini"):
        return ChatGoogleGenerativeAI(model=model, temperature=temperature)
    return ChatAnthropic(model=model, temperature=temperature)


def cache_key(system_prompt: str, messages: list, model: str) -> tuple:
    """Cache key: system prompt, most recent user-side message, model."""
    user_text = ""
    for message in reversed(messages):
        if isinstance(message, HumanMessage):
            user_text = message_text(message)
            break
    return (system_prompt, user_text, model)


class LLMService:
    """Default LLM invocation service backed by LangChain chat models."""

    def __init__(self, cache: ResponseCache | None = None, ledger: UsageLedger | None = None,
                 config: dict | None = None):
        self.cache = cache
        self.ledger = ledger
        self.config = config if config is not None else get_config()

    async def invoke(self, *, agent: str, system_prompt: str, messages: list, model: str,
                     tools: list | None = None, thread_id: str | None = None) -> AIMessage:
        """Send one request to the model and return its response message.

        Raises UpstreamInvocationError (retryable or fatal) on failure.
        """
        key = cache_key(system_prompt, messages, model)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("[HIVE] Cache hit for %s (%s)", agent, model)
                return cached

        llm = make_chat_model(model, self.config.get("temperature", 0.2))
        if tools:
            llm = llm.bind_tools(tools)

        started = time.monotonic()
        response = await invoke_with_retry(
            llm,
            [SystemMessage(content=system_prompt), *messages],
            max_retries=self.config.get("llm_max_retries", 2),
            timeout=self.config.get("llm_timeout_seconds"),
        )
        latency_ms = int((time.monotonic() - started) * 1000)

        self._report_usage(agent, model, response, latency_ms, thread_id)
        if self.cache is not None:
            self.cache.set(key, response)
        return response

    def _report_usage(self, agent, model, response, latency_ms, thread_id) -> None:
        if self.ledger is None:
            return
        usage = getattr(response, "usage_metadata", None) or {}
        record = UsageRecord(
            agent=agent,
            model=model,
            tokens_in=usage.get("input_tokens", 0),
            tokens_out=usage.get("output_tokens", 0),
            latency_ms=latency_ms,
            thread_id=thread_id,
        )
        try:
            self.ledger.record(record)
        except Exception as exc:  # ledger is best-effort
            logger.warning("[HIVE] Usage ledger failed for %s: %r", agent, exc)
