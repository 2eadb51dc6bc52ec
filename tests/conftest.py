"""Shared fixtures for the HIVE test suite."""

import asyncio
from unittest.mock import patch

import pytest
from langchain_core.messages import AIMessage

from hive.checkpoint import MemoryCheckpointStore
from hive.orchestrator import Orchestrator
from hive.state import create_initial_state

TEST_CONFIG = {
    "default_model": "claude-sonnet-4-6",
    "agent_models": {"Designer": "gemini-2.0-flash"},
    "temperature": 0.2,
    "max_turns": 50,
    "max_agent_retries": 3,
    "agent_retry_limits": {"Builder": 3},
    "retry_fallback_agent": None,
    "approval_gates": [],
    "llm_timeout_seconds": 5,
    "llm_max_retries": 2,
    "approval_markers": ["✅ approve", "verdict: approve"],
    "checkpoint_dir": "./data/threads",
    "report_path": "./output/artifacts.md",
}

PRD_JSON = """{
  "type": "PRD",
  "title": "Todo App",
  "goal": "Let people track what they need to do.",
  "successMetrics": ["50% of users add a second task"],
  "userStories": [
    {"id": "US-001", "title": "Add a task", "asA": "user", "iWant": "to add a task",
     "soThat": "I remember it", "acceptanceCriteria": ["Task appears in the list"], "priority": "P0"},
    {"id": "US-002", "title": "Complete a task", "asA": "user", "iWant": "to tick a task off",
     "soThat": "I see progress", "acceptanceCriteria": ["Task shows as done"], "priority": "P1"}
  ],
  "outOfScope": ["Sharing"],
  "openQuestions": []
}"""


def tool_call(name: str, args: dict, call_id: str = "call_1") -> dict:
    return {"name": name, "args": args, "id": call_id}


def handoff_message(target: str, reason: str = "next step", content: str = "") -> AIMessage:
    return AIMessage(
        content=content,
        tool_calls=[tool_call("handoff_to_agent", {"target_agent": target, "reason": reason})],
    )


def delegate_message(*tasks: tuple, content: str = "Splitting the work.") -> AIMessage:
    """AIMessage with one delegate_task call per (worker_role, task_description[, priority])."""
    calls = []
    for i, task in enumerate(tasks):
        args = {"worker_role": task[0], "task_description": task[1]}
        if len(task) > 2:
            args["priority"] = task[2]
        calls.append(tool_call("delegate_task", args, f"call_{i}"))
    return AIMessage(content=content, tool_calls=calls)


class FakeLLM:
    """Scripted stand-in for LLMService.

    ``script`` maps an agent name to a list of responses. Each call pops the
    next one; the last entry repeats. A response may be a string, an
    AIMessage, or an exception instance to raise. Unscripted agents answer
    "<agent> output".
    """

    def __init__(self, script: dict | None = None):
        self.script = {agent: list(items) for agent, items in (script or {}).items()}
        self.calls = []

    @property
    def agents_called(self) -> list[str]:
        return [call["agent"] for call in self.calls]

    async def invoke(self, *, agent, system_prompt, messages, model, tools=None, thread_id=None):
        self.calls.append({
            "agent": agent,
            "system_prompt": system_prompt,
            "messages": list(messages),
            "model": model,
            "tools": [t.name for t in tools or []],
            "thread_id": thread_id,
        })
        queue = self.script.get(agent)
        if not queue:
            return AIMessage(content=f"{agent} output")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return AIMessage(content=item)
        return item


class FakeToolExecutor:
    """Host tool executor returning scripted outputs (last one repeats)."""

    def __init__(self, outputs: list[str]):
        self.outputs = list(outputs)
        self.calls = []

    async def execute(self, name: str, args: dict) -> str:
        self.calls.append((name, args))
        return self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]


def run(coro):
    """Drive a coroutine from a plain test function."""
    return asyncio.run(coro)


@pytest.fixture
def mock_config():
    """Patch the config singleton with test-friendly values."""
    test_config = {**TEST_CONFIG, "agent_models": dict(TEST_CONFIG["agent_models"])}
    with patch("hive.config._config", test_config):
        yield test_config


@pytest.fixture
def base_state():
    """Fresh WorkflowState for a todo-app request."""
    return create_initial_state("thread-1", "Build a todo app")


@pytest.fixture
def make_orchestrator(mock_config):
    """Factory: Orchestrator over a FakeLLM and an in-memory store.

    Keyword overrides are applied on top of the test config.
    """

    def _make(script=None, store=None, tool_executor=None, llm=None, **overrides):
        config = {**mock_config, **overrides}
        llm = llm if llm is not None else FakeLLM(script)
        orchestrator = Orchestrator(
            llm=llm,
            store=store if store is not None else MemoryCheckpointStore(),
            config=config,
            tool_executor=tool_executor,
        )
        return orchestrator, llm

    return _make
