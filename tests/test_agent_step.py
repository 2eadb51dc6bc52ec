"""Tests for hive.agents.base.AgentStep and the prompt builder."""

import asyncio
import json

import pytest
from langchain_core.messages import AIMessage

from conftest import PRD_JSON, FakeLLM, FakeToolExecutor, delegate_message, handoff_message, tool_call
from hive.agents.base import AgentStep, build_agent_steps
from hive.agents.prompts import build_system_prompt, retry_context
from hive.errors import UpstreamErrorKind, UpstreamInvocationError


def _run_step(agent, state, script=None, tool_executor=None, config=None):
    llm = FakeLLM({agent: script} if script is not None else None)
    step = AgentStep(agent, llm, tool_executor=tool_executor, config=config)
    return asyncio.run(step(state)), llm


class TestAgentStep:
    def test_plain_response(self, mock_config, base_state):
        update, llm = _run_step("Founder", base_state, ["Validated vision."])
        assert update["messages"][0].content == "Validated vision."
        assert update["messages"][0].name == "Founder"
        assert update["contributors"] == ["Founder"]
        assert update["needs_retry"] is False
        assert "artifacts" not in update
        assert llm.calls[0]["tools"] == ["handoff_to_agent"]
        assert llm.calls[0]["thread_id"] == "thread-1"

    def test_model_from_config(self, mock_config, base_state):
        _, llm = _run_step("Designer", base_state)
        assert llm.calls[0]["model"] == "gemini-2.0-flash"

    def test_supervisor_gets_delegate_tool(self, mock_config, base_state):
        _, llm = _run_step("ProductManager", base_state)
        assert llm.calls[0]["tools"] == ["handoff_to_agent", "delegate_task"]

    def test_subtask_mode_has_no_core_tools(self, mock_config, base_state):
        base_state["sub_task_id"] = "task-1"
        _, llm = _run_step("Builder", base_state)
        assert llm.calls[0]["tools"] == []

    def test_artifact_parsed_and_rendered(self, mock_config, base_state):
        update, _ = _run_step("ProductManager", base_state, [PRD_JSON])
        assert update["artifacts"][0].type == "PRD"
        assert update["messages"][0].content.startswith("# PRD: Todo App")

    def test_unparseable_artifact_kept_as_message(self, mock_config, base_state):
        update, _ = _run_step("ProductManager", base_state, ["Here is a PRD in prose."])
        assert "artifacts" not in update
        assert update["messages"][0].content == "Here is a PRD in prose."

    def test_handoff_output(self, mock_config, base_state):
        update, _ = _run_step("Founder", base_state, [handoff_message("Designer", "mockups first")])
        data = json.loads(update["tool_outputs"][0])
        assert data["handoff"] is True
        assert data["target_agent"] == "Designer"

    def test_delegate_outputs(self, mock_config, base_state):
        update, _ = _run_step(
            "Planner", base_state, [delegate_message(("Builder", "API"), ("Tester", "Tests", "high"))]
        )
        assert [json.loads(o)["worker_role"] for o in update["tool_outputs"]] == ["Builder", "Tester"]

    def test_unknown_tool_without_executor(self, mock_config, base_state):
        message = AIMessage(content="Running", tool_calls=[tool_call("run_command", {"cmd": "ls"})])
        update, _ = _run_step("SRE", base_state, [message])
        assert "Unknown tool: run_command" in update["messages"][0].content

    def test_tool_failure_requests_retry(self, mock_config, base_state):
        message = AIMessage(content="Running tests", tool_calls=[tool_call("run_command", {"cmd": "pytest"})])
        executor = FakeToolExecutor(["Error: 3 tests failed"])
        update, _ = _run_step("Builder", base_state, [message], tool_executor=executor)
        assert update["needs_retry"] is True
        assert "3 tests failed" in update["last_error"]
        assert "**STATUS: NEEDS_RETRY**" in update["messages"][0].content
        assert executor.calls == [("run_command", {"cmd": "pytest"})]

    def test_tool_exception_becomes_result(self, mock_config, base_state):
        class BrokenExecutor:
            async def execute(self, name, args):
                raise OSError("disk full")

        message = AIMessage(content="Writing", tool_calls=[tool_call("write_file", {"path": "a.py"})])
        update, _ = _run_step("TechWriter", base_state, [message], tool_executor=BrokenExecutor())
        assert "Tool write_file: Tool error: disk full" in update["messages"][0].content
        # TechWriter cannot run commands, so tool output never triggers a retry.
        assert update["needs_retry"] is False

    def test_retryable_upstream_error(self, mock_config, base_state):
        error = UpstreamInvocationError(UpstreamErrorKind.RATE_LIMITED, "slow down")
        update, _ = _run_step("Founder", base_state, [error])
        assert update == {"needs_retry": True, "last_error": "rate_limited: slow down"}

    def test_fatal_upstream_error_propagates(self, mock_config, base_state):
        error = UpstreamInvocationError(UpstreamErrorKind.AUTH_ERROR, "bad key")
        with pytest.raises(UpstreamInvocationError):
            _run_step("Founder", base_state, [error])

    def test_retry_context_in_prompt(self, mock_config, base_state):
        base_state.update({"needs_retry": True, "agent_retries": {"Builder": 1}, "last_error": "npm ERR!"})
        _, llm = _run_step("Builder", base_state)
        assert "RETRY CONTEXT (Attempt 2/4)" in llm.calls[0]["system_prompt"]
        assert "npm ERR!" in llm.calls[0]["system_prompt"]


def test_build_agent_steps_covers_roster(mock_config):
    steps = build_agent_steps(FakeLLM())
    assert len(steps) == 13
    assert steps["Tester"].name == "Tester"


class TestPrompts:
    def test_artifact_role_gets_shape(self):
        prompt = build_system_prompt("ProductManager")
        assert '"type": "PRD"' in prompt
        assert "delegate_task" in prompt

    def test_plain_role_gets_protocol(self):
        prompt = build_system_prompt("Founder")
        assert "## How to Respond" in prompt
        assert "delegate_task" not in prompt

    def test_retry_context_empty_on_first_attempt(self):
        assert retry_context(0, 3, "boom") == ""
        assert retry_context(2, 3, None) == ""
