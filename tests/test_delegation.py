"""Tests for hive.delegation: SubTask lifecycle, request parsing, batch execution."""

import asyncio
import json

import pytest
from langchain_core.messages import HumanMessage

from hive.delegation import (
    DelegationRequest,
    SubTask,
    all_subtasks_complete,
    create_subtask,
    create_subtasks,
    delegate_tool,
    detect_delegations,
    format_subtask_results,
    get_pending_subtasks,
    run_delegation_batch,
    summarize_subtasks,
)
from hive.errors import UpstreamErrorKind, UpstreamInvocationError


def _request(worker="Builder", description="Build the API", priority="medium"):
    return DelegationRequest(worker, description, None, priority)


def _worker(reply=None, needs_retry=False, error=None):
    """Async worker step returning a fixed update (or raising ``error``)."""

    async def step(state):
        await asyncio.sleep(0)
        if error is not None:
            raise error
        if needs_retry:
            return {"needs_retry": True, "last_error": "tests failed"}
        return {
            "messages": [HumanMessage(content=reply or f"{state['next']} done", name=state["next"])],
            "contributors": [state["next"]],
        }

    return step


# --- SubTask lifecycle ---

class TestSubTask:
    def test_happy_path(self):
        task = create_subtask(_request())
        assert task.status == "pending"
        task.start()
        assert task.status == "in_progress"
        task.complete("done")
        assert task.status == "completed"
        assert task.result == "done"
        assert task.completed_at is not None
        assert task.is_terminal

    def test_fail(self):
        task = create_subtask(_request())
        task.start()
        task.fail("boom")
        assert task.status == "failed"
        assert task.error == "boom"

    def test_cannot_complete_pending(self):
        with pytest.raises(ValueError):
            create_subtask(_request()).complete("done")

    def test_terminal_is_final(self):
        task = create_subtask(_request())
        task.start()
        task.complete("done")
        with pytest.raises(ValueError):
            task.fail("late")
        with pytest.raises(ValueError):
            task.start()
        assert task.status == "completed"

    def test_ids_unique(self):
        ids = {create_subtask(_request()).id for _ in range(200)}
        assert len(ids) == 200

    def test_dict_round_trip(self):
        task = create_subtask(_request())
        assert SubTask.from_dict(task.to_dict()) == task


# --- Requests ---

class TestDetectDelegations:
    def test_tool_output_accepted(self):
        raw = delegate_tool.invoke({"worker_role": "Tester", "task_description": "Write tests", "priority": "high"})
        requests = detect_delegations([raw])
        assert requests == [DelegationRequest("Tester", "Write tests", None, "high")]

    def test_non_worker_rejected(self):
        raw = delegate_tool.invoke({"worker_role": "Founder", "task_description": "Pitch"})
        assert detect_delegations([raw]) == []

    def test_invalid_priority_defaults_to_medium(self):
        raw = json.dumps({"delegate": True, "worker_role": "Builder", "task_description": "x", "priority": "urgent"})
        assert detect_delegations([raw])[0].priority == "medium"

    def test_ignores_other_outputs(self):
        outputs = ["plain", '{"handoff": true, "target_agent": "SRE"}', None]
        assert detect_delegations(outputs) == []


class TestCreateSubtasks:
    def test_ordered_by_priority(self):
        tasks = create_subtasks([
            _request(description="low", priority="low"),
            _request(description="high", priority="high"),
            _request(description="medium", priority="medium"),
        ])
        assert [t.description for t in tasks] == ["high", "medium", "low"]
        assert all(t.status == "pending" for t in tasks)
        assert get_pending_subtasks(tasks) == tasks


# --- Aggregation ---

class TestAggregation:
    def test_empty_batch_is_not_complete(self):
        assert all_subtasks_complete([]) is False

    def test_incomplete_batch_cannot_be_summarized(self):
        tasks = create_subtasks([_request(), _request()])
        tasks[0].start()
        tasks[0].complete("ok")
        assert not all_subtasks_complete(tasks)
        with pytest.raises(ValueError):
            summarize_subtasks(tasks)

    def test_two_completed_one_failed(self):
        tasks = create_subtasks([_request(), _request(), _request()])
        for task in tasks:
            task.start()
        tasks[0].complete("a")
        tasks[1].complete("b")
        tasks[2].fail("boom")

        assert all_subtasks_complete(tasks)
        summary = summarize_subtasks(tasks)
        assert summary.completed_count == 2
        assert summary.failed_count == 1
        assert summary.total == 3

        text = format_subtask_results(summary)
        assert "✅ Completed: 2/3" in text
        assert "❌ Failed: 1/3" in text
        assert "boom" in text


# --- Batch execution ---

class TestRunDelegationBatch:
    def test_runs_all_and_aggregates(self, base_state):
        tasks = create_subtasks([
            _request("Builder", "Build the API"),
            _request("Tester", "Write tests"),
            _request("Designer", "Draw screens"),
        ])
        workers = {
            "Builder": _worker("API built"),
            "Tester": _worker(needs_retry=True),
            "Designer": _worker("Screens drawn"),
        }

        outcome = asyncio.run(run_delegation_batch(tasks, workers, base_state))

        assert all_subtasks_complete(outcome.sub_tasks)
        statuses = {t.worker: t.status for t in outcome.sub_tasks}
        assert statuses == {"Builder": "completed", "Tester": "failed", "Designer": "completed"}
        assert sorted(outcome.contributors) == ["Builder", "Designer"]
        assert outcome.messages[-1].name == "Synthesizer"
        assert "✅ Completed: 2/3" in outcome.messages[-1].content
        assert [m.name for m in outcome.messages[:-1]] == ["Builder", "Designer"]

    def test_upstream_error_fails_only_that_task(self, base_state):
        tasks = create_subtasks([_request("Builder"), _request("Security", "Threat model")])
        workers = {
            "Builder": _worker(error=UpstreamInvocationError(UpstreamErrorKind.AUTH_ERROR, "bad key")),
            "Security": _worker("Threats listed"),
        }

        outcome = asyncio.run(run_delegation_batch(tasks, workers, base_state))

        failed = [t for t in outcome.sub_tasks if t.status == "failed"]
        assert len(failed) == 1
        assert "auth_error" in failed[0].error
        assert outcome.contributors == ["Security"]

    def test_unexpected_error_fails_only_that_task(self, base_state):
        tasks = create_subtasks([_request("Builder"), _request("Designer", "Draw screens")])
        workers = {
            "Builder": _worker(error=RuntimeError("sdk exploded")),
            "Designer": _worker("Screens drawn"),
        }

        outcome = asyncio.run(run_delegation_batch(tasks, workers, base_state))

        assert all_subtasks_complete(outcome.sub_tasks)
        statuses = {t.worker: t.status for t in outcome.sub_tasks}
        assert statuses == {"Builder": "failed", "Designer": "completed"}
        builder = next(t for t in outcome.sub_tasks if t.worker == "Builder")
        assert "RuntimeError: sdk exploded" in builder.error
        assert outcome.contributors == ["Designer"]
        assert "✅ Completed: 1/2" in outcome.messages[-1].content

    def test_worker_sees_subtask_message(self, base_state):
        seen = {}

        async def worker(state):
            seen["last"] = state["messages"][-1]
            seen["sub_task_id"] = state["sub_task_id"]
            return {"messages": [HumanMessage(content="ok", name="Builder")]}

        tasks = create_subtasks([_request()])
        asyncio.run(run_delegation_batch(tasks, {"Builder": worker}, base_state))

        assert seen["last"].name == "Supervisor"
        assert seen["last"].content.startswith(f"[SUB-TASK: {tasks[0].id}]")
        assert seen["sub_task_id"] == tasks[0].id
        assert len(base_state["messages"]) == 1
        assert tasks[0].result == "ok"
