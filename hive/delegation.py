"""Delegation for hierarchical teams (map-reduce).

A supervising agent (ProductManager, Planner) calls ``delegate_task`` once per
independent sub-task. The Orchestrator turns each accepted request into a
SubTask, runs the batch concurrently, and aggregates once every SubTask has
reached a terminal state.

Each SubTask is owned by the worker coroutine that executes it; nothing else
changes its status or result. A failed SubTask does not fail the batch.
"""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass, field

from langchain_core.messages import HumanMessage
from langchain_core.tools import tool

from hive.errors import SubTaskFailure, UpstreamInvocationError
from hive.roles import WORKER_ROLES
from hive.state import scoped_view
from hive.utils.parsing import message_text

logger = logging.getLogger(__name__)

WORKER_NAMES = tuple(role.value for role in WORKER_ROLES)
PRIORITIES = ("high", "medium", "low")
TERMINAL_STATUSES = ("completed", "failed")

_TRANSITIONS = {
    "pending": ("in_progress",),
    "in_progress": TERMINAL_STATUSES,
    "completed": (),
    "failed": (),
}


@dataclass
class SubTask:
    id: str
    worker: str
    description: str
    context: str | None = None
    priority: str = "medium"
    status: str = "pending"
    result: str | None = None
    error: str | None = None
    created_at: float = field(default_factory=time.time)
    completed_at: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _transition(self, status: str) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Sub-task {self.id}: cannot go from {self.status} to {status}.")
        self.status = status

    def start(self) -> None:
        self._transition("in_progress")

    def complete(self, result: str) -> None:
        self._transition("completed")
        self.result = result
        self.completed_at = time.time()

    def fail(self, error: str) -> None:
        self._transition("failed")
        self.error = error
        self.completed_at = time.time()

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SubTask":
        return cls(**data)


@dataclass(frozen=True)
class DelegationRequest:
    worker_role: str
    task_description: str
    context: str | None = None
    priority: str = "medium"


@dataclass(frozen=True)
class DelegationSummary:
    completed: tuple[SubTask, ...]
    failed: tuple[SubTask, ...]

    @property
    def total(self) -> int:
        return len(self.completed) + len(self.failed)

    @property
    def completed_count(self) -> int:
        return len(self.completed)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


@dataclass
class DelegationOutcome:
    """What a finished batch contributes to the supervising step's update."""

    sub_tasks: list[SubTask]
    messages: list = field(default_factory=list)
    artifacts: list = field(default_factory=list)
    contributors: list[str] = field(default_factory=list)


@tool("delegate_task")
def delegate_tool(
    worker_role: str,
    task_description: str,
    context: str | None = None,
    priority: str = "medium",
) -> str:
    """Delegate a specific sub-task to a worker agent.

    Use this to break complex features into independent pieces that can be
    worked on in parallel. Workers: Builder, Designer, Tester, Security, TechWriter.
    Priority is one of high, medium, low.
    """
    return json.dumps({
        "delegate": True,
        "worker_role": worker_role,
        "task_description": task_description,
        "context": context,
        "priority": priority,
    })


def detect_delegations(tool_outputs: list[str]) -> list[DelegationRequest]:
    """Parse a step's raw tool outputs into accepted delegation requests.

    Non-JSON and non-matching outputs are skipped. Requests for a role that
    is not a worker are dropped with a warning.
    """
    requests = []
    for output in tool_outputs:
        try:
            parsed = json.loads(output)
        except (json.JSONDecodeError, TypeError):
            continue
        if not isinstance(parsed, dict) or not parsed.get("delegate"):
            continue
        worker = parsed.get("worker_role")
        description = parsed.get("task_description")
        if not description:
            continue
        if worker not in WORKER_NAMES:
            logger.warning(
                "[HIVE] Delegation to %r dropped: not a worker role (%s).",
                worker,
                ", ".join(WORKER_NAMES),
            )
            continue
        priority = parsed.get("priority") or "medium"
        if priority not in PRIORITIES:
            priority = "medium"
        requests.append(DelegationRequest(worker, description, parsed.get("context"), priority))
    return requests


def create_subtask(request: DelegationRequest) -> SubTask:
    """Accept a delegation request as a pending SubTask with a fresh unique id."""
    return SubTask(
        id=f"task-{uuid.uuid4().hex[:12]}",
        worker=request.worker_role,
        description=request.task_description,
        context=request.context,
        priority=request.priority,
    )


def create_subtasks(requests: list[DelegationRequest]) -> list[SubTask]:
    """Create SubTasks ordered by priority (high first), stable within a priority."""
    ordered = sorted(requests, key=lambda r: PRIORITIES.index(r.priority))
    return [create_subtask(r) for r in ordered]


def get_pending_subtasks(sub_tasks: list[SubTask]) -> list[SubTask]:
    return [t for t in sub_tasks if t.status == "pending"]


def all_subtasks_complete(sub_tasks: list[SubTask]) -> bool:
    """True when the batch is non-empty and every SubTask is completed or failed."""
    return bool(sub_tasks) and all(t.is_terminal for t in sub_tasks)


def summarize_subtasks(sub_tasks: list[SubTask]) -> DelegationSummary:
    """Split a finished batch into completed and failed SubTasks.

    Raises ValueError if any SubTask has not reached a terminal state yet.
    """
    if not all_subtasks_complete(sub_tasks):
        raise ValueError("Cannot aggregate a delegation batch before every sub-task is terminal.")
    return DelegationSummary(
        completed=tuple(t for t in sub_tasks if t.status == "completed"),
        failed=tuple(t for t in sub_tasks if t.status == "failed"),
    )


def format_subtask_results(summary: DelegationSummary) -> str:
    """Render an aggregated batch for the synthesizer message."""
    lines = [
        "## Sub-Task Results",
        "",
        f"✅ Completed: {summary.completed_count}/{summary.total}",
        f"❌ Failed: {summary.failed_count}/{summary.total}",
        "",
    ]
    for task in summary.completed:
        lines.append(f"### {task.id} ({task.worker})")
        lines.append(f"**Task**: {task.description}")
        lines.append(f"**Result**:\n{task.result}")
        lines.append("")

    if summary.failed:
        lines.append("### Failed Tasks")
        for task in summary.failed:
            lines.append(f"- {task.id} ({task.worker}): {task.description} — {task.error}")
    return "\n".join(lines).rstrip()


async def _execute_subtask(task: SubTask, worker_step, state: dict) -> dict:
    """Run one SubTask on its worker. Only this coroutine touches ``task``."""
    task.start()
    logger.info("[HIVE] Sub-task %s → %s: %s", task.id, task.worker, task.description[:50])

    view = scoped_view(state)
    view["messages"].append(HumanMessage(
        content=f"[SUB-TASK: {task.id}]\n\n{task.description}\n\n{task.context or ''}".rstrip(),
        name="Supervisor",
    ))
    view["next"] = task.worker
    view["sub_task_id"] = task.id

    try:
        update = await worker_step(view)
        if update.get("needs_retry"):
            raise SubTaskFailure(task.id, update.get("last_error") or "worker requested a retry")
    except (SubTaskFailure, UpstreamInvocationError) as exc:
        task.fail(str(exc))
        logger.warning("[HIVE] Sub-task %s failed: %s", task.id, exc)
        return {}
    except Exception as exc:
        task.fail(f"{type(exc).__name__}: {exc}")
        logger.exception("[HIVE] Sub-task %s crashed", task.id)
        return {}

    messages = update.get("messages") or []
    task.complete(message_text(messages[0]) if messages else "No output")
    return update


async def run_delegation_batch(sub_tasks: list[SubTask], worker_steps: dict, state: dict) -> DelegationOutcome:
    """Execute a batch of pending SubTasks concurrently and aggregate them.

    ``worker_steps`` maps a worker role name to its async step callable.
    The aggregation only runs after every worker has finished (TaskGroup
    barrier), so results are never read from a non-terminal SubTask.
    """
    async with asyncio.TaskGroup() as group:
        running = [
            group.create_task(_execute_subtask(task, worker_steps[task.worker], state))
            for task in sub_tasks
        ]

    summary = summarize_subtasks(sub_tasks)
    outcome = DelegationOutcome(sub_tasks=list(sub_tasks))
    for task, job in zip(sub_tasks, running):
        update = job.result()
        if task.status == "completed":
            outcome.messages.extend(update.get("messages") or [])
            outcome.artifacts.extend(update.get("artifacts") or [])
            outcome.contributors.append(task.worker)

    outcome.messages.append(HumanMessage(
        content=f"## Hierarchical Execution Complete\n\n{format_subtask_results(summary)}",
        name="Synthesizer",
    ))
    logger.info(
        "[HIVE] Delegation batch done: %d completed, %d failed",
        summary.completed_count,
        summary.failed_count,
    )
    return outcome
