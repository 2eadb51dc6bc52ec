"""Workflow State — single source of truth threaded through a run.

``merge_state`` is the only way a step's partial result is folded into the
parent state. Each field has its own merge rule:

- messages, artifacts, handoffs, sub_tasks: concatenation
- next, phase, approval_status, requires_approval, needs_retry,
  last_error, status, thread_id: overwrite when the update carries a value
- last_error is also cleared when an update sets needs_retry to False
- contributors: set union
- agent_retries: shallow per-key merge
- turn_count: the explicit value when given, otherwise previous + 1
"""

from typing import Literal, TypedDict

from langchain_core.messages import BaseMessage, HumanMessage

from hive.roles import Agent

PHASES = ("strategy", "design", "build", "ship")

Phase = Literal["strategy", "design", "build", "ship"]
ApprovalStatus = Literal["pending", "approved", "rejected", "unset"]
RunStatus = Literal["running", "awaiting_approval", "rejected", "completed"]

# Marks the current phase's pipeline as exhausted (LangGraph's END node name).
PHASE_END = "__end__"


class WorkflowState(TypedDict):
    thread_id: str
    messages: list[BaseMessage]  # Append-only, in execution order.
    next: str  # Agent scheduled to run next, or PHASE_END.
    contributors: list[str]  # Set semantics; insertion order kept for display.
    artifacts: list  # Frozen artifact models, append-only.
    phase: Phase
    requires_approval: bool
    approval_status: ApprovalStatus
    turn_count: int  # Agent steps executed so far.
    agent_retries: dict[str, int]
    needs_retry: bool
    last_error: str | None
    status: RunStatus
    handoffs: list[dict]  # Audit trail of control transfers.
    sub_tasks: list  # Terminal SubTask records.


_CONCAT_KEYS = ("messages", "artifacts", "handoffs", "sub_tasks")
_OVERWRITE_KEYS = (
    "thread_id",
    "next",
    "phase",
    "requires_approval",
    "approval_status",
    "needs_retry",
    "last_error",
    "status",
)


def create_initial_state(thread_id: str, message: str | None = None) -> WorkflowState:
    """Return a fresh state for a new thread, seeded with the user's message."""
    return {
        "thread_id": thread_id,
        "messages": [HumanMessage(content=message)] if message else [],
        "next": Agent.FOUNDER.value,
        "contributors": [],
        "artifacts": [],
        "phase": "strategy",
        "requires_approval": False,
        "approval_status": "unset",
        "turn_count": 0,
        "agent_retries": {},
        "needs_retry": False,
        "last_error": None,
        "status": "running",
        "handoffs": [],
        "sub_tasks": [],
    }


def next_turn_count(previous: int, new_value: int | None = None) -> int:
    """Turn counter transition: an explicit value wins, otherwise advance by one."""
    return new_value if new_value is not None else previous + 1


def union_contributors(existing: list[str], new: list[str]) -> list[str]:
    """Set union that keeps first-seen order, so repeated merges are idempotent."""
    merged = list(existing)
    for name in new:
        if name not in merged:
            merged.append(name)
    return merged


def phase_index(phase: str) -> int:
    return PHASES.index(phase)


def next_phase(phase: str) -> str | None:
    """Return the phase after ``phase``, or None after Ship."""
    idx = phase_index(phase)
    return PHASES[idx + 1] if idx + 1 < len(PHASES) else None


def merge_state(state: WorkflowState, update: dict) -> WorkflowState:
    """Fold a step's partial update into the state, returning a new state.

    Neither argument is mutated. Raises ValueError if the update tries to
    move the phase backwards.
    """
    merged = dict(state)

    for key in _CONCAT_KEYS:
        merged[key] = list(state.get(key, [])) + list(update.get(key) or [])

    for key in _OVERWRITE_KEYS:
        if update.get(key) is not None:
            merged[key] = update[key]
    if update.get("needs_retry") is False and update.get("last_error") is None:
        merged["last_error"] = None

    if phase_index(merged["phase"]) < phase_index(state["phase"]):
        raise ValueError(
            f"Phase cannot move backwards ({state['phase']} -> {merged['phase']})."
        )

    merged["contributors"] = union_contributors(
        state.get("contributors", []), update.get("contributors") or []
    )
    merged["agent_retries"] = {**state.get("agent_retries", {}), **(update.get("agent_retries") or {})}
    merged["turn_count"] = next_turn_count(state["turn_count"], update.get("turn_count"))

    return merged


def scoped_view(state: WorkflowState) -> WorkflowState:
    """Copy handed to a step. Lists and dicts are fresh so a step cannot
    mutate the orchestrator's state in place."""
    view = dict(state)
    for key in ("messages", "contributors", "artifacts", "handoffs", "sub_tasks"):
        view[key] = list(state.get(key, []))
    view["agent_retries"] = dict(state.get("agent_retries", {}))
    return view
