"""Orchestrator — drives a thread through Strategy → Design → Build → Ship.

One agent step runs at a time per thread. Between steps the Orchestrator
applies the governors, routes (fixed phase order, handoff override,
delegation batch), merges the step's update and writes a checkpoint.

Like the manual HITL loop of a compiled LangGraph, the run can stop at an
approval gate and continue later from its checkpoint with ``resume``.
"""

import asyncio
import logging

from langchain_core.messages import HumanMessage

from hive.agents.base import build_agent_steps
from hive.checkpoint import MemoryCheckpointStore
from hive.config import get_config
from hive.delegation import WORKER_NAMES, create_subtasks, detect_delegations, run_delegation_batch
from hive.errors import RoutingError, UpstreamInvocationError
from hive.governor import REJECT, SUSPEND, ApprovalGate, Governor
from hive.handoff import detect_handoff, handoff_record, resolve_target
from hive.phases import PHASE_GRAPHS, invoke_phase, phase_graph
from hive.roles import Capability, has_capability
from hive.services import LLMService
from hive.state import PHASE_END, create_initial_state, merge_state, next_phase, scoped_view
from hive.utils.validator import validate_input, validate_thread_id

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "rejected")


class Orchestrator:
    def __init__(self, llm=None, store=None, config: dict | None = None, steps: dict | None = None,
                 tool_executor=None):
        self.config = config if config is not None else get_config()
        self.llm = llm if llm is not None else LLMService(config=self.config)
        self.store = store if store is not None else MemoryCheckpointStore()
        self.steps = steps if steps is not None else build_agent_steps(self.llm, tool_executor, self.config)
        self.governor = Governor.from_config(self.config)
        self.gate = ApprovalGate(self.config.get("approval_gates") or [])
        self._compiled: dict = {}
        self._active: dict[str, asyncio.Task] = {}

    # --- Public operations ---

    async def run(self, thread_id: str, message: str | None = None) -> dict:
        """Create or restore a thread and drive it until it completes, suspends or fails.

        Raises:
            ValueError: invalid input, unknown thread without a message, a
                message for a finished thread, or a thread that is already running.
            OrchestrationError: BoundedLoopError, AgentRetryExhausted,
                RoutingError or a fatal UpstreamInvocationError, each carrying
                the partial state in ``.state``.
        """
        thread_id = validate_thread_id(thread_id)
        if message is not None:
            message = validate_input(message)
        if thread_id in self._active:
            raise ValueError(f"Thread {thread_id!r} already has a run in progress.")

        state = self._prepare(thread_id, message)
        if state["status"] in TERMINAL_STATUSES:
            return state

        self._active[thread_id] = asyncio.current_task()
        try:
            return await self._drive(state)
        finally:
            self._active.pop(thread_id, None)

    async def resume(self, thread_id: str) -> dict:
        """Continue a thread from its last checkpoint."""
        return await self.run(thread_id)

    def set_approval(self, thread_id: str, approved: bool) -> dict:
        """Record an approve/reject signal for the thread's pending gate.

        The thread continues on the next ``resume``. Raises ApprovalError when
        no gate is pending.
        """
        state = self._load(thread_id)
        state = self._apply(state, ApprovalGate.signal_update(state, approved))
        logger.info("[HIVE] Thread %s: gate %s", thread_id, state["approval_status"])
        return state

    def cancel(self, thread_id: str) -> bool:
        """Cancel the in-flight run of a thread. Returns False if none is running."""
        task = self._active.get(thread_id)
        if task is None:
            return False
        logger.info("[HIVE] Thread %s: cancelling run", thread_id)
        task.cancel()
        return True

    def get_state(self, thread_id: str) -> dict | None:
        return self.store.load(validate_thread_id(thread_id))

    async def run_phase(self, phase: str, messages) -> list:
        """Run one whole phase through its compiled graph, outside any thread.

        ``messages`` is a request string or a list of messages. Returns the
        accumulated message list.
        """
        if phase not in PHASE_GRAPHS:
            raise ValueError(f"Unknown phase {phase!r}. Expected one of: {', '.join(PHASE_GRAPHS)}.")
        if isinstance(messages, str):
            messages = [HumanMessage(content=validate_input(messages))]
        if phase not in self._compiled:
            self._compiled[phase] = phase_graph(phase).compile(self.steps)
        return await invoke_phase(self._compiled[phase], messages)

    # --- Thread lifecycle ---

    def _load(self, thread_id: str) -> dict:
        state = self.store.load(validate_thread_id(thread_id))
        if state is None:
            raise ValueError(f"Unknown thread {thread_id!r}.")
        return state

    def _prepare(self, thread_id: str, message: str | None) -> dict:
        state = self.store.load(thread_id)
        if state is None:
            if message is None:
                raise ValueError(f"Unknown thread {thread_id!r}: a message is required to start it.")
            state = create_initial_state(thread_id, message)
            self.store.save(state)
            logger.info("[HIVE] Thread %s started", thread_id)
            return state

        if message is not None:
            if state["status"] in TERMINAL_STATUSES:
                raise ValueError(f"Thread {thread_id!r} is {state['status']}; start a new thread.")
            state = self._apply(state, {"messages": [HumanMessage(content=message)]})
        logger.info(
            "[HIVE] Thread %s restored (phase %s, next %s, turn %d)",
            thread_id, state["phase"], state["next"], state["turn_count"],
        )
        return state

    def _apply(self, state: dict, update: dict) -> dict:
        """Merge an orchestrator-side update (no turn consumed) and checkpoint it."""
        state = merge_state(state, {**update, "turn_count": state["turn_count"]})
        self.store.save(state)
        return state

    async def _drive(self, state: dict) -> dict:
        while True:
            if state["next"] == PHASE_END:
                state, stop = self._advance_phase(state)
                if stop:
                    return state
                continue
            state = await self._step(state)

    def _advance_phase(self, state: dict) -> tuple[dict, bool]:
        """Leave the exhausted phase. Returns (state, stop)."""
        upcoming = next_phase(state["phase"])
        if upcoming is None:
            state = self._apply(state, {"status": "completed"})
            logger.info("[HIVE] Thread %s completed after %d turns", state["thread_id"], state["turn_count"])
            return state, True

        if self.gate.guards(upcoming, state):
            if not state["requires_approval"]:
                state = self._apply(state, self.gate.open_update())
            decision = self.gate.check(state)
            if decision == SUSPEND:
                state = self._apply(state, {"status": "awaiting_approval"})
                logger.info("[HIVE] Thread %s awaiting approval to enter %s", state["thread_id"], upcoming)
                return state, True
            if decision == REJECT:
                state = self._apply(state, {"status": "rejected"})
                logger.info("[HIVE] Thread %s rejected before %s", state["thread_id"], upcoming)
                return state, True
            state = self._apply(state, {"requires_approval": False})

        graph = phase_graph(upcoming)
        logger.info("[HIVE] Phase %s → %s", state["phase"], upcoming)
        state = self._apply(state, {"phase": upcoming, "next": graph.entry, "status": "running"})
        return state, False

    # --- One step ---

    async def _step(self, state: dict) -> dict:
        agent = state["next"]
        self.governor.check_turn_budget(state)

        try:
            update = dict(await self.steps[agent](scoped_view(state)))
        except UpstreamInvocationError as exc:
            logger.error("[HIVE] %s: fatal upstream error (%s)", agent, exc.kind.value)
            exc.state = state
            raise

        tool_outputs = update.pop("tool_outputs", None) or []

        if update.get("needs_retry"):
            return self._retry(state, agent, update)

        update["needs_retry"] = False
        if state["agent_retries"].get(agent):
            update["agent_retries"] = {agent: 0}
        if update.get("requires_approval") and not state["requires_approval"]:
            update.setdefault("approval_status", "pending")

        if has_capability(agent, Capability.DELEGATE):
            requests = detect_delegations(tool_outputs)
            if requests:
                await self._delegate(state, agent, update, requests)

        handoff = detect_handoff(tool_outputs)
        if handoff is not None:
            try:
                target = resolve_target(handoff, state)
            except RoutingError as exc:
                update.pop("next", None)
                exc.state = merge_state(state, update)
                self.store.save(exc.state)
                raise
            logger.info("[HIVE] Handoff %s → %s: %s", agent, target, handoff.reason)
            update["next"] = target
            update["handoffs"] = [handoff_record(agent, handoff, state["turn_count"] + 1)]
        else:
            update["next"] = self._successor(state, agent, update)

        state = merge_state(state, update)
        self.store.save(state)
        logger.info("[HIVE] %s finished (turn %d, next %s)", agent, state["turn_count"], state["next"])
        return state

    def _retry(self, state: dict, agent: str, update: dict) -> dict:
        failed = merge_state(state, update)
        decision = self.governor.on_retry_requested(failed, agent)

        if decision.retry_agent is not None:
            routing = {"next": agent, "agent_retries": {agent: decision.retries}}
        else:
            target = resolve_target(decision.fallback, failed)
            routing = {
                "next": target,
                "agent_retries": {agent: 0},
                "needs_retry": False,
                "handoffs": [handoff_record(agent, decision.fallback, failed["turn_count"])],
            }
        return self._apply(failed, routing)

    async def _delegate(self, state: dict, agent: str, update: dict, requests: list) -> None:
        """Run a delegation batch inside the supervising step, folding results into ``update``."""
        sub_tasks = create_subtasks(requests)
        logger.info("[HIVE] %s delegated %d sub-task(s)", agent, len(sub_tasks))

        context = {**state, "messages": state["messages"] + list(update.get("messages") or [])}
        workers = {name: self.steps[name] for name in WORKER_NAMES}
        outcome = await run_delegation_batch(sub_tasks, workers, context)

        update["messages"] = list(update.get("messages") or []) + outcome.messages
        update["artifacts"] = list(update.get("artifacts") or []) + outcome.artifacts
        update["contributors"] = list(update.get("contributors") or []) + outcome.contributors
        update["sub_tasks"] = outcome.sub_tasks

    def _successor(self, state: dict, agent: str, update: dict) -> str:
        """Next agent under the phase's fixed order.

        An agent outside the current phase (reached by handoff) returns control
        to the successor of the in-phase agent that started the handoff chain.
        """
        graph = phase_graph(state["phase"])
        view = {**state, "messages": state["messages"] + list(update.get("messages") or [])}
        if agent in graph:
            return graph.successor(agent, view)

        current = agent
        for record in reversed(state["handoffs"]):
            if record["target_agent"] != current:
                continue
            if record["from_agent"] in graph:
                return graph.successor(record["from_agent"], view)
            current = record["from_agent"]
        return PHASE_END
