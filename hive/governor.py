"""Safety governors: turn ceiling, per-agent retry ceiling, and the approval gate."""

import logging
from dataclasses import dataclass, field

from hive.config import get_config
from hive.errors import AgentRetryExhausted, ApprovalError, BoundedLoopError
from hive.handoff import HandoffRequest
from hive.roles import is_agent

logger = logging.getLogger(__name__)

# Gate decisions returned by ApprovalGate.check
PROCEED = "proceed"
SUSPEND = "suspend"
REJECT = "reject"


@dataclass(frozen=True)
class RetryDecision:
    """What the Orchestrator does after a step asked to be retried.

    Exactly one of ``retry_agent`` and ``fallback`` is set.
    """

    retries: int
    retry_agent: str | None = None
    fallback: HandoffRequest | None = None


@dataclass
class Governor:
    max_turns: int = 50
    max_agent_retries: int = 3
    agent_retry_limits: dict[str, int] = field(default_factory=dict)
    fallback_agent: str | None = None

    def __post_init__(self):
        if self.fallback_agent is not None and not is_agent(self.fallback_agent):
            raise ValueError(f"retry_fallback_agent {self.fallback_agent!r} is not a roster agent.")

    @classmethod
    def from_config(cls, config: dict | None = None) -> "Governor":
        config = config if config is not None else get_config()
        return cls(
            max_turns=config.get("max_turns", 50),
            max_agent_retries=config.get("max_agent_retries", 3),
            agent_retry_limits=dict(config.get("agent_retry_limits") or {}),
            fallback_agent=config.get("retry_fallback_agent"),
        )

    def retry_limit(self, agent: str) -> int:
        return self.agent_retry_limits.get(agent, self.max_agent_retries)

    def check_turn_budget(self, state: dict) -> None:
        """Raise BoundedLoopError if running one more step would pass the ceiling.

        The reported turn_count therefore never exceeds ``max_turns``.
        """
        turn_count = state["turn_count"]
        if turn_count + 1 > self.max_turns:
            logger.error(
                "[HIVE] Safety trigger: turn limit reached (%d/%d) in phase %s",
                turn_count,
                self.max_turns,
                state["phase"],
            )
            raise BoundedLoopError(turn_count, self.max_turns, state)

    def on_retry_requested(self, state: dict, agent: str) -> RetryDecision:
        """Count one more retry for ``agent`` and decide what happens next.

        Raises AgentRetryExhausted when the ceiling is passed and no fallback
        agent is configured. ``state`` should already include the failed step.
        """
        retries = state.get("agent_retries", {}).get(agent, 0) + 1
        limit = self.retry_limit(agent)
        if retries <= limit:
            logger.info("[HIVE] %s: retry %d/%d (%s)", agent, retries, limit, state.get("last_error"))
            return RetryDecision(retries=retries, retry_agent=agent)

        if self.fallback_agent is None:
            logger.error("[HIVE] Safety trigger: %s exhausted %d retries", agent, limit)
            raise AgentRetryExhausted(agent, retries, state.get("last_error"), state)

        logger.warning(
            "[HIVE] %s exhausted %d retries, escalating to %s", agent, limit, self.fallback_agent
        )
        return RetryDecision(
            retries=retries,
            fallback=HandoffRequest(
                target_agent=self.fallback_agent,
                reason="retry budget exhausted",
                context=state.get("last_error"),
            ),
        )


class ApprovalGate:
    """Suspension point guarding entry into a phase.

    A gate opens when the next phase is configured as gated, or when a step
    has set ``requires_approval``. While ``requires_approval`` is true,
    ``approval_status`` belongs to the currently open gate.
    """

    def __init__(self, gated_phases=None):
        if gated_phases is None:
            gated_phases = get_config().get("approval_gates") or []
        self.gated_phases = frozenset(gated_phases)

    def guards(self, phase: str, state: dict) -> bool:
        return phase in self.gated_phases or state["requires_approval"]

    def open_update(self) -> dict:
        """Update that opens a new gate instance."""
        return {"requires_approval": True, "approval_status": "pending"}

    def check(self, state: dict) -> str:
        """Return PROCEED, SUSPEND or REJECT for an open gate."""
        status = state["approval_status"]
        if status == "approved":
            return PROCEED
        if status == "rejected":
            return REJECT
        return SUSPEND

    @staticmethod
    def signal_update(state: dict, approved: bool) -> dict:
        """Update recording an external approve/reject signal.

        Raises ApprovalError unless a gate is open and still pending, so the
        status transitions at most once per gate instance.
        """
        if not state["requires_approval"] or state["approval_status"] != "pending":
            raise ApprovalError(
                f"No pending approval for thread {state.get('thread_id')!r} "
                f"(approval_status={state['approval_status']}).",
                state,
            )
        return {"approval_status": "approved" if approved else "rejected"}
