"""Agent handoff: explicit control transfer that overrides a phase's fixed order.

An agent calls the ``handoff_to_agent`` tool; the tool result is a JSON
string the Orchestrator later finds with ``detect_handoff``. Target
validation happens at the Orchestrator, not in the tool, so that a bad
target surfaces as a RoutingError instead of a silently ignored tool error.
"""

import json
import logging
from dataclasses import dataclass

from langchain_core.tools import tool

from hive.errors import RoutingError
from hive.roles import ROSTER, is_agent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandoffRequest:
    target_agent: str
    reason: str = ""
    context: str | None = None


@tool("handoff_to_agent")
def handoff_tool(target_agent: str, reason: str, context: str | None = None) -> str:
    """Transfer control directly to another specialist agent.

    Use this when you know exactly who should handle the next step.

    Args:
        target_agent: The agent to hand off to. One of: Founder, ProductManager,
            UXResearcher, Designer, Accessibility, Planner, Security, Builder,
            Reviewer, Tester, TechWriter, SRE, DataAnalyst.
        reason: Brief explanation of why this agent should take over.
        context: Optional additional context for the target agent.
    """
    return json.dumps({
        "handoff": True,
        "target_agent": target_agent,
        "reason": reason,
        "context": context,
    })


def detect_handoff(tool_outputs: list[str]) -> HandoffRequest | None:
    """Scan a step's raw tool outputs for the first handoff request.

    Non-JSON and non-matching outputs are not handoffs and are skipped.
    The target is NOT validated here.
    """
    for output in tool_outputs:
        try:
            parsed = json.loads(output)
        except (json.JSONDecodeError, TypeError):
            continue
        if not isinstance(parsed, dict):
            continue
        if parsed.get("handoff") and parsed.get("target_agent"):
            return HandoffRequest(
                target_agent=parsed["target_agent"],
                reason=parsed.get("reason") or "",
                context=parsed.get("context"),
            )
    return None


def resolve_target(request: HandoffRequest, state: dict | None = None) -> str:
    """Return the validated target agent id, or raise RoutingError."""
    if not is_agent(request.target_agent):
        logger.error(
            "[HIVE] Handoff to unknown agent %r rejected. Roster: %s",
            request.target_agent,
            ", ".join(ROSTER),
        )
        raise RoutingError(request.target_agent, state)
    return request.target_agent


def handoff_record(from_agent: str, request: HandoffRequest, turn: int) -> dict:
    """Audit entry appended to ``state["handoffs"]``."""
    return {
        "from_agent": from_agent,
        "target_agent": request.target_agent,
        "reason": request.reason,
        "context": request.context,
        "turn": turn,
    }
