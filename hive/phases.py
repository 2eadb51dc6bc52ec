"""LangGraph phase pipelines: Strategy, Design, Build, Ship.

Each phase is a fixed, linear pipeline of agent steps. A PhaseGraph serves two
callers with the same routing functions:

- the Orchestrator drives a phase one step at a time via ``successor`` so it
  can apply handoffs, retries and the turn governor between steps;
- ``compile``/``invoke_phase`` build a LangGraph StateGraph over a scoped phase state
  for invoking a whole phase directly.
"""

import operator
from typing import Annotated, TypedDict

from langchain_core.messages import BaseMessage
from langgraph.graph import END, StateGraph

from hive.config import get_config
from hive.roles import Agent
from hive.state import PHASE_END, union_contributors
from hive.utils.parsing import message_text

DEFAULT_APPROVAL_MARKERS = ("✅ approve", "verdict: approve")


class PhaseState(TypedDict):
    """Scoped view of the workflow state that a compiled phase graph sees."""

    messages: Annotated[list[BaseMessage], operator.add]
    contributors: Annotated[list[str], union_contributors]
    artifacts: Annotated[list, operator.add]


def review_decision(state: dict) -> str:
    """Conditional edge after the Reviewer.

    Looks for an approval marker in the most recent message. Both outcomes
    currently route to the Tester: the changes-requested path back to the
    Builder is not wired.
    """
    markers = get_config().get("approval_markers") or DEFAULT_APPROVAL_MARKERS
    messages = state.get("messages", [])
    content = message_text(messages[-1]).lower() if messages else ""

    if any(marker.lower() in content for marker in markers):
        return "approved"
    # changes_requested would loop back to Builder; always proceed for now.
    return "approved"


class PhaseGraph:
    """A fixed pipeline of agents with optional conditional edges."""

    def __init__(self, name: str, steps, branches=None):
        self.name = name
        self.steps = tuple(Agent(s).value for s in steps)
        # agent -> (router, {route_key: agent})
        self.branches = {
            Agent(agent).value: (router, {k: Agent(v).value for k, v in path_map.items()})
            for agent, (router, path_map) in (branches or {}).items()
        }

    def __contains__(self, agent) -> bool:
        return agent in self.steps

    def __repr__(self) -> str:
        return f"PhaseGraph({self.name}: {' → '.join(self.steps)})"

    @property
    def entry(self) -> str:
        return self.steps[0]

    def successor(self, agent: str, state: dict) -> str:
        """Return the agent that follows ``agent`` in this phase, or PHASE_END."""
        if agent in self.branches:
            router, path_map = self.branches[agent]
            return path_map[router(state)]
        idx = self.steps.index(agent)
        return self.steps[idx + 1] if idx + 1 < len(self.steps) else PHASE_END

    def compile(self, step_fns: dict):
        """Compile this phase into a LangGraph StateGraph.

        ``step_fns`` maps agent names to async step callables. Step updates are
        narrowed to the PhaseState keys before LangGraph folds them in.
        """
        workflow = StateGraph(PhaseState)

        for agent in self.steps:
            workflow.add_node(agent, _scoped(step_fns[agent]))

        workflow.set_entry_point(self.entry)

        for idx, agent in enumerate(self.steps):
            if agent in self.branches:
                router, path_map = self.branches[agent]
                workflow.add_conditional_edges(agent, router, dict(path_map))
            elif idx + 1 < len(self.steps):
                workflow.add_edge(agent, self.steps[idx + 1])
            else:
                workflow.add_edge(agent, END)

        return workflow.compile()


def _scoped(step_fn):
    async def node(state: PhaseState) -> dict:
        update = await step_fn(dict(state))
        return {key: list(update.get(key) or []) for key in PhaseState.__annotations__}

    return node


# --- The four phases ---

STRATEGY = PhaseGraph(
    "strategy",
    [Agent.FOUNDER, Agent.PRODUCT_MANAGER, Agent.UX_RESEARCHER],
)

DESIGN = PhaseGraph(
    "design",
    [Agent.DESIGNER, Agent.ACCESSIBILITY],
)

BUILD = PhaseGraph(
    "build",
    [Agent.PLANNER, Agent.SECURITY, Agent.BUILDER, Agent.REVIEWER, Agent.TESTER],
    branches={
        Agent.REVIEWER: (
            review_decision,
            {
                "approved": Agent.TESTER,
                # "changes_requested": Agent.BUILDER,  # could loop back
            },
        ),
    },
)

SHIP = PhaseGraph(
    "ship",
    [Agent.TECH_WRITER, Agent.SRE, Agent.DATA_ANALYST],
)

PHASE_GRAPHS = {graph.name: graph for graph in (STRATEGY, DESIGN, BUILD, SHIP)}


def phase_graph(phase: str) -> PhaseGraph:
    return PHASE_GRAPHS[phase]


async def invoke_phase(compiled, messages: list) -> list:
    """Invoke a compiled phase graph and return the accumulated messages."""
    result = await compiled.ainvoke({"messages": list(messages), "contributors": [], "artifacts": []})
    return result["messages"]
