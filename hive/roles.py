"""Agent roster and capability lookup.

Roles are plain tags. What an agent may do is resolved through the
capability table below, never through a class hierarchy.
"""

from enum import Enum


class Agent(str, Enum):
    FOUNDER = "Founder"
    PRODUCT_MANAGER = "ProductManager"
    UX_RESEARCHER = "UXResearcher"
    DESIGNER = "Designer"
    ACCESSIBILITY = "Accessibility"
    PLANNER = "Planner"
    SECURITY = "Security"
    BUILDER = "Builder"
    REVIEWER = "Reviewer"
    TESTER = "Tester"
    TECH_WRITER = "TechWriter"
    SRE = "SRE"
    DATA_ANALYST = "DataAnalyst"


class Capability(str, Enum):
    HANDOFF = "handoff"
    DELEGATE = "delegate"
    READ_FILES = "read_files"
    WRITE_FILES = "write_files"
    RUN_COMMANDS = "run_commands"
    QUERY_DATABASE = "query_database"
    WEB_SEARCH = "web_search"


ROSTER = tuple(agent.value for agent in Agent)

# Roles a supervisor may delegate sub-tasks to.
WORKER_ROLES = (
    Agent.BUILDER,
    Agent.DESIGNER,
    Agent.TESTER,
    Agent.SECURITY,
    Agent.TECH_WRITER,
)

_BASE = frozenset({Capability.HANDOFF})

CAPABILITIES: dict[Agent, frozenset[Capability]] = {
    Agent.FOUNDER: _BASE | {Capability.WEB_SEARCH},
    Agent.PRODUCT_MANAGER: _BASE | {Capability.DELEGATE},
    Agent.UX_RESEARCHER: _BASE | {Capability.WEB_SEARCH},
    Agent.DESIGNER: _BASE,
    Agent.ACCESSIBILITY: _BASE,
    Agent.PLANNER: _BASE | {Capability.DELEGATE, Capability.READ_FILES},
    Agent.SECURITY: _BASE | {Capability.READ_FILES},
    Agent.BUILDER: _BASE
    | {Capability.READ_FILES, Capability.WRITE_FILES, Capability.RUN_COMMANDS},
    Agent.REVIEWER: _BASE | {Capability.READ_FILES},
    Agent.TESTER: _BASE | {Capability.READ_FILES, Capability.RUN_COMMANDS},
    Agent.TECH_WRITER: _BASE | {Capability.READ_FILES, Capability.WRITE_FILES},
    Agent.SRE: _BASE | {Capability.RUN_COMMANDS},
    Agent.DATA_ANALYST: _BASE | {Capability.QUERY_DATABASE},
}

DISPLAY_NAMES = {
    Agent.FOUNDER: "Founder",
    Agent.PRODUCT_MANAGER: "Product Manager",
    Agent.UX_RESEARCHER: "UX Researcher",
    Agent.DESIGNER: "Designer",
    Agent.ACCESSIBILITY: "Accessibility Specialist",
    Agent.PLANNER: "Planner",
    Agent.SECURITY: "Security Engineer",
    Agent.BUILDER: "Builder",
    Agent.REVIEWER: "Reviewer",
    Agent.TESTER: "Tester",
    Agent.TECH_WRITER: "Tech Writer",
    Agent.SRE: "SRE",
    Agent.DATA_ANALYST: "Data Analyst",
}

# Typical handoff targets, surfaced to agents in their prompts.
COMMON_HANDOFFS: dict[Agent, tuple[Agent, ...]] = {
    Agent.FOUNDER: (Agent.PRODUCT_MANAGER,),
    Agent.PRODUCT_MANAGER: (Agent.DESIGNER, Agent.UX_RESEARCHER),
    Agent.UX_RESEARCHER: (Agent.PRODUCT_MANAGER, Agent.DESIGNER),
    Agent.DESIGNER: (Agent.BUILDER, Agent.ACCESSIBILITY),
    Agent.ACCESSIBILITY: (Agent.BUILDER,),
    Agent.PLANNER: (Agent.BUILDER, Agent.SECURITY),
    Agent.SECURITY: (Agent.BUILDER,),
    Agent.BUILDER: (Agent.TESTER, Agent.REVIEWER),
    Agent.REVIEWER: (Agent.BUILDER, Agent.TESTER),
    Agent.TESTER: (Agent.BUILDER,),
    Agent.TECH_WRITER: (Agent.SRE,),
    Agent.SRE: (Agent.DATA_ANALYST,),
    Agent.DATA_ANALYST: (),
}


def is_agent(name) -> bool:
    """Return True if name is one of the 13 roster identifiers."""
    return isinstance(name, str) and name in ROSTER


def capabilities_for(agent: Agent | str) -> frozenset[Capability]:
    """Look up the capability set of a role. Raises ValueError for unknown roles."""
    return CAPABILITIES[Agent(agent)]


def has_capability(agent: Agent | str, capability: Capability) -> bool:
    return capability in capabilities_for(agent)
