"""Typed artifacts produced by agents.

Artifacts are frozen pydantic models discriminated on ``type``. Once an
artifact has been appended to the workflow state it is never changed.
"""

import json
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from hive.roles import Agent
from hive.utils.parsing import strip_fences


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class UserStory(_Frozen):
    id: str
    title: str
    as_a: str = Field(alias="asA")
    i_want: str = Field(alias="iWant")
    so_that: str = Field(alias="soThat")
    acceptance_criteria: tuple[str, ...] = Field(default=(), alias="acceptanceCriteria")
    priority: Literal["P0", "P1", "P2", "P3"] = "P2"


class PRD(_Frozen):
    type: Literal["PRD"] = "PRD"
    title: str
    goal: str
    success_metrics: tuple[str, ...] = Field(default=(), alias="successMetrics")
    user_stories: tuple[UserStory, ...] = Field(default=(), alias="userStories")
    out_of_scope: tuple[str, ...] = Field(default=(), alias="outOfScope")
    open_questions: tuple[str, ...] = Field(default=(), alias="openQuestions")


class FlowStep(_Frozen):
    step: int
    screen: str
    action: str
    notes: str | None = None


class UIComponent(_Frozen):
    name: str
    description: str
    props: tuple[str, ...] = ()


class DesignSpec(_Frozen):
    type: Literal["DesignSpec"] = "DesignSpec"
    title: str
    principles: tuple[str, ...] = ()
    user_flow: tuple[FlowStep, ...] = Field(default=(), alias="userFlow")
    components: tuple[UIComponent, ...] = ()
    interaction_notes: tuple[str, ...] = Field(default=(), alias="interactionNotes")
    accessibility_notes: tuple[str, ...] = Field(default=(), alias="accessibilityNotes")


class PlanComponent(_Frozen):
    name: str
    responsibility: str
    interfaces: tuple[str, ...] = ()


class Architecture(_Frozen):
    components: tuple[PlanComponent, ...] = ()
    data_flow: str = Field(default="", alias="dataFlow")


class ImplementationStep(_Frozen):
    order: int
    task: str
    files: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()


class Risk(_Frozen):
    risk: str
    mitigation: str
    severity: Literal["low", "medium", "high"]


class TechPlan(_Frozen):
    type: Literal["TechPlan"] = "TechPlan"
    title: str
    overview: str
    architecture: Architecture = Architecture()
    implementation_steps: tuple[ImplementationStep, ...] = Field(
        default=(), alias="implementationSteps"
    )
    risks: tuple[Risk, ...] = ()


class Threat(_Frozen):
    threat: str
    attack_vector: str = Field(alias="attackVector")
    impact: Literal["low", "medium", "high", "critical"]
    likelihood: Literal["low", "medium", "high"]


class Vulnerability(_Frozen):
    id: str
    description: str
    severity: Literal["low", "medium", "high", "critical"]
    recommendation: str


class SecurityReview(_Frozen):
    type: Literal["SecurityReview"] = "SecurityReview"
    title: str
    threat_model: tuple[Threat, ...] = Field(default=(), alias="threatModel")
    vulnerabilities: tuple[Vulnerability, ...] = ()
    requirements: tuple[str, ...] = ()
    compliance_notes: tuple[str, ...] = Field(default=(), alias="complianceNotes")


class TestCase(_Frozen):
    __test__ = False  # not a pytest class

    id: str
    description: str
    preconditions: tuple[str, ...] = ()
    steps: tuple[str, ...] = ()
    expected_result: str = Field(alias="expectedResult")
    priority: Literal["P0", "P1", "P2"] = "P1"


class TestPlan(_Frozen):
    __test__ = False

    type: Literal["TestPlan"] = "TestPlan"
    title: str
    strategy: str
    test_cases: tuple[TestCase, ...] = Field(default=(), alias="testCases")
    edge_cases: tuple[str, ...] = Field(default=(), alias="edgeCases")
    automation_plan: tuple[str, ...] = Field(default=(), alias="automationPlan")
    manual_testing_notes: tuple[str, ...] = Field(default=(), alias="manualTestingNotes")


class ReviewItem(_Frozen):
    location: str
    issue: str
    suggestion: str


class CodeReview(_Frozen):
    type: Literal["CodeReview"] = "CodeReview"
    verdict: Literal["approve", "request_changes", "needs_discussion"]
    summary: str
    must_fix: tuple[ReviewItem, ...] = Field(default=(), alias="mustFix")
    should_fix: tuple[ReviewItem, ...] = Field(default=(), alias="shouldFix")
    nits: tuple[str, ...] = ()
    praise: tuple[str, ...] = ()


Artifact = Annotated[
    Union[PRD, DesignSpec, TechPlan, SecurityReview, TestPlan, CodeReview],
    Field(discriminator="type"),
]

_ARTIFACT_ADAPTER = TypeAdapter(Artifact)

# The artifact type each producing role is expected to return.
ARTIFACT_TYPES: dict[Agent, str] = {
    Agent.PRODUCT_MANAGER: "PRD",
    Agent.DESIGNER: "DesignSpec",
    Agent.PLANNER: "TechPlan",
    Agent.SECURITY: "SecurityReview",
    Agent.REVIEWER: "CodeReview",
    Agent.TESTER: "TestPlan",
}


def artifact_from_dict(data: dict):
    """Validate a dict into its artifact variant. Raises pydantic ValidationError."""
    return _ARTIFACT_ADAPTER.validate_python(data)


def artifact_to_dict(artifact) -> dict:
    """Serialize an artifact to a JSON-compatible dict (field aliases preserved)."""
    return artifact.model_dump(mode="json", by_alias=True)


def parse_artifact(text: str, expected_type: str):
    """Parse an LLM response into an artifact of the expected type.

    Returns None when the response is not JSON, is not an artifact, or is an
    artifact of a different type. Agents fall back to a plain message.
    """
    try:
        data = json.loads(strip_fences(text))
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    data.setdefault("type", expected_type)
    if data["type"] != expected_type:
        return None
    try:
        return artifact_from_dict(data)
    except ValidationError:
        return None
