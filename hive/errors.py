"""Error taxonomy for the orchestration core.

Every run-level error carries the partial WorkflowState accumulated up to the
failure in ``state`` so callers never lose progress.
"""

from enum import Enum


class OrchestrationError(Exception):
    """Base class for errors that end (or would end) a run."""

    def __init__(self, message: str, state: dict | None = None):
        super().__init__(message)
        self.state = state

    @property
    def classification(self) -> str:
        return type(self).__name__


class RoutingError(OrchestrationError):
    """A handoff named an agent outside the roster."""

    def __init__(self, target, state: dict | None = None):
        super().__init__(f"Unknown handoff target {target!r}.", state)
        self.target = target


class BoundedLoopError(OrchestrationError):
    """The turn ceiling was reached."""

    def __init__(self, turn_count: int, max_turns: int, state: dict | None = None):
        super().__init__(
            f"Turn limit reached ({turn_count}/{max_turns}). Stopping to prevent an infinite loop.",
            state,
        )
        self.turn_count = turn_count
        self.max_turns = max_turns


class AgentRetryExhausted(OrchestrationError):
    """An agent kept signalling needs_retry past its retry ceiling."""

    def __init__(self, agent: str, retries: int, last_error: str | None = None,
                 state: dict | None = None):
        super().__init__(
            f"{agent} failed {retries} times. Last error: {last_error or 'unknown'}",
            state,
        )
        self.agent = agent
        self.retries = retries
        self.last_error = last_error


class ApprovalError(OrchestrationError):
    """An approval signal arrived while no gate was pending."""


class UpstreamErrorKind(str, Enum):
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    AUTH_ERROR = "auth_error"
    MALFORMED_REQUEST = "malformed_request"


RETRYABLE_KINDS = frozenset({
    UpstreamErrorKind.TIMEOUT,
    UpstreamErrorKind.RATE_LIMITED,
    UpstreamErrorKind.SERVER_ERROR,
})


class UpstreamInvocationError(OrchestrationError):
    """The LLM invocation service failed."""

    def __init__(self, kind: UpstreamErrorKind, message: str = "", state: dict | None = None):
        super().__init__(f"{kind.value}: {message}" if message else kind.value, state)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class SubTaskFailure(Exception):
    """One delegated sub-task failed. Local to that sub-task."""

    def __init__(self, task_id: str, reason: str):
        super().__init__(f"Sub-task {task_id} failed: {reason}")
        self.task_id = task_id
        self.reason = reason
