"""Agent step: one invocation of one role against the current workflow state.

Every role runs through the same step: build the system prompt, call the
configured model through the LLM service, execute tool calls, parse the
role's artifact (if it owns one), and return a partial state update. What
differs per role comes from table lookups (capabilities, prompts, artifact
type), not subclasses.

Returned update keys: messages, contributors, artifacts, needs_retry,
last_error, plus ``tool_outputs`` (raw tool result strings) which the
Orchestrator scans for handoffs and delegations and never merges.
"""

import logging

from langchain_core.messages import HumanMessage
from pydantic import ValidationError

from hive.agents.prompts import build_system_prompt, retry_context
from hive.artifacts import ARTIFACT_TYPES, parse_artifact
from hive.config import get_config, model_for
from hive.delegation import delegate_tool
from hive.errors import UpstreamInvocationError
from hive.handoff import handoff_tool
from hive.roles import Agent, Capability, capabilities_for
from hive.utils.failures import detect_failure
from hive.utils.formatter import render_artifact
from hive.utils.parsing import message_text

logger = logging.getLogger(__name__)


class AgentStep:
    """Async callable step for one role."""

    def __init__(self, agent: Agent | str, llm, tool_executor=None, config: dict | None = None):
        self.agent = Agent(agent)
        self.llm = llm
        self.tool_executor = tool_executor
        self.config = config if config is not None else get_config()

        caps = capabilities_for(self.agent)
        self.core_tools = []
        if Capability.HANDOFF in caps:
            self.core_tools.append(handoff_tool)
        if Capability.DELEGATE in caps:
            self.core_tools.append(delegate_tool)
        self._core_by_name = {t.name: t for t in self.core_tools}

    @property
    def name(self) -> str:
        return self.agent.value

    def __repr__(self) -> str:
        return f"AgentStep({self.name})"

    def _retry_limit(self) -> int:
        limits = self.config.get("agent_retry_limits") or {}
        return limits.get(self.name, self.config.get("max_agent_retries", 3))

    def _system_prompt(self, state: dict) -> str:
        extra = ""
        if state.get("needs_retry"):
            attempt = state.get("agent_retries", {}).get(self.name, 0)
            extra = retry_context(attempt, self._retry_limit(), state.get("last_error"))
        return build_system_prompt(self.agent, extra)

    async def __call__(self, state: dict) -> dict:
        # Workers inside a delegation batch neither hand off nor delegate further.
        tools = [] if state.get("sub_task_id") else self.core_tools
        logger.info("[HIVE] %s started (turn %d)", self.name, state.get("turn_count", 0) + 1)

        try:
            response = await self.llm.invoke(
                agent=self.name,
                system_prompt=self._system_prompt(state),
                messages=state["messages"],
                model=model_for(self.name),
                tools=tools or None,
                thread_id=state.get("thread_id"),
            )
        except UpstreamInvocationError as exc:
            if not exc.retryable:
                raise
            logger.warning("[HIVE] %s: upstream %s, will retry", self.name, exc.kind.value)
            return {"needs_retry": True, "last_error": str(exc)}

        core_outputs, host_outputs = await self._run_tools(getattr(response, "tool_calls", None) or [])
        text = message_text(response)

        artifact = None
        artifact_type = ARTIFACT_TYPES.get(self.agent)
        if artifact_type:
            artifact = parse_artifact(text, artifact_type)
            if artifact is None and text.strip():
                logger.warning("[HIVE] %s response did not match the %s schema", self.name, artifact_type)

        content = render_artifact(artifact) if artifact is not None else text
        if host_outputs:
            content += "\n\n**Tool Results:**\n" + "\n".join(host_outputs)

        update = {
            "contributors": [self.name],
            "tool_outputs": core_outputs + host_outputs,
            "needs_retry": False,
        }
        if artifact is not None:
            update["artifacts"] = [artifact]

        failure = None
        if Capability.RUN_COMMANDS in capabilities_for(self.agent):
            failure = detect_failure(host_outputs)
        if failure:
            logger.info("[HIVE] %s: tool failure detected, requesting retry", self.name)
            content += "\n\n**STATUS: NEEDS_RETRY**"
            update["needs_retry"] = True
            update["last_error"] = failure

        update["messages"] = [HumanMessage(content=content or "(no output)", name=self.name)]
        return update

    async def _run_tools(self, tool_calls: list) -> tuple[list[str], list[str]]:
        """Execute tool calls. Returns (core tool outputs, host tool outputs).

        Core tools (handoff, delegate) return JSON for the Orchestrator. Host
        tools go to the tool executor; their failures become result strings.
        """
        core_outputs, host_outputs = [], []
        for call in tool_calls:
            name = call.get("name", "")
            args = call.get("args") or {}
            core = self._core_by_name.get(name)
            if core is not None:
                try:
                    core_outputs.append(await core.ainvoke(args))
                except ValidationError as exc:
                    logger.warning("[HIVE] %s: malformed %s call ignored: %s", self.name, name, exc)
                continue
            if self.tool_executor is None:
                host_outputs.append(f"Unknown tool: {name}")
                continue
            try:
                result = await self.tool_executor.execute(name, args)
            except Exception as exc:  # host tool failures are reported, not raised
                result = f"Tool error: {exc}"
            host_outputs.append(f"Tool {name}: {result}")
        return core_outputs, host_outputs


def build_agent_steps(llm, tool_executor=None, config: dict | None = None) -> dict[str, AgentStep]:
    """One step per roster role, keyed by agent name."""
    return {agent.value: AgentStep(agent, llm, tool_executor, config) for agent in Agent}
