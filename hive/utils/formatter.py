"""Output Formatter — renders artifacts and finished runs as Markdown."""

from pathlib import Path

from hive.config import get_config
from hive.utils.parsing import message_text


def _bullets(lines: list[str], items, prefix: str = "- ") -> None:
    for item in items:
        lines.append(f"{prefix}{item}")
    lines.append("")


def _render_prd(a) -> list[str]:
    lines = [f"# PRD: {a.title}", "", "## Goal", "", a.goal, ""]
    if a.success_metrics:
        lines += ["## Success Metrics", ""]
        _bullets(lines, a.success_metrics)
    if a.user_stories:
        lines += ["## User Stories", ""]
        for us in a.user_stories:
            lines.append(f"### {us.id}: {us.title} [{us.priority}]")
            lines.append(f"**As a** {us.as_a}")
            lines.append(f"**I want** {us.i_want}")
            lines.append(f"**So that** {us.so_that}")
            lines.append("")
            if us.acceptance_criteria:
                lines += ["**Acceptance Criteria:**", ""]
                _bullets(lines, us.acceptance_criteria, prefix="- [ ] ")
    if a.out_of_scope:
        lines += ["## Out of Scope", ""]
        _bullets(lines, a.out_of_scope)
    if a.open_questions:
        lines += ["## Open Questions", ""]
        _bullets(lines, a.open_questions)
    return lines


def _render_design_spec(a) -> list[str]:
    lines = [f"# Design Spec: {a.title}", ""]
    if a.principles:
        lines += ["## Principles", ""]
        _bullets(lines, a.principles)
    if a.user_flow:
        lines += ["## User Flow", ""]
        for step in a.user_flow:
            note = f" ({step.notes})" if step.notes else ""
            lines.append(f"{step.step}. **{step.screen}** — {step.action}{note}")
        lines.append("")
    if a.components:
        lines += ["## Components", ""]
        for comp in a.components:
            props = f" Props: {', '.join(comp.props)}" if comp.props else ""
            lines.append(f"- **{comp.name}**: {comp.description}{props}")
        lines.append("")
    if a.interaction_notes:
        lines += ["## Interaction Notes", ""]
        _bullets(lines, a.interaction_notes)
    if a.accessibility_notes:
        lines += ["## Accessibility Notes", ""]
        _bullets(lines, a.accessibility_notes)
    return lines


def _render_tech_plan(a) -> list[str]:
    lines = [f"# Tech Plan: {a.title}", "", a.overview, ""]
    if a.architecture.components:
        lines += ["## Architecture", ""]
        for comp in a.architecture.components:
            lines.append(f"- **{comp.name}**: {comp.responsibility}")
        lines.append("")
    if a.architecture.data_flow:
        lines += ["**Data flow:** " + a.architecture.data_flow, ""]
    if a.implementation_steps:
        lines += ["## Implementation Steps", ""]
        for step in sorted(a.implementation_steps, key=lambda s: s.order):
            files = f" (`{'`, `'.join(step.files)}`)" if step.files else ""
            lines.append(f"{step.order}. {step.task}{files}")
        lines.append("")
    if a.risks:
        lines += ["## Risks", "", "| Risk | Severity | Mitigation |", "|------|----------|------------|"]
        for r in a.risks:
            lines.append(f"| {r.risk} | {r.severity} | {r.mitigation} |")
        lines.append("")
    return lines


def _render_security_review(a) -> list[str]:
    lines = [f"# Security Review: {a.title}", ""]
    if a.threat_model:
        lines += ["## Threat Model", "", "| Threat | Vector | Impact | Likelihood |",
                  "|--------|--------|--------|------------|"]
        for t in a.threat_model:
            lines.append(f"| {t.threat} | {t.attack_vector} | {t.impact} | {t.likelihood} |")
        lines.append("")
    if a.vulnerabilities:
        lines += ["## Vulnerabilities", ""]
        for v in a.vulnerabilities:
            lines.append(f"- **{v.id}** [{v.severity}] {v.description} — {v.recommendation}")
        lines.append("")
    if a.requirements:
        lines += ["## Security Requirements", ""]
        _bullets(lines, a.requirements)
    if a.compliance_notes:
        lines += ["## Compliance Notes", ""]
        _bullets(lines, a.compliance_notes)
    return lines


def _render_test_plan(a) -> list[str]:
    lines = [f"# {a.title}", "", "## Strategy", "", a.strategy, ""]
    if a.test_cases:
        lines += ["## Test Cases", ""]
        for tc in a.test_cases:
            lines.append(f"### {tc.id} [{tc.priority}]")
            lines.append(tc.description)
            lines.append("")
            for i, step in enumerate(tc.steps, 1):
                lines.append(f"{i}. {step}")
            lines.append(f"**Expected:** {tc.expected_result}")
            lines.append("")
    if a.edge_cases:
        lines += ["## Edge Cases", ""]
        _bullets(lines, a.edge_cases)
    if a.automation_plan:
        lines += ["## Automation Plan", ""]
        _bullets(lines, a.automation_plan)
    if a.manual_testing_notes:
        lines += ["## Manual Testing Notes", ""]
        _bullets(lines, a.manual_testing_notes)
    return lines


def _render_code_review(a) -> list[str]:
    lines = ["# Code Review", "", f"**Verdict: {a.verdict}**", "", a.summary, ""]
    for heading, items in (("Must Fix", a.must_fix), ("Should Fix", a.should_fix)):
        if items:
            lines += [f"## {heading}", ""]
            for item in items:
                lines.append(f"- `{item.location}`: {item.issue} → {item.suggestion}")
            lines.append("")
    if a.nits:
        lines += ["## Nits", ""]
        _bullets(lines, a.nits)
    if a.praise:
        lines += ["## Praise", ""]
        _bullets(lines, a.praise)
    return lines


_RENDERERS = {
    "PRD": _render_prd,
    "DesignSpec": _render_design_spec,
    "TechPlan": _render_tech_plan,
    "SecurityReview": _render_security_review,
    "TestPlan": _render_test_plan,
    "CodeReview": _render_code_review,
}


def render_artifact(artifact) -> str:
    """Render one artifact as a Markdown document."""
    return "\n".join(_RENDERERS[artifact.type](artifact)).rstrip() + "\n"


def render_report(state: dict) -> str:
    """Render a finished (or stopped) run: status, artifacts, and audit trail."""
    lines = [
        "# HIVE Run Report",
        "",
        f"- **Thread:** {state.get('thread_id', '?')}",
        f"- **Status:** {state.get('status', '?')}",
        f"- **Phase:** {state.get('phase', '?')}",
        f"- **Turns:** {state.get('turn_count', 0)}",
        f"- **Contributors:** {', '.join(state.get('contributors', [])) or 'none'}",
        "",
    ]

    messages = state.get("messages", [])
    if messages:
        first = message_text(messages[0])
        lines += ["## Request", "", first, ""]

    for artifact in state.get("artifacts", []):
        lines.append("---")
        lines.append("")
        lines.append(render_artifact(artifact))

    handoffs = state.get("handoffs", [])
    if handoffs:
        lines += ["---", "", "## Handoffs", ""]
        for h in handoffs:
            lines.append(
                f"- Turn {h.get('turn', '?')}: {h['from_agent']} → {h['target_agent']} — {h.get('reason', '')}"
            )
        lines.append("")

    sub_tasks = state.get("sub_tasks", [])
    if sub_tasks:
        lines += ["---", "", "## Delegated Sub-Tasks", ""]
        for task in sub_tasks:
            lines.append(f"- `{task.id}` ({task.worker}, {task.status}): {task.description}")
        lines.append("")

    return "\n".join(lines)


def write_report(state: dict) -> Path:
    """Write the run report as Markdown to the configured report path.

    Returns the Path to the written file.
    """
    config = get_config()
    base_path = Path(config["report_path"])
    output_dir = base_path.parent
    output_dir.mkdir(parents=True, exist_ok=True)

    stem = state.get("thread_id") or base_path.stem
    output_path = output_dir / f"{stem}.md"
    counter = 1
    while output_path.exists():
        counter += 1
        output_path = output_dir / f"{stem} ({counter}).md"

    output_path.write_text(render_report(state), encoding="utf-8")
    return output_path
