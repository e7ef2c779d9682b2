"""Markdown rendering of execution results.

Used to summarize a run for users, and to feed previous results back to
planners and evaluators.
"""

from __future__ import annotations

from agentflow.execution.models import ExecutionResult, Plan, StepExecutionResult

MAX_OUTPUT_CHARS = 2000


def _truncate(text: str, limit: int = MAX_OUTPUT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "... [truncated]"


def format_step_results(steps: list[StepExecutionResult]) -> str:
    """Render one section per step result."""
    if not steps:
        return "No steps were executed."

    lines: list[str] = []
    for step in steps:
        if step.skipped:
            marker = "SKIPPED"
        elif step.success:
            marker = "OK"
        else:
            marker = "FAILED"

        lines.append(f"### Step {step.step_number}: {step.target} [{marker}]")
        if step.description:
            lines.append(f"Description: {step.description}")
        if step.output:
            lines.append(f"Output: {_truncate(step.output)}")
        if step.error:
            lines.append(f"Error: {step.error}")
        lines.append(f"Duration: {step.duration_ms}ms")
        lines.append("")

    return "\n".join(lines).rstrip()


def render_execution_report(plan: Plan, result: ExecutionResult) -> str:
    """Render a full report of one plan run."""
    lines = [
        "## Execution Report",
        "",
        f"Plan ID: {plan.plan_id}",
        f"Summary: {plan.summary or 'N/A'}",
        f"Status: {result.status.value}",
        f"Result: {result.summary}",
        f"Duration: {result.total_duration_ms}ms",
        f"Estimated: {plan.total_estimated_seconds:g}s",
    ]
    if result.error:
        lines.append(f"Error: {result.error}")
    if result.cancelled:
        lines.append("Cancelled: yes")

    lines.extend(["", "### Constraints"])
    for constraint in plan.constraints:
        lines.append(f"- {constraint}")
    if not plan.constraints:
        lines.append("- None specified")

    lines.extend(["", format_step_results(result.steps)])
    return "\n".join(lines)
