"""Fluent plan builder.

This module provides the PlanBuilder class for:
- Assembling plans in code without a planner
- Numbering steps and wiring dependencies
- Grouping independent steps that may run concurrently
"""

from __future__ import annotations

import json
from typing import Any

from agentflow.errors import PlanValidationError
from agentflow.execution.engine import validate_plan
from agentflow.execution.models import Plan, TaskStep


def _as_text(parameters: str | dict[str, Any] | None) -> str:
    if parameters is None:
        return ""
    if isinstance(parameters, str):
        return parameters
    return json.dumps(parameters)


class PlanBuilder:
    """Build a Plan step by step.

    Example:
        plan = (
            PlanBuilder("Summarize the weather")
            .add_tool_step("weather", {"city": "Paris"}, output_variable="forecast")
            .add_llm_step("Universal", '{"taskType": "summarize", "content": "{forecast}"}',
                          depends_on=[1])
            .build()
        )
    """

    def __init__(self, summary: str = ""):
        self._summary = summary
        self._steps: list[TaskStep] = []
        self._constraints: list[str] = []

    @property
    def next_step_number(self) -> int:
        return len(self._steps) + 1

    def add_tool_step(
        self,
        tool_name: str,
        parameters: str | dict[str, Any] | None = None,
        description: str = "",
        output_variable: str | None = None,
        depends_on: list[int] | None = None,
        estimated_seconds: float | None = None,
    ) -> PlanBuilder:
        self._steps.append(
            TaskStep(
                step_number=self.next_step_number,
                target=tool_name,
                description=description or f"Run tool {tool_name}",
                parameters=_as_text(parameters),
                output_variable=output_variable,
                depends_on=list(depends_on or []),
                estimated_seconds=estimated_seconds,
            )
        )
        return self

    def add_llm_step(
        self,
        role: str,
        parameters: str | dict[str, Any] | None = None,
        description: str = "",
        output_variable: str | None = None,
        depends_on: list[int] | None = None,
        response_guide: dict[str, Any] | None = None,
        estimated_seconds: float | None = None,
    ) -> PlanBuilder:
        self._steps.append(
            TaskStep(
                step_number=self.next_step_number,
                target=role,
                description=description or f"Ask {role}",
                parameters=_as_text(parameters),
                output_variable=output_variable,
                depends_on=list(depends_on or []),
                response_guide=response_guide,
                estimated_seconds=estimated_seconds,
            )
        )
        return self

    def add_parallel_steps(
        self,
        targets: list[tuple[str, str | dict[str, Any] | None]],
        depends_on: list[int] | None = None,
    ) -> PlanBuilder:
        """Add steps that share dependencies and do not depend on each other.

        They only run concurrently when the executor allows parallel steps.
        """
        for target, parameters in targets:
            self._steps.append(
                TaskStep(
                    step_number=self.next_step_number,
                    target=target,
                    description=f"Run {target}",
                    parameters=_as_text(parameters),
                    depends_on=list(depends_on or []),
                )
            )
        return self

    def with_constraint(self, constraint: str) -> PlanBuilder:
        self._constraints.append(constraint)
        return self

    def build(self) -> Plan:
        """Create the Plan.

        Raises:
            PlanValidationError: If there are no steps or dependencies are invalid.
        """
        if not self._steps:
            raise PlanValidationError("Plan must contain at least one step")

        plan = Plan(
            summary=self._summary,
            steps=list(self._steps),
            constraints=list(self._constraints),
        )
        problems = validate_plan(plan)
        if problems:
            raise PlanValidationError("; ".join(problems))
        return plan
