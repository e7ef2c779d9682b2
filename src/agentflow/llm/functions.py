"""LLM-backed collaborators.

This module provides Anthropic-backed implementations of the interfaces
the core consumes:
- LLMPlanner: produces a Plan from the request and the target catalog
- LLMEvaluator: scores an execution
- LLMParameterGenerator: fills in parameters a step is missing
- PromptLLMFunction: a role-specific LLM function with streaming
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, AsyncIterator

from pydantic import ValidationError

from agentflow.cancellation import CancellationToken
from agentflow.execution.adapters import (
    LLMFunction,
    LLMResult,
    ParameterGenerationRequest,
    ParameterGenerator,
)
from agentflow.execution.models import ExecutionResult, Plan, StepContext
from agentflow.execution.report import format_step_results
from agentflow.llm.client import LLMClient
from agentflow.orchestration.adapters import Evaluator, Planner
from agentflow.orchestration.models import Evaluation, PlanningRequest

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


PLANNING_PROMPT = """
You are the planner of an agent that can call tools and LLM functions.

User request:
{user_request}

Available targets (name, kind, description, input schema):
{catalog}

Shared data from earlier steps (reference values as {{name}} in parameters):
{shared_data}

Results so far:
{previous_results}

Feedback to address:
{feedback}

Additional user input:
{additional_inputs}

Return ONLY a JSON object:
{{
  "summary": "one sentence",
  "is_executable": true,
  "execution_blocker": null,
  "constraints": [],
  "steps": [
    {{
      "step_number": 1,
      "target": "<target name>",
      "description": "what this step does",
      "parameters": {{}},
      "output_variable": "optional_name",
      "depends_on": []
    }}
  ]
}}

Rules:
- Use only listed targets
- depends_on may only name earlier step numbers
- If the request cannot be fulfilled, set is_executable to false and explain in execution_blocker
"""

EVALUATION_PROMPT = """
Evaluate how well the execution below fulfils the user request.

User request:
{user_request}

Execution ({status}):
{results}

Return ONLY a JSON object:
{{"score": <0.0 to 1.0>, "summary": "short assessment", "improvements": ["..."]}}
"""

PARAMETER_PROMPT = """
Produce the input parameters for one step of an agent plan.

TOOL_NAME: {tool_name}
TOOL_INPUT_SCHEMA: {input_schema}
STEP_DESCRIPTION: {step_description}
USER_REQUEST: {user_request}
PREVIOUS_RESULTS: {previous_results}
CURRENT_PARAMETERS: {current_parameters}
MISSING_FIELDS: {missing}

Return ONLY a JSON object that satisfies TOOL_INPUT_SCHEMA.
"""

FUNCTION_PROMPT = """
{instructions}

Input:
{parameters}

Context:
- Step: {description}
- User request: {user_request}
"""


def extract_json(text: str) -> Any:
    """Decode JSON from an LLM response, tolerating a Markdown code fence.

    Raises:
        ValueError: If no valid JSON can be decoded.
    """
    stripped = text.strip()
    fenced = _FENCE.match(stripped)
    if fenced:
        stripped = fenced.group(1)
    try:
        return json.loads(stripped)
    except json.JSONDecodeError as e:
        raise ValueError("LLM did not return valid JSON") from e


class LLMPlanner(Planner):
    """Creates plans with an LLM."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def create_plan(
        self, request: PlanningRequest, cancel_token: CancellationToken
    ) -> Plan:
        cancel_token.raise_if_cancelled()
        raw = await self.llm.complete(
            PLANNING_PROMPT.format(
                user_request=request.user_request,
                catalog=json.dumps(
                    [entry.model_dump() for entry in request.catalog], indent=2
                ),
                shared_data=json.dumps(request.shared_data, indent=2),
                previous_results=request.previous_results or "None",
                feedback="\n".join(f"- {item}" for item in request.feedback) or "None",
                additional_inputs="\n".join(request.additional_inputs) or "None",
            )
        )

        try:
            data = extract_json(raw)
        except ValueError as e:
            raise ValueError("Planner did not return valid JSON") from e
        if not isinstance(data, dict):
            raise ValueError("Planner must return a JSON object")

        # Steps may carry parameters as objects; the plan stores text
        for step in data.get("steps", []):
            params = step.get("parameters")
            if params is not None and not isinstance(params, str):
                step["parameters"] = json.dumps(params)

        try:
            plan = Plan.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Planner returned an invalid plan: {e}") from e

        logger.info("Planned %d steps: %s", len(plan.steps), plan.summary)
        return plan


class LLMEvaluator(Evaluator):
    """Scores executions with an LLM."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def evaluate(
        self,
        user_request: str,
        execution_result: ExecutionResult,
        cancel_token: CancellationToken,
    ) -> Evaluation:
        cancel_token.raise_if_cancelled()
        raw = await self.llm.complete(
            EVALUATION_PROMPT.format(
                user_request=user_request,
                status=execution_result.status.value,
                results=format_step_results(execution_result.steps),
            )
        )

        data = extract_json(raw)
        if not isinstance(data, dict):
            raise ValueError("Evaluator must return a JSON object")

        try:
            score = float(data.get("score", 0))
        except (TypeError, ValueError) as e:
            raise ValueError(f"Evaluator returned a non-numeric score: {data.get('score')}") from e

        return Evaluation(
            score=min(max(score, 0.0), 1.0),
            summary=str(data.get("summary", "")),
            improvements=[str(item) for item in data.get("improvements", [])],
        )


class LLMParameterGenerator(ParameterGenerator):
    """Generates step parameters with an LLM."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def generate(
        self, request: ParameterGenerationRequest, cancel_token: CancellationToken
    ) -> str:
        cancel_token.raise_if_cancelled()
        raw = await self.llm.complete(
            PARAMETER_PROMPT.format(
                tool_name=request.target,
                input_schema=json.dumps(request.input_schema or {}),
                step_description=request.step_description,
                user_request=request.user_request,
                previous_results=json.dumps(request.shared_data),
                current_parameters=request.current_parameters or "None",
                missing=", ".join(request.missing) or "None",
            )
        )
        return json.dumps(extract_json(raw))


class PromptLLMFunction(LLMFunction):
    """An LLM function defined by a role and its instructions."""

    supports_streaming = True

    def __init__(
        self,
        llm: LLMClient,
        role: str,
        instructions: str,
        description: str = "",
        requires_parameters: bool = True,
    ):
        self.llm = llm
        self.role = role
        self.instructions = instructions
        self.description = description or instructions.strip().split("\n")[0] or role
        self.requires_parameters = requires_parameters

    def render(self, parameters: dict[str, Any], context: StepContext) -> str:
        return FUNCTION_PROMPT.format(
            instructions=self.instructions,
            parameters=json.dumps(parameters, indent=2, default=str),
            description=context.description,
            user_request=context.user_request,
        )

    async def execute(
        self,
        parameters: dict[str, Any],
        context: StepContext,
        cancel_token: CancellationToken,
    ) -> LLMResult:
        cancel_token.raise_if_cancelled()
        content = await self.llm.complete(self.render(parameters, context))

        try:
            parsed = extract_json(content)
        except ValueError:
            parsed = None

        return LLMResult(success=True, content=content, parsed_data=parsed)

    async def stream(
        self,
        parameters: dict[str, Any],
        context: StepContext,
        cancel_token: CancellationToken,
    ) -> AsyncIterator[str]:
        async for text in self.llm.stream(self.render(parameters, context)):
            cancel_token.raise_if_cancelled()
            yield text
