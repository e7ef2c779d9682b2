"""Shared fakes for agentflow tests."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator
from unittest.mock import AsyncMock

from agentflow.cancellation import CancellationToken
from agentflow.execution.adapters import LLMFunction, LLMResult, Tool, ToolResult
from agentflow.execution.models import ExecutionResult, Plan, StepContext
from agentflow.orchestration.adapters import Evaluator, Planner
from agentflow.orchestration.models import Evaluation, PlanningRequest


def make_tool(
    name: str,
    result: ToolResult | None = None,
    side_effect: Any = None,
    input_schema: dict[str, Any] | None = None,
    requires_parameters: bool = False,
) -> AsyncMock:
    """Create a mock tool whose execute returns result (or runs side_effect)."""
    tool = AsyncMock(spec=Tool)
    tool.name = name
    tool.description = f"{name} tool"
    tool.input_schema = input_schema
    tool.requires_parameters = requires_parameters
    tool.supports_streaming = False
    tool.execute = AsyncMock(
        return_value=result or ToolResult(success=True, data=f"{name} output"),
        side_effect=side_effect,
    )
    return tool


def make_function(
    role: str,
    result: LLMResult | None = None,
    side_effect: Any = None,
    requires_parameters: bool = False,
) -> AsyncMock:
    """Create a mock LLM function."""
    function = AsyncMock(spec=LLMFunction)
    function.role = role
    function.description = f"{role} function"
    function.input_schema = None
    function.requires_parameters = requires_parameters
    function.supports_streaming = False
    function.execute = AsyncMock(
        return_value=result or LLMResult(success=True, content=f"{role} says hi"),
        side_effect=side_effect,
    )
    return function


class StreamingTool(Tool):
    """Tool that streams fixed fragments."""

    supports_streaming = True

    def __init__(self, name: str, fragments: list[str]):
        self.name = name
        self.fragments = fragments

    async def execute(self, input, context, cancel_token) -> ToolResult:
        return ToolResult(success=True, data="".join(self.fragments))

    async def stream(self, input, context, cancel_token) -> AsyncIterator[str]:
        for fragment in self.fragments:
            yield fragment


class StreamingFunction(LLMFunction):
    """LLM function that streams fixed tokens and records its parameters."""

    supports_streaming = True

    def __init__(self, role: str, tokens: list[str]):
        self.role = role
        self.tokens = tokens
        self.received: list[dict[str, Any]] = []

    async def execute(self, parameters, context: StepContext, cancel_token) -> LLMResult:
        self.received.append(parameters)
        return LLMResult(success=True, content="".join(self.tokens))

    async def stream(self, parameters, context, cancel_token) -> AsyncIterator[str]:
        self.received.append(parameters)
        for token in self.tokens:
            await asyncio.sleep(0)
            yield token


class ScriptedPlanner(Planner):
    """Planner returning prepared plans in order; repeats the last one."""

    def __init__(self, *plans: Plan):
        self.plans = list(plans)
        self.requests: list[PlanningRequest] = []

    async def create_plan(self, request: PlanningRequest, cancel_token: CancellationToken) -> Plan:
        self.requests.append(request)
        index = min(len(self.requests), len(self.plans)) - 1
        return self.plans[index]


class ScriptedEvaluator(Evaluator):
    """Evaluator returning prepared scores in order; repeats the last one."""

    def __init__(self, *evaluations: Evaluation):
        self.evaluations = list(evaluations)
        self.calls = 0

    async def evaluate(
        self,
        user_request: str,
        execution_result: ExecutionResult,
        cancel_token: CancellationToken,
    ) -> Evaluation:
        self.calls += 1
        return self.evaluations[min(self.calls, len(self.evaluations)) - 1]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
