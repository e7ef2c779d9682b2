"""Execution layer: turning a plan into executed steps.

This module provides:
- ExecutableResolver: maps step targets to tools and LLM functions
- ParameterProcessor: placeholder substitution and parameter generation
- ToolStepExecutor / LLMFunctionStepExecutor: run one resolved step
- PlanExecutor: drives a whole plan and aggregates results
- PlanBuilder: assembles plans in code

Example usage:
    from agentflow.execution import ExecutableResolver, PlanBuilder, PlanExecutor

    resolver = ExecutableResolver()
    resolver.tools.register(WeatherTool())

    plan = PlanBuilder("Check the weather").add_tool_step("weather", {"city": "Paris"}).build()
    result = await PlanExecutor(resolver).execute(plan, user_request="Weather in Paris?")
"""

from agentflow.execution.adapters import (
    LLMFunction,
    LLMResult,
    LLMRole,
    ParameterGenerationRequest,
    ParameterGenerator,
    Tool,
    ToolResult,
)
from agentflow.execution.builder import PlanBuilder
from agentflow.execution.engine import PlanExecutor, validate_plan
from agentflow.execution.models import (
    ExecutionResult,
    ExecutionStatus,
    ParameterProcessingResult,
    ParamValue,
    Plan,
    SharedData,
    StepChunk,
    StepContext,
    StepExecutionResult,
    TaskStep,
)
from agentflow.execution.parameters import ParameterProcessor
from agentflow.execution.report import format_step_results, render_execution_report
from agentflow.execution.resolver import (
    CatalogEntry,
    ExecutableItem,
    ExecutableResolver,
    LLMFunctionItem,
    LLMFunctionRegistry,
    NotFound,
    ToolItem,
    ToolRegistry,
)
from agentflow.execution.steps import LLMFunctionStepExecutor, ToolStepExecutor

__all__ = [
    # Models
    "ExecutionResult",
    "ExecutionStatus",
    "ParameterProcessingResult",
    "ParamValue",
    "Plan",
    "SharedData",
    "StepChunk",
    "StepContext",
    "StepExecutionResult",
    "TaskStep",
    # Collaborators
    "LLMFunction",
    "LLMResult",
    "LLMRole",
    "ParameterGenerationRequest",
    "ParameterGenerator",
    "Tool",
    "ToolResult",
    # Resolution
    "CatalogEntry",
    "ExecutableItem",
    "ExecutableResolver",
    "LLMFunctionItem",
    "LLMFunctionRegistry",
    "NotFound",
    "ToolItem",
    "ToolRegistry",
    # Execution
    "LLMFunctionStepExecutor",
    "ParameterProcessor",
    "PlanBuilder",
    "PlanExecutor",
    "ToolStepExecutor",
    "format_step_results",
    "render_execution_report",
    "validate_plan",
]
