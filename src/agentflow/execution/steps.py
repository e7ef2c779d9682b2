"""Step executors for tools and LLM functions.

Each executor runs one resolved item with processed parameters and returns
exactly one StepExecutionResult. Exceptions, including timeouts and
circuit rejections from the resilience layer, become failed results.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, TypeVar

from agentflow.cancellation import CancellationToken
from agentflow.errors import StepExecutionError, classify_error
from agentflow.execution.models import StepChunk, StepContext, StepExecutionResult, TaskStep
from agentflow.execution.parameters import ChunkCallback, parse_json_object
from agentflow.execution.resolver import LLMFunctionItem, ToolItem
from agentflow.resilience.policies import ResilienceLayer

logger = logging.getLogger(__name__)

T = TypeVar("T")


def format_output(data: Any) -> str | None:
    """Strings pass through; other data is JSON-encoded."""
    if data is None:
        return None
    if isinstance(data, str):
        return data
    return json.dumps(data, default=str)


class StepExecutor(ABC):
    """Shared timing, resilience and error capture for step executors."""

    def __init__(self, resilience: ResilienceLayer | None = None) -> None:
        self._resilience = resilience

    async def execute(
        self,
        item: Any,
        step: TaskStep,
        parameters: str,
        context: StepContext,
        cancel_token: CancellationToken | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> StepExecutionResult:
        """Execute one step and capture its outcome.

        Args:
            item: Resolved executable item.
            step: The plan step.
            parameters: Processed parameter text.
            context: Read-only step context.
            cancel_token: Cooperative cancellation token.
            on_chunk: Receives streamed output when the target streams.

        Returns:
            StepExecutionResult with timing, output or error.
        """
        token = cancel_token or CancellationToken()
        started_at = datetime.now(UTC)

        try:
            token.raise_if_cancelled()
            output = await self._run(item, step, parameters, context, token, on_chunk)
        except Exception as e:
            logger.warning("Step %d (%s) failed: %s", step.step_number, step.target, e)
            return StepExecutionResult(
                step_number=step.step_number,
                target=step.target,
                description=step.description,
                parameters=parameters,
                success=False,
                error=str(e) or type(e).__name__,
                error_kind=classify_error(e),
                duration_ms=_calc_duration_ms(started_at),
                output_variable=step.output_variable,
            )

        return StepExecutionResult(
            step_number=step.step_number,
            target=step.target,
            description=step.description,
            parameters=parameters,
            success=True,
            output=output,
            duration_ms=_calc_duration_ms(started_at),
            output_variable=step.output_variable,
        )

    @abstractmethod
    async def _run(
        self,
        item: Any,
        step: TaskStep,
        parameters: str,
        context: StepContext,
        cancel_token: CancellationToken,
        on_chunk: ChunkCallback | None,
    ) -> str | None:
        """Run the target and return its formatted output."""

    async def _call(
        self,
        dependency: str,
        operation: Callable[[CancellationToken], Awaitable[T]],
        cancel_token: CancellationToken,
        retry: bool = True,
    ) -> T:
        if self._resilience is None:
            return await operation(cancel_token)
        return await self._resilience.execute(dependency, operation, cancel_token, retry=retry)

    async def _collect_stream(
        self,
        fragments: Any,
        step: TaskStep,
        on_chunk: ChunkCallback,
    ) -> str:
        parts: list[str] = []
        async for fragment in fragments:
            parts.append(fragment)
            await on_chunk(
                StepChunk(step_number=step.step_number, target=step.target, content=fragment)
            )
        await on_chunk(
            StepChunk(step_number=step.step_number, target=step.target, content="", is_final=True)
        )
        return "".join(parts)


class ToolStepExecutor(StepExecutor):
    """Executes steps that target a Tool."""

    async def _run(
        self,
        item: ToolItem,
        step: TaskStep,
        parameters: str,
        context: StepContext,
        cancel_token: CancellationToken,
        on_chunk: ChunkCallback | None,
    ) -> str | None:
        tool = item.tool
        decoded = parse_json_object(parameters)
        tool_input: Any = decoded if decoded is not None else parameters

        if tool.supports_streaming and on_chunk is not None:
            async def stream(token: CancellationToken) -> str:
                return await self._collect_stream(
                    tool.stream(tool_input, context, token), step, on_chunk
                )

            # Forwarded chunks cannot be recalled, so streams are not retried
            return await self._call(tool.name, stream, cancel_token, retry=False)

        async def run(token: CancellationToken) -> Any:
            result = await tool.execute(tool_input, context, token)
            if not result.success:
                raise StepExecutionError(
                    result.error or f"Tool {tool.name} reported failure", step.step_number
                )
            return result.data

        return format_output(await self._call(tool.name, run, cancel_token))


class LLMFunctionStepExecutor(StepExecutor):
    """Executes steps that target an LLM function."""

    async def _run(
        self,
        item: LLMFunctionItem,
        step: TaskStep,
        parameters: str,
        context: StepContext,
        cancel_token: CancellationToken,
        on_chunk: ChunkCallback | None,
    ) -> str | None:
        function = item.function
        merged = build_llm_parameters(parameters, step)

        if function.supports_streaming and on_chunk is not None:
            async def stream(token: CancellationToken) -> str:
                return await self._collect_stream(
                    function.stream(merged, context, token), step, on_chunk
                )

            return await self._call(function.role, stream, cancel_token, retry=False)

        async def run(token: CancellationToken) -> str | None:
            result = await function.execute(merged, context, token)
            if not result.success:
                raise StepExecutionError(
                    result.error or f"LLM function {function.role} reported failure",
                    step.step_number,
                )
            if result.parsed_data is not None:
                return format_output(result.parsed_data)
            return result.content

        return await self._call(function.role, run, cancel_token)


def build_llm_parameters(parameters: str, step: TaskStep) -> dict[str, Any]:
    """Merge step parameters into the dict handed to an LLM function.

    JSON object keys are merged as-is; any other non-blank text becomes
    CONTENT. A step's response guide is passed as RESPONSE_GUIDE.
    """
    decoded = parse_json_object(parameters)
    if decoded is not None:
        merged = dict(decoded)
    elif parameters.strip():
        merged = {"CONTENT": parameters}
    else:
        merged = {}

    if step.response_guide:
        merged["RESPONSE_GUIDE"] = step.response_guide
    return merged


def _calc_duration_ms(started_at: datetime) -> int:
    """Calculate duration in milliseconds."""
    return int((datetime.now(UTC) - started_at).total_seconds() * 1000)
