"""Tests for ToolStepExecutor and LLMFunctionStepExecutor."""

from __future__ import annotations

import asyncio
import json

import pytest

from agentflow.config import ResilienceSettings
from agentflow.errors import ErrorKind
from agentflow.execution.adapters import LLMResult, ToolResult
from agentflow.execution.models import StepContext, TaskStep
from agentflow.execution.resolver import LLMFunctionItem, ToolItem
from agentflow.execution.steps import (
    LLMFunctionStepExecutor,
    ToolStepExecutor,
    build_llm_parameters,
    format_output,
)
from agentflow.resilience.policies import ResilienceLayer
from helpers import StreamingFunction, StreamingTool, make_function, make_tool


@pytest.fixture
def step() -> TaskStep:
    """Create a sample step."""
    return TaskStep(step_number=1, target="search", description="Search", output_variable="hits")


@pytest.fixture
def context() -> StepContext:
    """Create a sample step context."""
    return StepContext(step_number=1, description="Search", user_request="cats")


class TestToolStepExecutor:
    """Tests for tool steps."""

    @pytest.mark.asyncio
    async def test_json_parameters_are_decoded(self, step, context):
        """Test JSON object parameters reach the tool as a dict."""
        tool = make_tool("search", ToolResult(success=True, data={"hits": 3}))

        result = await ToolStepExecutor().execute(
            ToolItem(tool), step, '{"query": "cats"}', context
        )

        assert result.success is True
        assert json.loads(result.output) == {"hits": 3}
        assert result.output_variable == "hits"
        assert tool.execute.await_args.args[0] == {"query": "cats"}

    @pytest.mark.asyncio
    async def test_plain_parameters_pass_as_string(self, step, context):
        """Test non-JSON parameters reach the tool unchanged."""
        tool = make_tool("search")

        result = await ToolStepExecutor().execute(ToolItem(tool), step, "cats", context)

        assert result.output == "search output"
        assert tool.execute.await_args.args[0] == "cats"

    @pytest.mark.asyncio
    async def test_reported_failure_becomes_failed_result(self, step, context):
        """Test ToolResult(success=False) becomes a failed step."""
        tool = make_tool("search", ToolResult(success=False, error="quota exceeded"))

        result = await ToolStepExecutor().execute(ToolItem(tool), step, "", context)

        assert result.success is False
        assert result.error == "quota exceeded"
        assert result.error_kind == ErrorKind.EXECUTION

    @pytest.mark.asyncio
    async def test_exception_becomes_failed_result(self, step, context):
        """Test exceptions are captured, not raised."""
        tool = make_tool("search", side_effect=ConnectionError("unreachable"))

        result = await ToolStepExecutor().execute(ToolItem(tool), step, "", context)

        assert result.success is False
        assert "unreachable" in result.error
        assert result.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_timeout_reported_with_kind(self, step, context):
        """Test a resilience timeout is reported as TIMEOUT."""

        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        tool = make_tool("search", side_effect=hang)
        layer = ResilienceLayer(
            ResilienceSettings(max_retries=1, base_delay_seconds=0, timeout_seconds=0.05)
        )

        result = await ToolStepExecutor(layer).execute(ToolItem(tool), step, "", context)

        assert result.success is False
        assert result.error_kind == ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_streaming_forwards_chunks(self, step, context):
        """Test streamed fragments are forwarded and joined into the output."""
        chunks = []

        async def on_chunk(chunk):
            chunks.append(chunk)

        tool = StreamingTool("search", ["a", "b", "c"])

        result = await ToolStepExecutor().execute(
            ToolItem(tool), step, "", context, on_chunk=on_chunk
        )

        assert result.output == "abc"
        assert [c.content for c in chunks if not c.is_final] == ["a", "b", "c"]
        assert chunks[-1].is_final is True


class TestLLMFunctionStepExecutor:
    """Tests for LLM function steps."""

    @pytest.mark.asyncio
    async def test_parsed_data_is_json_encoded(self, context):
        """Test parsed data is preferred over raw content."""
        function = make_function(
            "Evaluator",
            LLMResult(success=True, content="raw", parsed_data={"score": 0.9}),
        )
        step = TaskStep(step_number=2, target="Evaluator")

        result = await LLMFunctionStepExecutor().execute(
            LLMFunctionItem(function), step, '{"content": "x"}', context
        )

        assert json.loads(result.output) == {"score": 0.9}
        assert function.execute.await_args.args[0] == {"content": "x"}

    @pytest.mark.asyncio
    async def test_content_used_without_parsed_data(self, context):
        """Test raw content is the output when nothing was parsed."""
        function = make_function("Conversationalist")
        step = TaskStep(step_number=1, target="Conversationalist")

        result = await LLMFunctionStepExecutor().execute(
            LLMFunctionItem(function), step, "hello", context
        )

        assert result.output == "Conversationalist says hi"
        assert function.execute.await_args.args[0] == {"CONTENT": "hello"}

    @pytest.mark.asyncio
    async def test_streaming_function(self, context):
        """Test streaming functions forward tokens and receive merged parameters."""
        tokens = []

        async def on_chunk(chunk):
            tokens.append(chunk.content)

        function = StreamingFunction("Universal", ["Hel", "lo"])
        step = TaskStep(
            step_number=1,
            target="Universal",
            response_guide={"format": "short"},
        )

        result = await LLMFunctionStepExecutor().execute(
            LLMFunctionItem(function), step, '{"taskType": "greet"}', context, on_chunk=on_chunk
        )

        assert result.output == "Hello"
        assert tokens[:2] == ["Hel", "lo"]
        assert function.received == [
            {"taskType": "greet", "RESPONSE_GUIDE": {"format": "short"}}
        ]


class TestHelpers:
    """Tests for output and parameter helpers."""

    def test_format_output(self):
        """Test strings pass through and other data is JSON-encoded."""
        assert format_output("text") == "text"
        assert format_output([1, 2]) == "[1, 2]"
        assert format_output(None) is None

    def test_build_llm_parameters_blank(self):
        """Test blank parameters produce an empty dict."""
        assert build_llm_parameters("  ", TaskStep(step_number=1, target="x")) == {}
