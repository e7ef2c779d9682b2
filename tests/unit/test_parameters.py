"""Tests for ParameterProcessor.

Tests cover:
- Strict placeholder substitution from SharedData
- JSON escaping of substituted values
- Parameter generation when required parameters are absent
- Generation failures returned as data
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from agentflow.execution.adapters import ParameterGenerator
from agentflow.execution.parameters import ParameterProcessor, find_placeholders, substitute

SEARCH_SCHEMA = {
    "type": "object",
    "properties": {"query": {"type": "string"}, "limit": {"type": "integer"}},
    "required": ["query"],
}


@pytest.fixture
def generator() -> AsyncMock:
    """Create a mock parameter generator."""
    generator = AsyncMock(spec=ParameterGenerator)
    generator.generate = AsyncMock(return_value='{"query": "generated"}')
    return generator


@pytest.fixture
def processor(generator: AsyncMock) -> ParameterProcessor:
    """Create a processor without a resilience layer."""
    return ParameterProcessor(generator)


class TestSubstitution:
    """Tests for placeholder handling."""

    def test_find_placeholders_in_order(self):
        """Test placeholder names are found once each, in order."""
        assert find_placeholders("{a} and {b} then {a}") == ["a", "b"]
        assert find_placeholders('{"query": "x"}') == []

    @pytest.mark.asyncio
    async def test_missing_placeholder_fails(self, processor):
        """Test a placeholder absent from SharedData fails the result."""
        result = await processor.process("Summarize {article}", target="Universal", shared_data={})

        assert result.success is False
        assert result.missing == ["article"]
        assert "article" in result.error

    @pytest.mark.asyncio
    async def test_present_placeholder_substituted_verbatim(self, processor):
        """Test a present placeholder is replaced with its value."""
        result = await processor.process(
            "Summarize {article}", target="Universal", shared_data={"article": "Cats nap."}
        )

        assert result.success is True
        assert result.parameters == "Summarize Cats nap."

    @pytest.mark.asyncio
    async def test_whole_text_placeholder(self, processor):
        """Test a text that is exactly one placeholder becomes the raw value."""
        result = await processor.process(
            "{payload}", target="store", shared_data={"payload": '{"id": 1}'}
        )

        assert result.parameters == '{"id": 1}'

    def test_json_values_are_escaped(self):
        """Test substitution inside JSON keeps the document valid."""
        text = substitute(
            '{"query": "{topic}", "limit": {limit}}',
            {"topic": 'say "hi"\nplease', "limit": 5},
        )

        assert json.loads(text) == {"query": 'say "hi"\nplease', "limit": 5}

    def test_structured_value_inside_string_literal(self):
        """Test a dict placed inside quotes is embedded as escaped JSON text."""
        text = substitute('{"filter": "{opts}"}', {"opts": {"a": 1}})

        assert json.loads(text) == {"filter": '{"a": 1}'}

    def test_string_value_outside_string_literal(self):
        """Test a string placed as a bare JSON value is written quoted."""
        text = substitute('{"q": {name}, "tags": [{tag}]}', {"name": "cats", "tag": 'a "b"'})

        assert json.loads(text) == {"q": "cats", "tags": ['a "b"']}

    def test_braced_plain_text_is_not_treated_as_json(self):
        """Test text that is not a JSON document keeps string values unquoted."""
        assert substitute("{first} and {second}", {"first": "cats", "second": "dogs"}) == (
            "cats and dogs"
        )

    @pytest.mark.asyncio
    async def test_substituted_json_reaches_tool_as_object(self, processor):
        """Test substituted structured values leave the parameters decodable."""
        result = await processor.process(
            '{"query": {topic}, "filter": "{opts}"}',
            target="search",
            input_schema=SEARCH_SCHEMA,
            shared_data={"topic": "cats", "opts": {"lang": "en"}},
        )

        assert result.success is True
        assert json.loads(result.parameters) == {"query": "cats", "filter": '{"lang": "en"}'}

    @pytest.mark.asyncio
    async def test_no_placeholders_passes_through(self, processor, generator):
        """Test text without placeholders is returned unchanged."""
        result = await processor.process('{"query": "cats"}', target="search", input_schema=SEARCH_SCHEMA)

        assert result.success is True
        assert result.parameters == '{"query": "cats"}'
        assert result.generated is False
        generator.generate.assert_not_called()


class TestGeneration:
    """Tests for parameter generation."""

    @pytest.mark.asyncio
    async def test_blank_required_parameters_are_generated(self, processor, generator):
        """Test blank text for a target requiring parameters triggers generation."""
        result = await processor.process(
            "",
            target="search",
            input_schema=SEARCH_SCHEMA,
            requires_parameters=True,
            user_request="find cat facts",
            step_description="Search the web",
            shared_data={"topic": "cats"},
        )

        assert result.success is True
        assert result.generated is True
        assert json.loads(result.parameters) == {"query": "generated"}

        request = generator.generate.await_args.args[0]
        assert request.target == "search"
        assert request.user_request == "find cat facts"
        assert request.missing == ["query"]
        assert request.shared_data == {"topic": "cats"}

    @pytest.mark.asyncio
    async def test_blank_optional_parameters_are_not_generated(self, processor, generator):
        """Test blank text passes when the target does not require parameters."""
        result = await processor.process("", target="clock", requires_parameters=False)

        assert result.success is True
        assert result.parameters == ""
        generator.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_required_key_merges_generated(self, processor, generator):
        """Test a JSON object missing required keys is completed by the generator."""
        result = await processor.process(
            '{"limit": 3}', target="search", input_schema=SEARCH_SCHEMA
        )

        assert result.success is True
        assert json.loads(result.parameters) == {"limit": 3, "query": "generated"}
        generator.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_schema_mismatch_fails(self, processor, generator):
        """Test generated text missing required keys fails."""
        generator.generate.return_value = '{"limit": 10}'

        result = await processor.process(
            "", target="search", input_schema=SEARCH_SCHEMA, requires_parameters=True
        )

        assert result.success is False
        assert result.missing == ["query"]
        generator.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_generator_exception_returned_as_data(self, processor, generator):
        """Test generator errors become a failed result."""
        generator.generate.side_effect = RuntimeError("model offline")

        result = await processor.process(
            "", target="search", input_schema=SEARCH_SCHEMA, requires_parameters=True
        )

        assert result.success is False
        assert "model offline" in result.error

    @pytest.mark.asyncio
    async def test_no_generator_configured(self):
        """Test required parameters without a generator fail."""
        result = await ParameterProcessor().process(
            "", target="search", input_schema=SEARCH_SCHEMA, requires_parameters=True
        )

        assert result.success is False
        assert "no generator" in result.error

    @pytest.mark.asyncio
    async def test_progress_chunk_emitted(self, processor):
        """Test generation reports progress through on_chunk."""
        chunks = []

        async def on_chunk(chunk):
            chunks.append(chunk)

        await processor.process(
            "",
            target="search",
            input_schema=SEARCH_SCHEMA,
            requires_parameters=True,
            step_number=2,
            on_chunk=on_chunk,
        )

        assert len(chunks) == 1
        assert chunks[0].step_number == 2
        assert "search" in chunks[0].content
