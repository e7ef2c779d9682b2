"""Tests for ExecutableResolver and the registries."""

from __future__ import annotations

import pytest

from agentflow.execution.adapters import DEFAULT_INPUT_SCHEMA, ROLE_INPUT_SCHEMAS, LLMRole
from agentflow.execution.resolver import (
    ExecutableResolver,
    LLMFunctionItem,
    NotFound,
    ToolItem,
)
from helpers import StreamingFunction, make_function, make_tool


@pytest.fixture
def resolver() -> ExecutableResolver:
    """Create a resolver with one tool and one LLM function."""
    resolver = ExecutableResolver()
    resolver.tools.register(make_tool("search"))
    resolver.functions.register(make_function("Planner"))
    return resolver


class TestExecutableResolver:
    """Tests for target resolution."""

    def test_resolves_tool(self, resolver):
        """Test tool names resolve to ToolItem."""
        item = resolver.resolve("search")

        assert isinstance(item, ToolItem)
        assert item.name == "search"

    def test_resolves_llm_function_by_role(self, resolver):
        """Test LLM roles resolve to LLMFunctionItem."""
        item = resolver.resolve("Planner")

        assert isinstance(item, LLMFunctionItem)
        assert item.function.role == "Planner"

    def test_unknown_name_returns_not_found(self, resolver):
        """Test unknown targets yield NotFound instead of raising."""
        item = resolver.resolve("teleport")

        assert item == NotFound("teleport")

    def test_same_instance_on_repeated_resolution(self, resolver):
        """Test resolving twice returns the same underlying instance."""
        first = resolver.resolve("search")
        second = resolver.resolve("search")

        assert first.tool is second.tool

    def test_case_insensitive_fallback(self, resolver):
        """Test lookups fall back to a case-insensitive match."""
        assert isinstance(resolver.resolve("SEARCH"), ToolItem)
        assert isinstance(resolver.resolve("planner"), LLMFunctionItem)

    def test_tools_take_precedence(self):
        """Test a tool shadows an LLM function with the same name."""
        resolver = ExecutableResolver()
        resolver.functions.register(make_function("Universal"))
        resolver.tools.register(make_tool("Universal"))

        assert isinstance(resolver.resolve("Universal"), ToolItem)

    def test_unregister(self, resolver):
        """Test unregistered tools no longer resolve."""
        assert resolver.tools.unregister("search") is True
        assert isinstance(resolver.resolve("search"), NotFound)

    def test_catalog_lists_everything(self, resolver):
        """Test the catalog describes tools and LLM functions."""
        catalog = {entry.name: entry for entry in resolver.catalog()}

        assert catalog["search"].kind == "tool"
        assert catalog["Planner"].kind == "llm_function"
        assert catalog["search"].description == "search tool"


class TestRoleSchemas:
    """Tests for per-role input schemas."""

    def test_known_roles(self):
        """Test well-known roles carry their input schema."""
        assert ROLE_INPUT_SCHEMAS[LLMRole.PLANNER.value]["required"] == ["userRequest"]
        assert ROLE_INPUT_SCHEMAS[LLMRole.UNIVERSAL.value]["required"] == ["taskType", "content"]

    def test_function_schema_follows_role(self):
        """Test LLMFunction.input_schema is derived from its role."""
        assert StreamingFunction("Evaluator", []).input_schema["required"] == ["content"]
        assert StreamingFunction("Custom", []).input_schema == DEFAULT_INPUT_SCHEMA
