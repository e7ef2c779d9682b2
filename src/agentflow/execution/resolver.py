"""Resolution of step targets to executable items.

Tools and LLM functions are registered explicitly. A target name resolves
against the tool registry first, then against LLM functions by role.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from agentflow.execution.adapters import LLMFunction, Tool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolItem:
    tool: Tool

    @property
    def name(self) -> str:
        return self.tool.name

    @property
    def input_schema(self) -> dict[str, Any] | None:
        return self.tool.input_schema

    @property
    def requires_parameters(self) -> bool:
        return self.tool.requires_parameters


@dataclass(frozen=True)
class LLMFunctionItem:
    function: LLMFunction

    @property
    def name(self) -> str:
        return self.function.role

    @property
    def input_schema(self) -> dict[str, Any] | None:
        return self.function.input_schema

    @property
    def requires_parameters(self) -> bool:
        return self.function.requires_parameters


@dataclass(frozen=True)
class NotFound:
    name: str


ExecutableItem = ToolItem | LLMFunctionItem


class CatalogEntry(BaseModel):
    """Description of one registered target, as shown to planners."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: Literal["tool", "llm_function"]
    description: str = ""
    requires_parameters: bool = False
    input_schema: dict[str, Any] | None = None


class _Registry:
    """Name-keyed registry with exact, then case-insensitive lookup."""

    kind = "item"

    def __init__(self) -> None:
        self._items: dict[str, Any] = {}

    def _register(self, key: str, item: Any) -> None:
        if not key:
            raise ValueError(f"Cannot register {self.kind} without a name")
        if key in self._items:
            logger.warning("Replacing registered %s: %s", self.kind, key)
        self._items[key] = item

    def unregister(self, name: str) -> bool:
        return self._items.pop(name, None) is not None

    def get(self, name: str) -> Any | None:
        item = self._items.get(name)
        if item is not None:
            return item
        folded = name.casefold()
        for key, candidate in self._items.items():
            if key.casefold() == folded:
                return candidate
        return None

    def names(self) -> list[str]:
        return list(self._items)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._items)


class ToolRegistry(_Registry):
    kind = "tool"

    def register(self, tool: Tool) -> None:
        self._register(tool.name, tool)

    def get(self, name: str) -> Tool | None:
        return super().get(name)

    def all(self) -> list[Tool]:
        return list(self._items.values())


class LLMFunctionRegistry(_Registry):
    kind = "llm function"

    def register(self, function: LLMFunction) -> None:
        self._register(function.role, function)

    def get(self, name: str) -> LLMFunction | None:
        return super().get(name)

    def all(self) -> list[LLMFunction]:
        return list(self._items.values())


class ExecutableResolver:
    """Maps a step target name to a tool or LLM function."""

    def __init__(
        self,
        tools: ToolRegistry | None = None,
        functions: LLMFunctionRegistry | None = None,
    ) -> None:
        self.tools = tools or ToolRegistry()
        self.functions = functions or LLMFunctionRegistry()

    def resolve(self, name: str) -> ExecutableItem | NotFound:
        """Resolve a target name.

        Args:
            name: Target named by a plan step.

        Returns:
            ToolItem or LLMFunctionItem wrapping the registered instance,
            or NotFound when neither registry knows the name.
        """
        tool = self.tools.get(name)
        if tool is not None:
            return ToolItem(tool)

        function = self.functions.get(name)
        if function is not None:
            return LLMFunctionItem(function)

        logger.debug("Target not found: %s", name)
        return NotFound(name)

    def catalog(self) -> list[CatalogEntry]:
        """List every registered target for planning prompts."""
        entries = [
            CatalogEntry(
                name=tool.name,
                kind="tool",
                description=tool.description,
                requires_parameters=tool.requires_parameters,
                input_schema=tool.input_schema,
            )
            for tool in self.tools.all()
        ]
        entries.extend(
            CatalogEntry(
                name=function.role,
                kind="llm_function",
                description=function.description,
                requires_parameters=function.requires_parameters,
                input_schema=function.input_schema,
            )
            for function in self.functions.all()
        )
        return entries
