"""Collaborator interfaces consumed by the execution layer.

Implementations connect to actual providers:
- Tool: an external tool (search, file access, HTTP API, ...)
- LLMFunction: a role-specific language-model call
- ParameterGenerator: produces parameters for a step that has none
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator

from pydantic import BaseModel, ConfigDict, Field, JsonValue

from agentflow.cancellation import CancellationToken
from agentflow.execution.models import StepContext


class LLMRole(str, Enum):
    """Well-known LLM function roles."""

    INTENT_ANALYZER = "IntentAnalyzer"
    PLANNER = "Planner"
    TOOL_PARAMETER_SETTER = "ToolParameterSetter"
    UNIVERSAL = "Universal"
    EVALUATOR = "Evaluator"
    CONVERSATIONALIST = "Conversationalist"


def _object_schema(*required: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {name: {"type": "string"} for name in required},
        "required": list(required),
    }


ROLE_INPUT_SCHEMAS: dict[str, dict[str, Any]] = {
    LLMRole.INTENT_ANALYZER.value: _object_schema("userInput"),
    LLMRole.PLANNER.value: _object_schema("userRequest"),
    LLMRole.UNIVERSAL.value: _object_schema("taskType", "content"),
    LLMRole.EVALUATOR.value: _object_schema("content"),
    LLMRole.CONVERSATIONALIST.value: _object_schema("message"),
}
DEFAULT_INPUT_SCHEMA = _object_schema("input")


class ToolResult(BaseModel):
    """Result returned by Tool.execute."""

    model_config = ConfigDict(frozen=True)

    success: bool
    data: Any = None
    error: str | None = None


class LLMResult(BaseModel):
    """Result returned by LLMFunction.execute."""

    model_config = ConfigDict(frozen=True)

    success: bool
    content: str = ""
    parsed_data: Any = None
    error: str | None = None


class Tool(ABC):
    """An external tool a plan step can target."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] | None = None
    requires_parameters: bool = False
    supports_streaming: bool = False

    @abstractmethod
    async def execute(
        self,
        input: Any,
        context: StepContext,
        cancel_token: CancellationToken,
    ) -> ToolResult:
        """Execute the tool.

        Args:
            input: Decoded parameters (dict for JSON objects, str otherwise).
            context: Step context.
            cancel_token: Cooperative cancellation token.

        Returns:
            ToolResult describing success or failure.
        """

    async def stream(
        self,
        input: Any,
        context: StepContext,
        cancel_token: CancellationToken,
    ) -> AsyncIterator[str]:
        """Yield output fragments. Only called when supports_streaming is True."""
        raise NotImplementedError(f"Tool '{self.name}' does not stream")
        yield  # pragma: no cover


class LLMFunction(ABC):
    """A role-specific LLM call a plan step can target."""

    role: str
    description: str = ""
    requires_parameters: bool = True
    supports_streaming: bool = False

    @property
    def input_schema(self) -> dict[str, Any]:
        return ROLE_INPUT_SCHEMAS.get(self.role, DEFAULT_INPUT_SCHEMA)

    @abstractmethod
    async def execute(
        self,
        parameters: dict[str, Any],
        context: StepContext,
        cancel_token: CancellationToken,
    ) -> LLMResult:
        """Run the function with merged parameters."""

    async def stream(
        self,
        parameters: dict[str, Any],
        context: StepContext,
        cancel_token: CancellationToken,
    ) -> AsyncIterator[str]:
        """Yield content tokens. Only called when supports_streaming is True."""
        raise NotImplementedError(f"LLM function '{self.role}' does not stream")
        yield  # pragma: no cover


class ParameterGenerationRequest(BaseModel):
    """Everything a generator needs to produce parameters for one step."""

    model_config = ConfigDict(frozen=True)

    target: str
    input_schema: dict[str, Any] | None = None
    step_description: str = ""
    user_request: str = ""
    current_parameters: str = ""
    missing: list[str] = Field(default_factory=list)
    shared_data: dict[str, JsonValue] = Field(default_factory=dict)


class ParameterGenerator(ABC):
    """Produces parameter text for a step whose required parameters are absent."""

    @abstractmethod
    async def generate(
        self,
        request: ParameterGenerationRequest,
        cancel_token: CancellationToken,
    ) -> str:
        """Return parameter text (normally a JSON object)."""
