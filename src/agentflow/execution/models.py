"""Execution layer Pydantic models.

This module defines the data flowing through plan execution:
- TaskStep / Plan: the declarative, dependency-ordered plan
- ParameterProcessingResult: outcome of placeholder substitution or generation
- StepExecutionResult: outcome of a single step
- ExecutionResult: aggregate of one plan run
- StepChunk: incremental output forwarded while a step streams
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, JsonValue

from agentflow.errors import ErrorKind

# Tagged value type held in SharedData and decoded parameters
ParamValue = JsonValue
SharedData = dict[str, JsonValue]


class TaskStep(BaseModel):
    """One planned unit naming a target, its parameters and its dependencies."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    step_number: int = Field(ge=1)
    target: str = Field(
        min_length=1,
        validation_alias=AliasChoices("target", "tool_name", "toolName"),
    )
    description: str = ""
    parameters: str = ""
    output_variable: str | None = None
    depends_on: list[int] = Field(default_factory=list)
    estimated_seconds: float | None = Field(default=None, ge=0)
    response_guide: dict[str, Any] | None = None


class Plan(BaseModel):
    """Immutable ordered list of steps produced upstream."""

    model_config = ConfigDict(frozen=True)

    plan_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    summary: str = ""
    steps: list[TaskStep] = Field(default_factory=list)
    is_executable: bool = True
    execution_blocker: str | None = None
    constraints: list[str] = Field(default_factory=list)

    @property
    def total_estimated_seconds(self) -> float:
        return sum(step.estimated_seconds or 0 for step in self.steps)

    @property
    def targets(self) -> list[str]:
        return [step.target for step in self.steps]


class ParameterProcessingResult(BaseModel):
    """Outcome of processing a step's raw parameter text."""

    model_config = ConfigDict(frozen=True)

    success: bool
    parameters: str = ""
    error: str | None = None
    generated: bool = False
    missing: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, parameters: str, generated: bool = False) -> ParameterProcessingResult:
        return cls(success=True, parameters=parameters, generated=generated)

    @classmethod
    def fail(
        cls, error: str, missing: list[str] | None = None
    ) -> ParameterProcessingResult:
        return cls(success=False, error=error, missing=missing or [])


class StepExecutionResult(BaseModel):
    """Outcome of executing a single step."""

    model_config = ConfigDict(frozen=True)

    step_number: int
    target: str
    description: str = ""
    parameters: str = ""
    success: bool
    output: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    duration_ms: int = Field(default=0, ge=0)
    output_variable: str | None = None
    skipped: bool = False  # Never attempted because a dependency failed
    completed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ExecutionStatus(str, Enum):
    """Aggregate status of one plan run."""

    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


class ExecutionResult(BaseModel):
    """Aggregate of a plan run; step results are append-only."""

    plan_id: str
    steps: list[StepExecutionResult] = Field(default_factory=list)
    status: ExecutionStatus = ExecutionStatus.FAILED
    summary: str = ""
    error: str | None = None
    cancelled: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    @property
    def succeeded(self) -> list[StepExecutionResult]:
        return [s for s in self.steps if s.success]

    @property
    def failed(self) -> list[StepExecutionResult]:
        return [s for s in self.steps if not s.success]

    @property
    def total_duration_ms(self) -> int:
        return sum(s.duration_ms for s in self.steps)

    def result_for(self, step_number: int) -> StepExecutionResult | None:
        for step in self.steps:
            if step.step_number == step_number:
                return step
        return None


class StepChunk(BaseModel):
    """Incremental output forwarded while a step streams."""

    model_config = ConfigDict(frozen=True)

    step_number: int
    target: str
    content: str
    is_final: bool = False


class StepContext(BaseModel):
    """Read-only context handed to tools and LLM functions."""

    model_config = ConfigDict(frozen=True)

    step_number: int
    description: str = ""
    user_request: str = ""
    shared_data: dict[str, JsonValue] = Field(default_factory=dict)
