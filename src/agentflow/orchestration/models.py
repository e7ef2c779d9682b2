"""Orchestration layer Pydantic models.

This module defines session-level structures:
- OrchestrationContext: mutable state of one session across planning rounds
- OrchestrationResult: outcome returned to callers
- StreamChunk: one item of a streamed orchestration
- Evaluation / PlanningRequest: exchanged with Evaluator and Planner
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, JsonValue, PrivateAttr

from agentflow.execution.models import (
    ExecutionResult,
    ExecutionStatus,
    StepExecutionResult,
)
from agentflow.execution.resolver import CatalogEntry


class Evaluation(BaseModel):
    """Quality assessment of an execution."""

    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0, le=1)
    summary: str = ""
    improvements: list[str] = Field(default_factory=list)


class OrchestrationResult(BaseModel):
    """Outcome of an orchestration session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    success: bool
    summary: str = ""
    score: float | None = None
    improvements: list[str] = Field(default_factory=list)
    status: ExecutionStatus | None = None
    iterations: int = 0
    cancelled: bool = False
    completion_note: str | None = None
    error: str | None = None

    @property
    def evaluation_score(self) -> int | None:
        """Score as a percentage."""
        if self.score is None:
            return None
        return round(self.score * 100)


class OrchestrationContext(BaseModel):
    """State of one session.

    Completion is monotonic: once mark_completed() has been called the
    session stays completed for its lifetime.
    """

    session_id: str
    user_request: str
    history: list[StepExecutionResult] = Field(default_factory=list)
    executions: list[ExecutionResult] = Field(default_factory=list)
    shared_data: dict[str, JsonValue] = Field(default_factory=dict)
    planned_actions: list[str] = Field(default_factory=list)
    additional_inputs: list[str] = Field(default_factory=list)
    iterations: int = 0
    last_evaluation: Evaluation | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    completion_note: str | None = None
    error: str | None = None
    result: OrchestrationResult | None = None

    _completed: bool = PrivateAttr(default=False)

    @property
    def is_completed(self) -> bool:
        return self._completed

    def mark_completed(self, note: str | None = None) -> None:
        if self._completed:
            return
        self._completed = True
        self.completed_at = datetime.now(UTC)
        if note and not self.completion_note:
            self.completion_note = note

    @property
    def last_execution(self) -> ExecutionResult | None:
        return self.executions[-1] if self.executions else None


class ChunkType(str, Enum):
    """Kinds of streamed orchestration chunks."""

    STATUS = "status"
    TOKEN = "token"
    TOOL_CALL = "tool_call"
    FINAL = "final"
    ERROR = "error"


class StreamChunk(BaseModel):
    """One item of a streamed orchestration; FINAL and ERROR end the stream."""

    model_config = ConfigDict(frozen=True)

    type: ChunkType
    session_id: str
    content: str = ""
    step_number: int | None = None
    step: StepExecutionResult | None = None
    result: OrchestrationResult | None = None

    @property
    def is_final(self) -> bool:
        return self.type in (ChunkType.FINAL, ChunkType.ERROR)


class PlanningRequest(BaseModel):
    """Input handed to a Planner for one planning round."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    user_request: str
    iteration: int = 1
    catalog: list[CatalogEntry] = Field(default_factory=list)
    shared_data: dict[str, JsonValue] = Field(default_factory=dict)
    previous_results: str = ""
    feedback: list[str] = Field(default_factory=list)
    additional_inputs: list[str] = Field(default_factory=list)
