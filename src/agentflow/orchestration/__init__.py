"""Orchestration layer: sessions spanning plan, execute and evaluate rounds.

This module provides:
- Orchestrator: runs sessions (execute, execute_stream, continue_session)
- CompletionChecker: decides when a session stops looping
- SessionStore: thread-safe map of session id to context
- Planner / Evaluator: interfaces for the upstream collaborators
"""

from agentflow.orchestration.adapters import Evaluator, Planner
from agentflow.orchestration.completion import (
    CompletionChecker,
    CompletionDecision,
    CompletionReason,
)
from agentflow.orchestration.models import (
    ChunkType,
    Evaluation,
    OrchestrationContext,
    OrchestrationResult,
    PlanningRequest,
    StreamChunk,
)
from agentflow.orchestration.orchestrator import Orchestrator
from agentflow.orchestration.store import SessionStore

__all__ = [
    # Models
    "ChunkType",
    "Evaluation",
    "OrchestrationContext",
    "OrchestrationResult",
    "PlanningRequest",
    "StreamChunk",
    # Collaborators
    "Evaluator",
    "Planner",
    # Components
    "CompletionChecker",
    "CompletionDecision",
    "CompletionReason",
    "Orchestrator",
    "SessionStore",
]
