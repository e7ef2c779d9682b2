"""Planner and Evaluator interfaces consumed by the Orchestrator."""

from __future__ import annotations

from abc import ABC, abstractmethod

from agentflow.cancellation import CancellationToken
from agentflow.execution.models import ExecutionResult, Plan
from agentflow.orchestration.models import Evaluation, PlanningRequest


class Planner(ABC):
    """Produces a Plan for a planning round. Opaque to the core."""

    @abstractmethod
    async def create_plan(
        self,
        request: PlanningRequest,
        cancel_token: CancellationToken,
    ) -> Plan:
        """Create a plan.

        Args:
            request: User request, catalog, SharedData and feedback.
            cancel_token: Cooperative cancellation token.

        Returns:
            Plan to execute. Set is_executable=False with a blocker to stop.
        """


class Evaluator(ABC):
    """Scores an execution against the user request."""

    @abstractmethod
    async def evaluate(
        self,
        user_request: str,
        execution_result: ExecutionResult,
        cancel_token: CancellationToken,
    ) -> Evaluation:
        """Return an Evaluation with a score between 0 and 1."""
