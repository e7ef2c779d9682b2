"""Orchestrator: the plan, execute, evaluate loop.

This module provides the Orchestrator class that ties everything together:
- Creates a session per request in the SessionStore
- Asks the Planner for a plan (through the resilience layer)
- Runs the plan with the PlanExecutor
- Optionally scores the run with the Evaluator
- Stops when the quality gate or CompletionChecker says so, otherwise
  plans again with the updated SharedData and evaluator feedback

Example usage:
    orchestrator = Orchestrator(planner, PlanExecutor(resolver), resolver=resolver)

    result = await orchestrator.execute("Compare the weather in Paris and Rome")

    async for chunk in orchestrator.execute_stream("Summarize my inbox"):
        print(chunk.type, chunk.content)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import timedelta
from typing import AsyncIterator, Awaitable, Callable

from agentflow.cancellation import CancellationToken
from agentflow.config import OrchestratorSettings
from agentflow.errors import OperationCancelledError
from agentflow.execution.engine import PlanExecutor
from agentflow.execution.models import (
    ExecutionResult,
    ExecutionStatus,
    Plan,
    StepChunk,
    StepExecutionResult,
)
from agentflow.execution.report import format_step_results
from agentflow.execution.resolver import ExecutableResolver
from agentflow.orchestration.adapters import Evaluator, Planner
from agentflow.orchestration.completion import CompletionChecker
from agentflow.orchestration.models import (
    ChunkType,
    Evaluation,
    OrchestrationContext,
    OrchestrationResult,
    PlanningRequest,
    StreamChunk,
)
from agentflow.orchestration.store import SessionStore
from agentflow.resilience.policies import ResilienceLayer

logger = logging.getLogger(__name__)

Emit = Callable[[StreamChunk], Awaitable[None]]

PLANNER_DEPENDENCY = "planner"
EVALUATOR_DEPENDENCY = "evaluator"


class Orchestrator:
    """Runs orchestration sessions."""

    def __init__(
        self,
        planner: Planner,
        plan_executor: PlanExecutor,
        evaluator: Evaluator | None = None,
        resolver: ExecutableResolver | None = None,
        store: SessionStore | None = None,
        completion_checker: CompletionChecker | None = None,
        resilience: ResilienceLayer | None = None,
        settings: OrchestratorSettings | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            planner: Produces plans.
            plan_executor: Executes plans.
            evaluator: Optional quality scorer.
            resolver: Source of the target catalog shown to the planner.
            store: Session store; a private one is created when None.
            completion_checker: Completion rules.
            resilience: Wraps planner and evaluator calls.
            settings: Planning loop limits.
        """
        self._planner = planner
        self._executor = plan_executor
        self._evaluator = evaluator
        self._resolver = resolver
        self.store = store or SessionStore()
        self._checker = completion_checker or CompletionChecker()
        self._resilience = resilience
        self.settings = settings or OrchestratorSettings()

    async def execute(
        self,
        request: str,
        cancel_token: CancellationToken | None = None,
        session_id: str | None = None,
    ) -> OrchestrationResult:
        """Run a new session to completion.

        Args:
            request: The user request.
            cancel_token: Cancels planning and stops the plan between steps.
            session_id: Optional caller-chosen session id.

        Returns:
            OrchestrationResult for the new session.
        """
        context = self.store.create(request, session_id)
        logger.info("Starting session %s", context.session_id)
        return await self._run(context, cancel_token or CancellationToken(), emit=None)

    async def execute_stream(
        self,
        request: str,
        cancel_token: CancellationToken | None = None,
        session_id: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Run a new session, yielding chunks as work progresses.

        The stream ends after a FINAL or ERROR chunk. Closing the iterator
        early cancels the session.
        """
        token = (cancel_token or CancellationToken()).child()
        context = self.store.create(request, session_id)
        logger.info("Starting streamed session %s", context.session_id)

        queue: asyncio.Queue[StreamChunk] = asyncio.Queue(
            maxsize=self.settings.stream_buffer_size
        )

        async def produce() -> None:
            try:
                await self._run(context, token, emit=queue.put)
            except Exception as e:
                logger.exception("Session %s failed", context.session_id)
                await queue.put(
                    StreamChunk(
                        type=ChunkType.ERROR, session_id=context.session_id, content=str(e)
                    )
                )

        producer = asyncio.create_task(produce())
        try:
            while True:
                chunk = await queue.get()
                yield chunk
                if chunk.is_final:
                    break
        finally:
            if not producer.done():
                token.cancel("stream closed")
                producer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await producer

    async def continue_session(
        self,
        session_id: str,
        additional_input: str,
        cancel_token: CancellationToken | None = None,
    ) -> OrchestrationResult:
        """Resume a session with more user input.

        A completed session returns its stored outcome without re-running.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        context = self.store.require(session_id)
        if context.is_completed and context.result is not None:
            logger.info("Session %s already completed", session_id)
            return context.result

        context.additional_inputs.append(additional_input)
        return await self._run(context, cancel_token or CancellationToken(), emit=None)

    def sweep_sessions(self) -> int:
        """Drop sessions older than the configured session TTL."""
        return self.store.sweep_expired(
            timedelta(seconds=self.settings.session_ttl_seconds)
        )

    async def _run(
        self,
        context: OrchestrationContext,
        token: CancellationToken,
        emit: Emit | None,
    ) -> OrchestrationResult:
        cancelled = False

        async def send(chunk_type: ChunkType, content: str = "", **extra) -> None:
            if emit is not None:
                await emit(
                    StreamChunk(
                        type=chunk_type, session_id=context.session_id, content=content, **extra
                    )
                )

        async def on_step_completed(step: StepExecutionResult) -> None:
            context.history.append(step)
            status = "ok" if step.success else f"failed: {step.error}"
            await send(
                ChunkType.TOOL_CALL,
                f"Step {step.step_number} ({step.target}) {status}",
                step_number=step.step_number,
                step=step,
            )

        async def on_chunk(chunk: StepChunk) -> None:
            if chunk.content:
                await send(ChunkType.TOKEN, chunk.content, step_number=chunk.step_number)

        while not context.is_completed:
            if token.is_cancelled:
                cancelled = True
                context.mark_completed("Cancelled")
                break

            if context.iterations >= self.settings.max_iterations:
                context.mark_completed(
                    f"Stopped after {self.settings.max_iterations} planning rounds"
                )
                break

            context.iterations += 1
            await send(ChunkType.STATUS, f"Planning (round {context.iterations})")

            try:
                plan = await self._plan(context, token)
            except OperationCancelledError:
                cancelled = True
                context.mark_completed("Cancelled")
                break
            except Exception as e:
                logger.error("Planning failed for session %s: %s", context.session_id, e)
                context.error = f"Planning failed: {e}"
                context.mark_completed()
                break

            if not plan.is_executable:
                context.error = plan.execution_blocker or "Plan is not executable"
                context.mark_completed()
                break

            if not context.planned_actions:
                context.planned_actions = plan.targets

            await send(ChunkType.STATUS, f"Executing {len(plan.steps)} steps")
            execution = await self._executor.execute(
                plan,
                user_request=context.user_request,
                shared_data=context.shared_data,
                on_step_completed=on_step_completed,
                on_chunk=on_chunk,
                cancel_token=token,
            )
            context.executions.append(execution)

            if execution.cancelled:
                cancelled = True
                context.mark_completed("Cancelled")
                break

            evaluation = await self._evaluate(context, execution, token, send)
            if evaluation is not None:
                context.last_evaluation = evaluation
                if evaluation.score >= self.settings.quality_threshold:
                    context.mark_completed("Quality threshold met")
                    break

            decision = self._checker.decide(context)
            if decision.completed:
                context.mark_completed(decision.note or decision.reason.value)
                break

            self.store.update(context)

        result = self._build_result(context, cancelled)
        context.result = result
        self.store.update(context)

        logger.info(
            "Session %s completed (success=%s, note=%s)",
            context.session_id,
            result.success,
            result.completion_note,
        )

        if result.error:
            await send(ChunkType.ERROR, result.error, result=result)
        else:
            await send(ChunkType.FINAL, result.summary, result=result)
        return result

    async def _plan(self, context: OrchestrationContext, token: CancellationToken) -> Plan:
        evaluation = context.last_evaluation
        request = PlanningRequest(
            session_id=context.session_id,
            user_request=context.user_request,
            iteration=context.iterations,
            catalog=self._resolver.catalog() if self._resolver else [],
            shared_data=dict(context.shared_data),
            previous_results=format_step_results(context.history) if context.history else "",
            feedback=list(evaluation.improvements) if evaluation else [],
            additional_inputs=list(context.additional_inputs),
        )

        async def call(call_token: CancellationToken) -> Plan:
            return await self._planner.create_plan(request, call_token)

        if self._resilience is None:
            return await call(token)
        return await self._resilience.execute(PLANNER_DEPENDENCY, call, token)

    async def _evaluate(
        self,
        context: OrchestrationContext,
        execution: ExecutionResult,
        token: CancellationToken,
        send: Callable[..., Awaitable[None]],
    ) -> Evaluation | None:
        if self._evaluator is None:
            return None

        await send(ChunkType.STATUS, "Evaluating results")
        evaluator = self._evaluator

        async def call(call_token: CancellationToken) -> Evaluation:
            return await evaluator.evaluate(context.user_request, execution, call_token)

        try:
            if self._resilience is None:
                return await call(token)
            return await self._resilience.execute(EVALUATOR_DEPENDENCY, call, token)
        except Exception as e:
            logger.warning("Evaluation failed for session %s: %s", context.session_id, e)
            return None

    def _build_result(
        self, context: OrchestrationContext, cancelled: bool
    ) -> OrchestrationResult:
        execution = context.last_execution
        evaluation = context.last_evaluation
        status = execution.status if execution else None

        passed_gate = (
            evaluation is not None and evaluation.score >= self.settings.quality_threshold
        )
        success = (
            context.error is None
            and not cancelled
            and (status == ExecutionStatus.SUCCESS or passed_gate)
        )

        if evaluation is not None and evaluation.summary:
            summary = evaluation.summary
        elif execution is not None:
            summary = execution.summary
        else:
            summary = context.error or "No plan was executed"

        return OrchestrationResult(
            session_id=context.session_id,
            success=success,
            summary=summary,
            score=evaluation.score if evaluation else None,
            improvements=list(evaluation.improvements) if evaluation else [],
            status=status,
            iterations=context.iterations,
            cancelled=cancelled,
            completion_note=context.completion_note,
            error=context.error,
        )
