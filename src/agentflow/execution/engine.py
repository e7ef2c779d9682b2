"""Plan execution engine.

This module provides the PlanExecutor class for:
- Validating plan structure before anything runs
- Driving execution step by step (resolve, process parameters, execute)
- Binding step outputs into SharedData for later steps
- Skipping dependents of failed steps without attempting them
- Optionally running independent steps concurrently
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Awaitable, Callable

from agentflow.cancellation import CancellationToken
from agentflow.config import ExecutionSettings
from agentflow.errors import ErrorKind, ParameterError, TargetNotFoundError
from agentflow.execution.models import (
    ExecutionResult,
    ExecutionStatus,
    Plan,
    SharedData,
    StepContext,
    StepExecutionResult,
    TaskStep,
)
from agentflow.execution.parameters import ChunkCallback, ParameterProcessor
from agentflow.execution.resolver import (
    ExecutableItem,
    ExecutableResolver,
    NotFound,
    ToolItem,
)
from agentflow.execution.steps import LLMFunctionStepExecutor, ToolStepExecutor
from agentflow.resilience.policies import ResilienceLayer

logger = logging.getLogger(__name__)

StepCallback = Callable[[StepExecutionResult], Awaitable[None]]


def validate_plan(plan: Plan) -> list[str]:
    """Return structural problems with a plan; empty when valid.

    Step numbers must be unique and every dependency must name a step
    declared earlier in the same plan.
    """
    problems: list[str] = []
    seen: set[int] = set()

    for step in plan.steps:
        if step.step_number in seen:
            problems.append(f"Duplicate step number {step.step_number}")
        for dep in step.depends_on:
            if dep not in seen:
                problems.append(
                    f"Step {step.step_number} depends on {dep}, which is not an earlier step"
                )
        seen.add(step.step_number)

    return problems


class PlanExecutor:
    """Executes a Plan against registered tools and LLM functions.

    The executor:
    1. Rejects non-executable or structurally invalid plans up front
    2. Runs eligible steps in declaration order
    3. Records a skipped failure for steps whose dependencies failed
    4. Binds successful outputs to SharedData and notifies the callback
    5. Stops scheduling new steps once the cancel token fires
    """

    def __init__(
        self,
        resolver: ExecutableResolver,
        parameter_processor: ParameterProcessor | None = None,
        resilience: ResilienceLayer | None = None,
        settings: ExecutionSettings | None = None,
        llm_resilience: ResilienceLayer | None = None,
    ) -> None:
        """Initialize the plan executor.

        Args:
            resolver: Maps step targets to tools and LLM functions.
            parameter_processor: Substitutes and generates parameters.
            resilience: Wraps every remote call; calls are direct when None.
            settings: Execution settings (parallelism).
            llm_resilience: Wraps LLM function calls instead of resilience,
                for example to retry only on transient API errors.
        """
        self._resolver = resolver
        self._parameters = parameter_processor or ParameterProcessor(resilience=resilience)
        self._tool_executor = ToolStepExecutor(resilience)
        self._llm_executor = LLMFunctionStepExecutor(llm_resilience or resilience)
        self._settings = settings or ExecutionSettings()

    async def execute(
        self,
        plan: Plan,
        user_request: str = "",
        shared_data: SharedData | None = None,
        on_step_completed: StepCallback | None = None,
        on_chunk: ChunkCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """Execute the plan and return the aggregate result.

        Args:
            plan: The plan to execute.
            user_request: Original user request, for parameter generation.
            shared_data: Session SharedData; updated in place with bindings.
            on_step_completed: Optional callback after each recorded step.
            on_chunk: Optional receiver for streamed step output.
            cancel_token: Checked before each step starts.

        Returns:
            ExecutionResult with step results in recorded order.
        """
        token = cancel_token or CancellationToken()
        data = shared_data if shared_data is not None else {}
        result = ExecutionResult(plan_id=plan.plan_id)

        if not plan.is_executable:
            blocker = plan.execution_blocker or "Plan is not executable"
            logger.info("Plan %s not executable: %s", plan.plan_id, blocker)
            return self._finish(result, plan, error=blocker)

        problems = validate_plan(plan)
        if problems:
            logger.warning("Plan %s is invalid: %s", plan.plan_id, "; ".join(problems))
            return self._finish(result, plan, error="; ".join(problems))

        logger.info("Executing plan %s with %d steps", plan.plan_id, len(plan.steps))

        async def record(step_result: StepExecutionResult) -> None:
            result.steps.append(step_result)
            if (
                step_result.success
                and step_result.output_variable
                and step_result.output is not None
            ):
                data[step_result.output_variable] = step_result.output
            if on_step_completed:
                await on_step_completed(step_result)

        async def run(step: TaskStep) -> StepExecutionResult:
            return await self._run_step(step, user_request, data, token, on_chunk)

        if self._settings.max_parallel_steps > 1:
            cancelled = await self._execute_parallel(plan, run, record, token)
        else:
            cancelled = await self._execute_sequential(plan, run, record, token)

        result.cancelled = cancelled
        return self._finish(result, plan)

    async def _execute_sequential(
        self,
        plan: Plan,
        run: Callable[[TaskStep], Awaitable[StepExecutionResult]],
        record: StepCallback,
        token: CancellationToken,
    ) -> bool:
        outcomes: dict[int, bool] = {}

        for step in plan.steps:
            if token.is_cancelled:
                logger.info("Plan %s cancelled before step %d", plan.plan_id, step.step_number)
                return True

            failed_deps = _failed_dependencies(step, outcomes)
            if failed_deps:
                step_result = _skipped_result(step, failed_deps)
            else:
                step_result = await run(step)

            outcomes[step.step_number] = step_result.success
            await record(step_result)

        # A step may have observed the token firing inside its own remote call
        return token.is_cancelled

    async def _execute_parallel(
        self,
        plan: Plan,
        run: Callable[[TaskStep], Awaitable[StepExecutionResult]],
        record: StepCallback,
        token: CancellationToken,
    ) -> bool:
        semaphore = asyncio.Semaphore(self._settings.max_parallel_steps)
        outcomes: dict[int, bool] = {}
        pending = list(plan.steps)
        running: dict[asyncio.Task[StepExecutionResult | None], TaskStep] = {}
        cancelled = False

        async def gated(step: TaskStep) -> StepExecutionResult | None:
            async with semaphore:
                if token.is_cancelled:
                    return None
                return await run(step)

        try:
            while pending or running:
                if token.is_cancelled:
                    cancelled = cancelled or bool(pending)
                    pending.clear()
                else:
                    progressed = True
                    while progressed:
                        progressed = False
                        for step in list(pending):
                            if not all(dep in outcomes for dep in step.depends_on):
                                continue
                            pending.remove(step)
                            progressed = True
                            failed_deps = _failed_dependencies(step, outcomes)
                            if failed_deps:
                                outcomes[step.step_number] = False
                                await record(_skipped_result(step, failed_deps))
                            else:
                                running[asyncio.create_task(gated(step))] = step

                if not running:
                    break

                done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    step = running.pop(task)
                    step_result = task.result()
                    if step_result is None:
                        cancelled = True
                        continue
                    outcomes[step.step_number] = step_result.success
                    await record(step_result)
        finally:
            for task in running:
                task.cancel()

        return cancelled or token.is_cancelled

    async def _run_step(
        self,
        step: TaskStep,
        user_request: str,
        data: SharedData,
        token: CancellationToken,
        on_chunk: ChunkCallback | None,
    ) -> StepExecutionResult:
        try:
            item, parameters = await self._prepare(step, user_request, data, token, on_chunk)
        except (TargetNotFoundError, ParameterError) as e:
            logger.warning("Step %d not started: %s", step.step_number, e)
            return _failed_result(step, str(e), e.kind)

        context = StepContext(
            step_number=step.step_number,
            description=step.description,
            user_request=user_request,
            shared_data=dict(data),
        )
        executor = self._tool_executor if isinstance(item, ToolItem) else self._llm_executor
        return await executor.execute(item, step, parameters, context, token, on_chunk)

    async def _prepare(
        self,
        step: TaskStep,
        user_request: str,
        data: SharedData,
        token: CancellationToken,
        on_chunk: ChunkCallback | None,
    ) -> tuple[ExecutableItem, str]:
        """Resolve the step target and process its parameters.

        Raises:
            TargetNotFoundError: If the target is not registered.
            ParameterError: If parameters cannot be substituted or generated.
        """
        item = self._resolver.resolve(step.target)
        if isinstance(item, NotFound):
            raise TargetNotFoundError(step.target)

        processed = await self._parameters.process(
            step.parameters,
            target=item.name,
            input_schema=item.input_schema,
            requires_parameters=item.requires_parameters,
            user_request=user_request,
            step_description=step.description,
            shared_data=data,
            step_number=step.step_number,
            cancel_token=token,
            on_chunk=on_chunk,
        )
        if not processed.success:
            raise ParameterError(processed.error or "Parameter processing failed")
        return item, processed.parameters

    def _finish(
        self, result: ExecutionResult, plan: Plan, error: str | None = None
    ) -> ExecutionResult:
        total = len(plan.steps)
        succeeded = len(result.succeeded)

        if error is not None:
            result.status = ExecutionStatus.FAILED
            result.error = error
        elif succeeded == total:
            result.status = ExecutionStatus.SUCCESS
        elif succeeded > 0:
            result.status = ExecutionStatus.PARTIAL_SUCCESS
        else:
            result.status = ExecutionStatus.FAILED

        result.summary = f"{succeeded}/{total} steps succeeded"
        if result.cancelled:
            result.summary += " (cancelled)"
        if error:
            result.summary = f"Plan not executed: {error}"
        result.completed_at = datetime.now(UTC)

        logger.info("Plan %s finished: %s", plan.plan_id, result.status.value)
        return result


def _failed_dependencies(step: TaskStep, outcomes: dict[int, bool]) -> list[int]:
    return [dep for dep in step.depends_on if not outcomes.get(dep, False)]


def _failed_result(step: TaskStep, error: str, kind: ErrorKind) -> StepExecutionResult:
    return StepExecutionResult(
        step_number=step.step_number,
        target=step.target,
        description=step.description,
        parameters=step.parameters,
        success=False,
        error=error,
        error_kind=kind,
        output_variable=step.output_variable,
    )


def _skipped_result(step: TaskStep, failed_deps: list[int]) -> StepExecutionResult:
    deps = ", ".join(str(d) for d in failed_deps)
    return StepExecutionResult(
        step_number=step.step_number,
        target=step.target,
        description=step.description,
        parameters=step.parameters,
        success=False,
        skipped=True,
        error=f"Skipped: dependency step {deps} did not succeed",
        error_kind=ErrorKind.BLOCKED,
        output_variable=step.output_variable,
    )
