"""agentflow: plan execution and orchestration for LLM and tool driven agents.

This package provides:
- execution: resolve, parameterize and run the steps of a plan
- resilience: retry, circuit breaker, timeout and fallback policies
- orchestration: sessions looping through plan, execute and evaluate
- llm: Anthropic-backed planner, evaluator and LLM functions

Example usage:
    from agentflow import (
        ConfigLoader,
        ExecutableResolver,
        Orchestrator,
        PlanExecutor,
        ResilienceLayer,
    )
    from agentflow.llm import LLMClient, LLMEvaluator, LLMParameterGenerator, LLMPlanner

    config = ConfigLoader().discover()
    llm = LLMClient(config.llm)
    resilience = ResilienceLayer(config.resilience)

    resolver = ExecutableResolver()
    resolver.tools.register(SearchTool())

    executor = PlanExecutor(
        resolver,
        ParameterProcessor(LLMParameterGenerator(llm), resilience),
        resilience=resilience,
        settings=config.execution,
    )
    orchestrator = Orchestrator(
        LLMPlanner(llm),
        executor,
        evaluator=LLMEvaluator(llm),
        resolver=resolver,
        completion_checker=CompletionChecker(config.completion),
        resilience=resilience,
        settings=config.orchestrator,
    )

    result = await orchestrator.execute("Find three recent papers on RAG")
"""

from agentflow.cancellation import CancellationToken
from agentflow.config import AgentFlowConfig, ConfigLoader, configure_logging
from agentflow.errors import (
    AgentFlowError,
    CircuitOpenError,
    ErrorKind,
    OperationCancelledError,
    OperationTimeoutError,
    PlanValidationError,
    SessionNotFoundError,
)
from agentflow.execution import (
    ExecutableResolver,
    ExecutionResult,
    ExecutionStatus,
    LLMFunction,
    ParameterProcessor,
    Plan,
    PlanBuilder,
    PlanExecutor,
    StepExecutionResult,
    TaskStep,
    Tool,
    ToolResult,
)
from agentflow.orchestration import (
    CompletionChecker,
    Evaluator,
    OrchestrationResult,
    Orchestrator,
    Planner,
    SessionStore,
    StreamChunk,
)
from agentflow.resilience import CircuitBreaker, ResilienceLayer

__all__ = [
    # Configuration
    "AgentFlowConfig",
    "ConfigLoader",
    "configure_logging",
    # Errors
    "AgentFlowError",
    "CircuitOpenError",
    "ErrorKind",
    "OperationCancelledError",
    "OperationTimeoutError",
    "PlanValidationError",
    "SessionNotFoundError",
    # Execution
    "CancellationToken",
    "ExecutableResolver",
    "ExecutionResult",
    "ExecutionStatus",
    "LLMFunction",
    "ParameterProcessor",
    "Plan",
    "PlanBuilder",
    "PlanExecutor",
    "StepExecutionResult",
    "TaskStep",
    "Tool",
    "ToolResult",
    # Orchestration
    "CompletionChecker",
    "Evaluator",
    "OrchestrationResult",
    "Orchestrator",
    "Planner",
    "SessionStore",
    "StreamChunk",
    # Resilience
    "CircuitBreaker",
    "ResilienceLayer",
]
