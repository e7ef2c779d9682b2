"""Wiring for an Anthropic-backed orchestrator.

build_orchestrator assembles the resolver, parameter processor, plan
executor and orchestrator from an AgentFlowConfig:

    config = ConfigLoader().discover()
    configure_logging(config)
    orchestrator = build_orchestrator(config, tools=[WeatherTool()])
    result = await orchestrator.execute("What should I wear in Paris today?")
"""

from __future__ import annotations

import logging
from typing import Iterable

from agentflow.config import AgentFlowConfig
from agentflow.execution.adapters import LLMFunction, LLMRole, Tool
from agentflow.execution.engine import PlanExecutor
from agentflow.execution.parameters import ParameterProcessor
from agentflow.execution.resolver import ExecutableResolver
from agentflow.llm.client import LLMClient, is_transient_llm_error
from agentflow.llm.functions import (
    LLMEvaluator,
    LLMParameterGenerator,
    LLMPlanner,
    PromptLLMFunction,
)
from agentflow.orchestration.completion import CompletionChecker
from agentflow.orchestration.orchestrator import Orchestrator
from agentflow.orchestration.store import SessionStore
from agentflow.resilience.policies import ResilienceLayer

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTIONS = {
    LLMRole.UNIVERSAL: "Complete the task described by taskType using the given content.",
    LLMRole.CONVERSATIONALIST: "Reply to the user's MESSAGE in a friendly, concise way.",
}


def build_orchestrator(
    config: AgentFlowConfig | None = None,
    tools: Iterable[Tool] = (),
    functions: Iterable[LLMFunction] = (),
    llm: LLMClient | None = None,
    store: SessionStore | None = None,
) -> Orchestrator:
    """Build an orchestrator whose planner, evaluator and parameter
    generator are backed by the Anthropic API.

    LLM calls retry only on transient API errors; tool calls use the
    default retry rules. Both share the configured breaker and timeout
    settings but keep separate breakers.

    Args:
        config: Settings; defaults apply when None.
        tools: Tools to register.
        functions: Extra LLM functions; Universal and Conversationalist
            prompt functions are registered unless provided here.
        llm: Preconfigured client; built from config.llm when None.
        store: Session store to share across orchestrators.

    Returns:
        A ready Orchestrator.
    """
    config = config or AgentFlowConfig()
    llm = llm or LLMClient(config.llm)

    resolver = ExecutableResolver()
    for tool in tools:
        resolver.tools.register(tool)
    for function in functions:
        resolver.functions.register(function)
    for role, instructions in DEFAULT_INSTRUCTIONS.items():
        if role.value not in resolver.functions:
            resolver.functions.register(PromptLLMFunction(llm, role.value, instructions))

    llm_resilience = ResilienceLayer(config.resilience, retry_on=is_transient_llm_error)
    tool_resilience = ResilienceLayer(config.resilience)

    executor = PlanExecutor(
        resolver,
        ParameterProcessor(LLMParameterGenerator(llm), llm_resilience),
        resilience=tool_resilience,
        llm_resilience=llm_resilience,
        settings=config.execution,
    )
    logger.info(
        "Built orchestrator with %d tools and %d LLM functions (model=%s)",
        len(resolver.tools),
        len(resolver.functions),
        llm.model_name,
    )
    return Orchestrator(
        LLMPlanner(llm),
        executor,
        evaluator=LLMEvaluator(llm),
        resolver=resolver,
        store=store,
        completion_checker=CompletionChecker(config.completion),
        resilience=llm_resilience,
        settings=config.orchestrator,
    )
