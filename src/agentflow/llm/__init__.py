"""Anthropic-backed LLM collaborators.

This module provides:
- LLMClient: async wrapper over the Anthropic Messages API
- LLMPlanner, LLMEvaluator, LLMParameterGenerator: core interfaces backed by an LLM
- PromptLLMFunction: role-specific LLM function usable as a plan target
- build_orchestrator: wires the above into a ready Orchestrator
"""

from agentflow.llm.client import LLMClient, is_transient_llm_error
from agentflow.llm.facade import build_orchestrator
from agentflow.llm.functions import (
    LLMEvaluator,
    LLMParameterGenerator,
    LLMPlanner,
    PromptLLMFunction,
    extract_json,
)

__all__ = [
    "LLMClient",
    "LLMEvaluator",
    "LLMParameterGenerator",
    "LLMPlanner",
    "PromptLLMFunction",
    "build_orchestrator",
    "extract_json",
    "is_transient_llm_error",
]
