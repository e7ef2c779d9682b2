"""Completion rules for orchestration sessions.

A session is complete when any rule fires:
- the session (or SharedData "is_completed") is flagged complete
- the recorded step count reached max_steps (the runaway guard)
- every originally planned action has a successful record
- the latest output asks the user for input
- too many of the most recent steps failed
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from agentflow.config import CompletionSettings
from agentflow.orchestration.models import OrchestrationContext


class CompletionReason(str, Enum):
    FLAGGED = "flagged"
    MAX_STEPS = "max_steps"
    ALL_ACTIONS_DONE = "all_actions_done"
    USER_INPUT_REQUIRED = "user_input_required"
    STUCK = "stuck"


class CompletionDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    completed: bool
    reason: CompletionReason | None = None
    note: str | None = None


NOT_COMPLETE = CompletionDecision(completed=False)


class CompletionChecker:
    """Pure predicate over an OrchestrationContext."""

    def __init__(self, settings: CompletionSettings | None = None) -> None:
        self.settings = settings or CompletionSettings()

    def is_completed(self, context: OrchestrationContext) -> bool:
        return self.decide(context).completed

    def max_steps_for(self, context: OrchestrationContext) -> int:
        """SharedData "max_steps" overrides the configured limit when positive."""
        override = context.shared_data.get("max_steps")
        if isinstance(override, int) and not isinstance(override, bool) and override > 0:
            return override
        return self.settings.max_steps

    def decide(self, context: OrchestrationContext) -> CompletionDecision:
        if context.is_completed or context.shared_data.get("is_completed") is True:
            return CompletionDecision(completed=True, reason=CompletionReason.FLAGGED)

        history = context.history
        max_steps = self.max_steps_for(context)
        if len(history) >= max_steps:
            return CompletionDecision(
                completed=True,
                reason=CompletionReason.MAX_STEPS,
                note=f"Step limit of {max_steps} reached",
            )

        if context.planned_actions:
            succeeded = sum(1 for step in history if step.success)
            if succeeded >= len(context.planned_actions):
                return CompletionDecision(
                    completed=True, reason=CompletionReason.ALL_ACTIONS_DONE
                )

        if history and history[-1].output:
            last_output = history[-1].output
            for marker in self.settings.user_input_markers:
                if marker in last_output:
                    return CompletionDecision(
                        completed=True,
                        reason=CompletionReason.USER_INPUT_REQUIRED,
                        note=f"Waiting for user input ({marker})",
                    )

        recent = history[-self.settings.stuck_window:]
        failures = sum(1 for step in recent if not step.success)
        if failures >= self.settings.stuck_failures:
            return CompletionDecision(
                completed=True,
                reason=CompletionReason.STUCK,
                note=f"{failures} of the last {len(recent)} steps failed",
            )

        return NOT_COMPLETE
