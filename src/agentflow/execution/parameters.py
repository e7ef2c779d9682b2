"""Parameter processing for plan steps.

A step's raw parameter text is turned into the text handed to its target:
- `{name}` placeholders are substituted from SharedData (strictly: any
  unresolved placeholder fails the step)
- when required parameters are absent, a ParameterGenerator is asked once
  and its output is checked against the target's input schema
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Awaitable, Callable

from agentflow.cancellation import CancellationToken
from agentflow.execution.adapters import ParameterGenerationRequest, ParameterGenerator
from agentflow.execution.models import (
    ParameterProcessingResult,
    SharedData,
    StepChunk,
)
from agentflow.resilience.policies import ResilienceLayer

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")
GENERATOR_DEPENDENCY = "parameter_generator"

ChunkCallback = Callable[[StepChunk], Awaitable[None]]


def find_placeholders(text: str) -> list[str]:
    """Return placeholder names in order of first appearance."""
    seen: dict[str, None] = {}
    for match in PLACEHOLDER_PATTERN.finditer(text):
        seen.setdefault(match.group(1), None)
    return list(seen)


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Decode text as a JSON object, or None if it is anything else."""
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def _is_json_template(text: str) -> bool:
    stripped = text.strip()
    if not stripped.startswith(("{", "[")):
        return False
    try:
        json.loads(PLACEHOLDER_PATTERN.sub("null", stripped))
    except json.JSONDecodeError:
        return False
    return True


def _string_mask(text: str) -> list[bool]:
    """Flag each character of a JSON text that sits inside a string literal."""
    mask: list[bool] = []
    in_string = escaped = False
    for char in text:
        mask.append(in_string)
        if escaped:
            escaped = False
        elif in_string and char == "\\":
            escaped = True
        elif char == '"':
            in_string = not in_string
    return mask


def _render_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def substitute(text: str, shared_data: SharedData) -> str:
    """Replace every `{name}` whose name is present in shared_data.

    Inside a JSON document, values placed within a string literal are
    escaped for that literal and values placed anywhere else are written
    as JSON, so the document stays valid.
    """
    whole = PLACEHOLDER_PATTERN.fullmatch(text.strip())
    if whole and whole.group(1) in shared_data:
        return _render_text(shared_data[whole.group(1)])

    mask = _string_mask(text) if _is_json_template(text) else None

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in shared_data:
            return match.group(0)
        value = shared_data[name]
        if mask is None:
            return _render_text(value)
        if mask[match.start()]:
            return json.dumps(_render_text(value))[1:-1]
        return json.dumps(value)

    return PLACEHOLDER_PATTERN.sub(replace, text)


def required_keys(schema: dict[str, Any] | None) -> list[str]:
    if not schema:
        return []
    required = schema.get("required") or []
    return [str(key) for key in required]


class ParameterProcessor:
    """Resolves placeholders and generates missing parameters."""

    def __init__(
        self,
        generator: ParameterGenerator | None = None,
        resilience: ResilienceLayer | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            generator: Produces parameters for steps that lack them.
            resilience: Wraps generator calls; called directly when None.
        """
        self._generator = generator
        self._resilience = resilience

    async def process(
        self,
        raw: str,
        *,
        target: str,
        input_schema: dict[str, Any] | None = None,
        requires_parameters: bool = False,
        user_request: str = "",
        step_description: str = "",
        shared_data: SharedData | None = None,
        step_number: int = 0,
        cancel_token: CancellationToken | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> ParameterProcessingResult:
        """Process a step's raw parameter text.

        Args:
            raw: Parameter text as written in the plan.
            target: Name of the step's target.
            input_schema: JSON schema of the target's input, if any.
            requires_parameters: Whether blank parameters must be generated.
            user_request: Original user request, for generation.
            step_description: Step description, for generation.
            shared_data: Session SharedData for substitution.
            step_number: Step number, for progress chunks.
            cancel_token: Cooperative cancellation token.
            on_chunk: Optional progress callback.

        Returns:
            ParameterProcessingResult. Failures are returned, never raised.
        """
        data = shared_data or {}
        text = raw or ""

        placeholders = find_placeholders(text)
        if placeholders:
            missing = [name for name in placeholders if name not in data]
            if missing:
                return ParameterProcessingResult.fail(
                    f"Unresolved placeholders for {target}: {', '.join(missing)}",
                    missing=missing,
                )
            text = substitute(text, data)

        required = required_keys(input_schema)
        existing = parse_json_object(text)

        if not text.strip():
            if not requires_parameters:
                return ParameterProcessingResult.ok(text)
            absent = required
        elif existing is not None and required:
            absent = [key for key in required if key not in existing]
            if not absent:
                return ParameterProcessingResult.ok(text)
        else:
            return ParameterProcessingResult.ok(text)

        return await self._generate(
            ParameterGenerationRequest(
                target=target,
                input_schema=input_schema,
                step_description=step_description,
                user_request=user_request,
                current_parameters=text,
                missing=absent,
                shared_data=data,
            ),
            existing=existing or {},
            step_number=step_number,
            cancel_token=cancel_token or CancellationToken(),
            on_chunk=on_chunk,
        )

    async def _generate(
        self,
        request: ParameterGenerationRequest,
        existing: dict[str, Any],
        step_number: int,
        cancel_token: CancellationToken,
        on_chunk: ChunkCallback | None,
    ) -> ParameterProcessingResult:
        if self._generator is None:
            return ParameterProcessingResult.fail(
                f"Parameters required for {request.target} but no generator is configured",
                missing=request.missing,
            )

        if on_chunk:
            await on_chunk(
                StepChunk(
                    step_number=step_number,
                    target=request.target,
                    content=f"Generating parameters for {request.target}",
                )
            )

        generator = self._generator

        async def call(token: CancellationToken) -> str:
            return await generator.generate(request, token)

        try:
            if self._resilience is not None:
                generated = await self._resilience.execute(
                    GENERATOR_DEPENDENCY, call, cancel_token
                )
            else:
                generated = await call(cancel_token)
        except Exception as e:
            logger.warning("Parameter generation failed for %s: %s", request.target, e)
            return ParameterProcessingResult.fail(
                f"Parameter generation failed for {request.target}: {e}",
                missing=request.missing,
            )

        if not generated or not generated.strip():
            return ParameterProcessingResult.fail(
                f"Parameter generator returned nothing for {request.target}",
                missing=request.missing,
            )

        required = required_keys(request.input_schema)
        if not required:
            return ParameterProcessingResult.ok(generated.strip(), generated=True)

        produced = parse_json_object(generated)
        if produced is None:
            return ParameterProcessingResult.fail(
                f"Generated parameters for {request.target} are not a JSON object",
                missing=required,
            )

        merged = {**existing, **produced}
        still_missing = [key for key in required if key not in merged]
        if still_missing:
            return ParameterProcessingResult.fail(
                f"Generated parameters for {request.target} do not match schema; "
                f"missing: {', '.join(still_missing)}",
                missing=still_missing,
            )

        logger.debug("Generated parameters for %s", request.target)
        return ParameterProcessingResult.ok(json.dumps(merged), generated=True)
