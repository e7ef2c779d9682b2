"""Configuration loading for agentflow.

Settings are grouped by concern:
- ResilienceSettings: retry, circuit breaker and timeout defaults
- CompletionSettings: when a session stops looping
- ExecutionSettings: plan executor behaviour
- OrchestratorSettings: planning rounds and the quality gate
- LLMSettings: Anthropic model and request timeout

ConfigLoader reads a JSON file (explicit path or discovered in standard
locations) and applies AGENTFLOW_* / ANTHROPIC_* environment overrides.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentflow.errors import ConfigError

logger = logging.getLogger(__name__)


class ResilienceSettings(BaseModel):
    """Defaults for the per-dependency resilience pipeline."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=1)  # Total attempts, not extra ones
    base_delay_seconds: float = Field(default=1.0, ge=0)
    failure_threshold: int = Field(default=5, ge=1)
    open_duration_seconds: float = Field(default=60.0, ge=0)
    timeout_seconds: float = Field(default=60.0, gt=0)


class CompletionSettings(BaseModel):
    """Thresholds for CompletionChecker."""

    model_config = ConfigDict(frozen=True)

    max_steps: int = Field(default=20, ge=1)
    user_input_markers: list[str] = Field(
        default_factory=lambda: ["user_response_required", "clarification_needed"]
    )
    stuck_window: int = Field(default=3, ge=1)
    stuck_failures: int = Field(default=2, ge=1)


class ExecutionSettings(BaseModel):
    """Plan executor behaviour."""

    model_config = ConfigDict(frozen=True)

    max_parallel_steps: int = Field(default=1, ge=1)


class OrchestratorSettings(BaseModel):
    """Planning loop limits."""

    model_config = ConfigDict(frozen=True)

    max_iterations: int = Field(default=5, ge=1)
    quality_threshold: float = Field(default=0.75, ge=0, le=1)
    stream_buffer_size: int = Field(default=64, ge=1)
    session_ttl_seconds: float = Field(default=3600.0, gt=0)


class LLMSettings(BaseModel):
    """Anthropic client settings."""

    model_config = ConfigDict(frozen=True)

    model: str = "claude-sonnet-4-20250514"
    timeout_seconds: float = Field(default=60.0, gt=0)
    max_tokens: int = Field(default=4096, ge=1)
    temperature: float = Field(default=0.0, ge=0)


class AgentFlowConfig(BaseModel):
    """Top-level configuration."""

    model_config = ConfigDict(frozen=True)

    resilience: ResilienceSettings = Field(default_factory=ResilienceSettings)
    completion: CompletionSettings = Field(default_factory=CompletionSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    log_level: str = "INFO"


# Environment variable -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "AGENTFLOW_LOG_LEVEL": (None, "log_level"),
    "AGENTFLOW_MAX_RETRIES": ("resilience", "max_retries"),
    "AGENTFLOW_RETRY_BASE_DELAY_SECONDS": ("resilience", "base_delay_seconds"),
    "AGENTFLOW_FAILURE_THRESHOLD": ("resilience", "failure_threshold"),
    "AGENTFLOW_OPEN_DURATION_SECONDS": ("resilience", "open_duration_seconds"),
    "AGENTFLOW_TIMEOUT_SECONDS": ("resilience", "timeout_seconds"),
    "AGENTFLOW_MAX_STEPS": ("completion", "max_steps"),
    "AGENTFLOW_MAX_PARALLEL_STEPS": ("execution", "max_parallel_steps"),
    "AGENTFLOW_MAX_ITERATIONS": ("orchestrator", "max_iterations"),
    "AGENTFLOW_QUALITY_THRESHOLD": ("orchestrator", "quality_threshold"),
    "ANTHROPIC_MODEL": ("llm", "model"),
    "ANTHROPIC_TIMEOUT_SECONDS": ("llm", "timeout_seconds"),
}


class ConfigLoader:
    """Loads AgentFlowConfig from files, dictionaries and the environment."""

    DEFAULT_CONFIG_PATHS = [
        "./.agentflow/config.json",
        "./agentflow.json",
        "~/.config/agentflow/config.json",
        "~/.agentflow/config.json",
    ]

    def __init__(self, environ: dict[str, str] | None = None):
        """Initialize the loader.

        Args:
            environ: Environment mapping. Defaults to os.environ.
        """
        self._environ = environ if environ is not None else os.environ

    def load_from_file(self, path: str) -> AgentFlowConfig:
        """Load configuration from a JSON file.

        Args:
            path: Path to the config JSON file.

        Returns:
            Loaded AgentFlowConfig with environment overrides applied.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ConfigError: If the file is invalid JSON or fails validation.
        """
        file_path = Path(os.path.expanduser(path))

        if not file_path.exists():
            raise FileNotFoundError(f"Config not found: {path}")

        try:
            data = json.loads(file_path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError("Config root must be a JSON object")

        return self.load_from_dict(data)

    def load_from_dict(self, data: dict[str, Any]) -> AgentFlowConfig:
        """Load configuration from a dictionary.

        Raises:
            ConfigError: If the data fails validation.
        """
        merged = self._apply_env(data)
        try:
            return AgentFlowConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def from_env(self) -> AgentFlowConfig:
        """Build configuration from defaults plus environment overrides."""
        return self.load_from_dict({})

    def discover(self) -> AgentFlowConfig:
        """Load the first readable config in DEFAULT_CONFIG_PATHS.

        Falls back to environment-only configuration when none is found.
        """
        for path in self.DEFAULT_CONFIG_PATHS:
            expanded = os.path.expanduser(path)
            if os.path.exists(expanded):
                try:
                    return self.load_from_file(expanded)
                except (ConfigError, FileNotFoundError) as e:
                    logger.warning("Skipping config %s: %s", expanded, e)
                    continue

        return self.from_env()

    def _apply_env(self, data: dict[str, Any]) -> dict[str, Any]:
        merged: dict[str, Any] = {
            key: dict(value) if isinstance(value, dict) else value
            for key, value in data.items()
        }
        for env_name, (section, field) in ENV_OVERRIDES.items():
            value = self._environ.get(env_name)
            if value is None or value == "":
                continue
            if section is None:
                merged[field] = value
            else:
                merged.setdefault(section, {})[field] = value
        return merged


def configure_logging(config: AgentFlowConfig) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
