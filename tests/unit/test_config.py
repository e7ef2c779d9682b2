"""Tests for configuration loading."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from agentflow.config import AgentFlowConfig, ConfigLoader, configure_logging
from agentflow.errors import ConfigError


@pytest.fixture
def config_path(tmp_path: Path) -> str:
    """Create a temporary config file."""
    data = {
        "resilience": {"max_retries": 5, "timeout_seconds": 10},
        "completion": {"max_steps": 8},
        "orchestrator": {"quality_threshold": 0.9},
        "log_level": "DEBUG",
    }
    path = tmp_path / "agentflow.json"
    path.write_text(json.dumps(data))
    return str(path)


class TestDefaults:
    """Tests for default settings."""

    def test_defaults(self):
        """Test defaults match the documented values."""
        config = AgentFlowConfig()

        assert config.resilience.max_retries == 3
        assert config.resilience.base_delay_seconds == 1.0
        assert config.resilience.failure_threshold == 5
        assert config.resilience.open_duration_seconds == 60
        assert config.completion.max_steps == 20
        assert config.completion.user_input_markers == [
            "user_response_required",
            "clarification_needed",
        ]
        assert config.orchestrator.max_iterations == 5
        assert config.orchestrator.quality_threshold == 0.75
        assert config.execution.max_parallel_steps == 1


class TestConfigLoader:
    """Tests for ConfigLoader."""

    def test_load_from_file(self, config_path):
        """Test values from a JSON file override defaults."""
        config = ConfigLoader(environ={}).load_from_file(config_path)

        assert config.resilience.max_retries == 5
        assert config.resilience.timeout_seconds == 10
        assert config.resilience.failure_threshold == 5
        assert config.completion.max_steps == 8
        assert config.orchestrator.quality_threshold == 0.9
        assert config.log_level == "DEBUG"

    def test_missing_file(self, tmp_path):
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            ConfigLoader(environ={}).load_from_file(str(tmp_path / "absent.json"))

    def test_invalid_json(self, tmp_path):
        """Test malformed JSON raises ConfigError."""
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        with pytest.raises(ConfigError, match="Invalid JSON"):
            ConfigLoader(environ={}).load_from_file(str(path))

    def test_invalid_values(self):
        """Test out-of-range values raise ConfigError."""
        with pytest.raises(ConfigError):
            ConfigLoader(environ={}).load_from_dict({"orchestrator": {"quality_threshold": 2}})

    def test_environment_overrides_file(self, config_path):
        """Test environment variables take precedence over the file."""
        loader = ConfigLoader(
            environ={
                "AGENTFLOW_MAX_RETRIES": "7",
                "AGENTFLOW_MAX_PARALLEL_STEPS": "4",
                "ANTHROPIC_MODEL": "claude-test",
            }
        )

        config = loader.load_from_file(config_path)

        assert config.resilience.max_retries == 7
        assert config.resilience.timeout_seconds == 10
        assert config.execution.max_parallel_steps == 4
        assert config.llm.model == "claude-test"

    def test_discover_falls_back_to_environment(self, tmp_path, monkeypatch):
        """Test discover returns env-based config when no file exists."""
        monkeypatch.chdir(tmp_path)
        loader = ConfigLoader(environ={"AGENTFLOW_MAX_STEPS": "12"})
        loader.DEFAULT_CONFIG_PATHS = [str(tmp_path / "missing.json")]

        config = loader.discover()

        assert config.completion.max_steps == 12

    def test_discover_finds_file(self, tmp_path, config_path):
        """Test discover loads the first existing file."""
        loader = ConfigLoader(environ={})
        loader.DEFAULT_CONFIG_PATHS = [str(tmp_path / "missing.json"), config_path]

        assert loader.discover().completion.max_steps == 8


def test_configure_logging_sets_level(monkeypatch):
    """Test configure_logging passes the configured level to basicConfig."""
    captured: dict = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

    configure_logging(AgentFlowConfig(log_level="warning"))

    assert captured["level"] == "WARNING"
