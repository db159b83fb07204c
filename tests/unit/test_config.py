"""Tests for configuration loading and validation."""

import pytest

from task_orchestrator.config import (
    AgentConfig,
    APIConfig,
    LLMConfig,
    OrchestratorConfig,
    SystemConfig,
    ToolConfig,
)


def test_llm_config_from_env(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    monkeypatch.setenv("LLM_MODEL", "gemini-test")
    monkeypatch.setenv("LLM_MAX_RETRIES", "5")

    config = LLMConfig.from_env()

    assert config.api_key == "env-key"
    assert config.model == "gemini-test"
    assert config.max_retries == 5


def test_temperature_out_of_range():
    with pytest.raises(ValueError):
        LLMConfig(temperature=3.0)


def test_agent_defaults():
    config = AgentConfig()
    assert config.timeout_seconds == 120
    assert config.max_pharmacy_calls == 5
    assert config.batch_cap == 3
    assert config.max_retries == 3


def test_system_config_from_env(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("GRAPH_TTL_SECONDS", "60")

    config = SystemConfig.from_env()

    assert config.is_production
    assert config.log_level.value == "DEBUG"
    assert config.graph_ttl_seconds == 60


def test_api_validate_missing_table():
    api = APIConfig(dynamodb_table_name="")
    assert api.validate() is False
    with pytest.raises(APIConfig.ValidationError) as exc_info:
        api.validate(raise_error=True)
    assert exc_info.value.missing_keys == ["DYNAMODB_TABLE_NAME"]
    assert "FIRECRAWL_API_KEY" in exc_info.value.optional_missing


def make_config(**overrides) -> OrchestratorConfig:
    fields = {
        "llm": LLMConfig(api_key="k"),
        "api": APIConfig(),
        "agents": AgentConfig(),
        "tools": ToolConfig(),
        "system": SystemConfig(),
    }
    fields.update(overrides)
    return OrchestratorConfig(**fields)


def test_orchestrator_config_valid():
    assert make_config().validate() is True


def test_orchestrator_config_requires_gemini_key():
    config = make_config(llm=LLMConfig(api_key=""))
    assert config.validate() is False
    with pytest.raises(OrchestratorConfig.ConfigurationError):
        config.validate(raise_error=True)


def test_orchestrator_config_rejects_zero_batch_cap():
    assert make_config(agents=AgentConfig(batch_cap=0)).validate() is False
