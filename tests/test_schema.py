"""Tests for configuration schema validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from kalito.config.schema import (
    CacheConfig,
    Config,
    LoggingConfig,
    MemoryConfig,
    ModelEntry,
    ModelsConfig,
    ProviderConfig,
    ProvidersConfig,
    SummarizationConfig,
    ValidatorConfig,
)


class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.memory.token_budget == 3000
        assert config.cache.ttl_seconds == 5.0
        assert config.summarization.threshold == 15
        assert config.summarization.default_remote_model == "gpt-4.1-nano"

    def test_database_path_expansion(self):
        config = Config()
        path = config.database_path
        assert isinstance(path, Path)
        assert "~" not in str(path)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("KALITO_MEMORY__TOKEN_BUDGET", "1200")
        monkeypatch.setenv("KALITO_SUMMARIZATION__DEFAULT_REMOTE_MODEL", "gpt-5-nano")
        config = Config()
        assert config.memory.token_budget == 1200
        assert config.summarization.default_remote_model == "gpt-5-nano"

    def test_provider_api_keys_by_prefix(self):
        config = Config()
        assert config.provider_api_keys() == {}

        config.providers.openai.api_key = "openai-key"
        config.providers.anthropic.api_key = "anthropic-key"
        assert config.provider_api_keys() == {"openai": "openai-key", "anthropic": "anthropic-key"}

    def test_provider_api_bases_by_prefix(self):
        config = Config()
        assert config.provider_api_bases() == {"ollama": "http://localhost:11434"}

        config.providers.openai.api_base = "http://proxy.local/v1"
        assert config.provider_api_bases()["openai"] == "http://proxy.local/v1"


class TestMemoryConfig:
    def test_defaults(self):
        memory = MemoryConfig()
        assert memory.recent_limit == 8
        assert memory.pin_limit == 5
        assert memory.summary_limit == 3
        assert memory.fallback_limit == 10
        assert memory.min_recent_messages == 3
        assert memory.tokens_per_char == 0.75
        assert memory.rescore_limit == 1000

    def test_cache_default(self):
        assert CacheConfig().ttl_seconds == 5.0


class TestSummarizationConfig:
    def test_defaults(self):
        s = SummarizationConfig()
        assert s.importance_score == 0.7
        assert s.temperature == 0.1
        assert s.local_max_tokens == 100
        assert s.remote_max_tokens == 300
        assert s.background is True

    def test_validator_defaults(self):
        v = ValidatorConfig()
        assert v.max_chars == 300
        assert v.max_ratio == 0.30
        assert v.min_overlap == 0.10


class TestModelsConfig:
    def test_default_entries(self):
        entries = {e.id: e for e in ModelsConfig().entries}
        assert set(entries) == {"gpt-4.1-nano", "gpt-5-nano", "claude-opus-4.1", "phi3-mini"}
        assert entries["phi3-mini"].kind == "local"
        assert "phi3" in entries["phi3-mini"].aliases

    def test_kind_is_checked(self):
        with pytest.raises(ValidationError):
            ModelEntry(id="x", kind="hybrid")


class TestProviderConfig:
    def test_empty_by_default(self):
        p = ProviderConfig()
        assert p.api_key == ""
        assert p.api_base is None

    def test_all_providers_exist(self):
        providers = ProvidersConfig()
        for name in ("openai", "anthropic", "ollama"):
            assert isinstance(getattr(providers, name), ProviderConfig)


class TestLoggingConfig:
    def test_defaults(self):
        logging_config = LoggingConfig()
        assert logging_config.level == "INFO"
        assert logging_config.file == ""
