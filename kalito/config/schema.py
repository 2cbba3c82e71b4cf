"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MemoryConfig(BaseModel):
    """Context assembly configuration."""
    recent_limit: int = 8
    pin_limit: int = 5
    summary_limit: int = 3
    fallback_limit: int = 10  # Recent messages in a degraded context
    token_budget: int = 3000
    min_recent_messages: int = 3  # Kept regardless of budget
    tokens_per_char: float = 0.75
    rescore_limit: int = 1000


class CacheConfig(BaseModel):
    """Session cache configuration."""
    ttl_seconds: float = 5.0


class ValidatorConfig(BaseModel):
    """Summary validator thresholds."""
    max_chars: int = 300
    max_ratio: float = 0.30
    min_overlap: float = 0.10


class SummarizationConfig(BaseModel):
    """Summarization engine and trigger configuration."""
    threshold: int = 15
    importance_score: float = 0.7
    default_remote_model: str = "gpt-4.1-nano"
    temperature: float = 0.1
    local_max_tokens: int = 100
    remote_max_tokens: int = 300
    timeout_seconds: float = 45.0
    background: bool = True  # Run auto-summarization off the request path


class ModelEntry(BaseModel):
    """A model known to the registry."""
    id: str
    name: str = ""
    kind: Literal["local", "remote"] = "remote"
    litellm_model: str = ""  # Defaults to the id
    api_base: str | None = None  # Overrides the provider-level api_base
    aliases: list[str] = Field(default_factory=list)


def default_model_entries() -> list[ModelEntry]:
    """Models available out of the box."""
    return [
        ModelEntry(
            id="gpt-4.1-nano",
            name="GPT-4.1 Nano",
            litellm_model="openai/gpt-4.1-nano",
            aliases=["gpt-4-nano"],
        ),
        ModelEntry(
            id="gpt-5-nano",
            name="GPT-5 Nano",
            litellm_model="openai/gpt-5-nano",
            aliases=["gpt5-nano"],
        ),
        ModelEntry(
            id="claude-opus-4.1",
            name="Claude Opus 4.1",
            litellm_model="anthropic/claude-opus-4-1",
            aliases=["claude-opus", "claude-4-sonnet", "claude-sonnet"],
        ),
        ModelEntry(
            id="phi3-mini",
            name="Phi-3 Mini",
            kind="local",
            litellm_model="ollama/phi3:mini",
            aliases=["phi3", "phi-3"],
        ),
    ]


class ModelsConfig(BaseModel):
    """Model registry configuration."""
    entries: list[ModelEntry] = Field(default_factory=default_model_entries)


class ProviderConfig(BaseModel):
    """LLM provider configuration."""
    api_key: str = ""
    api_base: str | None = None


class ProvidersConfig(BaseModel):
    """Configuration for LLM providers."""
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    ollama: ProviderConfig = Field(
        default_factory=lambda: ProviderConfig(api_base="http://localhost:11434")
    )


class DatabaseConfig(BaseModel):
    """SQLite store configuration."""
    path: str = "~/.kalito/memory.db"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: str = ""  # Empty disables the file sink
    rotation: str = "10 MB"
    retention: str = "7 days"


class Config(BaseSettings):
    """Root configuration for kalito."""
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    validator: ValidatorConfig = Field(default_factory=ValidatorConfig)
    summarization: SummarizationConfig = Field(default_factory=SummarizationConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(env_prefix="KALITO_", env_nested_delimiter="__")

    @property
    def database_path(self) -> Path:
        """Get expanded database path."""
        return Path(self.database.path).expanduser()

    def provider_api_keys(self) -> dict[str, str]:
        """Configured API keys keyed by litellm provider prefix."""
        return {
            name: provider.api_key
            for name, provider in self.providers
            if provider.api_key
        }

    def provider_api_bases(self) -> dict[str, str]:
        """Configured API bases keyed by litellm provider prefix."""
        return {
            name: provider.api_base
            for name, provider in self.providers
            if provider.api_base
        }
