"""Configuration management for the orchestrator."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from swarmchat.core.models import OrchestrationMode


@dataclass(frozen=True)
class AzureOpenAIConfig:
    """Azure OpenAI service configuration."""

    api_key: str
    endpoint: str
    api_version: str = "2024-02-15-preview"
    deployment_name: str = "gpt-4"
    max_concurrent: int = 50


@dataclass(frozen=True)
class OpenAICompatibleConfig:
    """Any OpenAI-compatible endpoint (OpenRouter by default)."""

    api_key: str
    base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "anthropic/claude-3.5-sonnet"
    max_concurrent: int = 50


@dataclass(frozen=True)
class OrchestrationSettings:
    """Knobs for turn dispatch, supervisor decisions and session lifecycle."""

    mode: OrchestrationMode = OrchestrationMode.DYNAMIC
    history_limit: int = 20
    supervisor_context_messages: int = 5
    generation_timeout: Optional[float] = 60.0
    supervisor_model: Optional[str] = None
    supervisor_temperature: float = 0.3
    supervisor_max_tokens: int = 500
    generation_retries: int = 0
    session_ttl_seconds: float = 30 * 60
    max_sessions: int = 100

    @classmethod
    def from_env(cls) -> OrchestrationSettings:
        timeout = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "60"))
        return cls(
            mode=OrchestrationMode(os.getenv("ORCHESTRATION_MODE", OrchestrationMode.DYNAMIC.value)),
            history_limit=int(os.getenv("HISTORY_LIMIT", "20")),
            supervisor_context_messages=int(os.getenv("SUPERVISOR_CONTEXT_MESSAGES", "5")),
            generation_timeout=timeout if timeout > 0 else None,
            supervisor_model=os.getenv("SUPERVISOR_MODEL") or None,
            generation_retries=int(os.getenv("GENERATION_RETRIES", "0")),
            session_ttl_seconds=float(os.getenv("SESSION_TTL_SECONDS", str(30 * 60))),
            max_sessions=int(os.getenv("MAX_SESSIONS", "100")),
        )


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    azure_openai: Optional[AzureOpenAIConfig] = None
    openai_compatible: Optional[OpenAICompatibleConfig] = None
    orchestration: OrchestrationSettings = field(default_factory=OrchestrationSettings)
    environment: str = "development"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        azure_key = os.getenv("AZURE_OPENAI_KEY")
        azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")

        azure_config = None
        if azure_key and azure_endpoint:
            azure_config = AzureOpenAIConfig(
                api_key=azure_key,
                endpoint=azure_endpoint,
                api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-15-preview"),
                deployment_name=os.getenv("AZURE_OPENAI_DEPLOYMENT", "gpt-4"),
                max_concurrent=int(os.getenv("AZURE_OPENAI_MAX_CONCURRENT", "50")),
            )

        compatible_config = None
        compatible_key = os.getenv("OPENROUTER_API_KEY") or os.getenv("OPENAI_API_KEY")
        if compatible_key:
            compatible_config = OpenAICompatibleConfig(
                api_key=compatible_key,
                base_url=os.getenv("OPENAI_BASE_URL", "https://openrouter.ai/api/v1"),
                default_model=os.getenv("DEFAULT_MODEL", "anthropic/claude-3.5-sonnet"),
                max_concurrent=int(os.getenv("OPENAI_MAX_CONCURRENT", "50")),
            )

        return cls(
            azure_openai=azure_config,
            openai_compatible=compatible_config,
            orchestration=OrchestrationSettings.from_env(),
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @property
    def default_model(self) -> str:
        if self.openai_compatible is not None:
            return self.openai_compatible.default_model
        if self.azure_openai is not None:
            return self.azure_openai.deployment_name
        return "echo"


# Global config instance
config = Config.from_env()
