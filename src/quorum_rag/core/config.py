"""
Core configuration management for QuorumRAG
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExecutionBudget(BaseModel):
    """Time and fan-out limits applied to one question cycle."""

    model_config = {"frozen": True}

    per_agent_timeout_ms: int = Field(default=8000, gt=0)
    overall_timeout_ms: int = Field(default=15000, gt=0)
    secondary_max: int = Field(default=1, ge=0)
    min_primary_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    near_threshold_margin: float = Field(default=0.05, ge=0.0, le=1.0)
    min_secondary_timeout_ms: int = Field(default=500, gt=0)
    disable_secondaries: bool = False
    secondary_only_if_no_citations: bool = True


class OrchestrationSettings(BaseSettings):
    """Orchestration knobs read from ORCH_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ORCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    per_agent_timeout_ms: int = Field(default=8000, gt=0)
    overall_timeout_ms: int = Field(default=15000, gt=0)
    secondary_max: int = Field(default=1, ge=0)
    min_primary_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    near_threshold_margin: float = Field(default=0.05, ge=0.0, le=1.0)
    min_secondary_timeout_ms: int = Field(default=500, gt=0)
    disable_secondaries: bool = False
    secondary_only_if_no_citations: bool = True
    enable_critic_refinement: bool = True

    def to_budget(self, **overrides) -> ExecutionBudget:
        """Build an execution budget, letting callers override single fields."""
        values = self.model_dump(exclude={"enable_critic_refinement"})
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ExecutionBudget(**values)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="development")
    debug: bool = Field(default=True)
    log_level: str = Field(default="INFO")
    log_to_file: bool = Field(default=True)
    log_dir: str = Field(default="logs")

    # LLM Configuration
    llm_provider: Literal["openai", "anthropic"] = Field(default="openai")
    openai_api_key: Optional[str] = Field(default=None)
    anthropic_api_key: Optional[str] = Field(default=None)
    default_llm_model: str = Field(default="gpt-4o-mini")
    router_model: Optional[str] = Field(default=None)
    max_tokens: int = Field(default=1500)
    temperature: float = Field(default=0.2)

    # Agent configuration store
    database_url: str = Field(default="sqlite:///./quorum_rag.db")
    registry_ttl_seconds: float = Field(default=300.0, gt=0)

    # Conversation context
    history_window: int = Field(default=3, ge=0)

    orchestration: OrchestrationSettings = Field(default_factory=OrchestrationSettings)

    @property
    def project_root(self) -> Path:
        """Get project root directory."""
        return Path(__file__).parent.parent.parent.parent

    @property
    def logs_path(self) -> Path:
        """Get log directory."""
        return Path(self.log_dir)


# Global settings instance
settings = Settings()
