"""Application settings and configuration."""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings
from pydantic import Field


DEFAULT_FALLBACK_MODELS = ",".join([
    "openai/gpt-4.1-mini",
    "openai/gpt-4o-mini",
    "anthropic/claude-sonnet-4",
    "google/gemini-2.0-flash-001",
    "meta-llama/llama-3.3-70b-instruct",
])


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Timezone used to resolve the reference year
    tz: str = Field(default="Asia/Tokyo", env="TZ")

    # Completion provider
    openrouter_api_key: str = Field(default="", env="OPENROUTER_API_KEY")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1/chat/completions",
        env="OPENROUTER_BASE_URL"
    )
    site_url: str = Field(default="https://takkenai.jp", env="SITE_URL")
    app_title: str = Field(default="ContentGate", env="APP_TITLE")
    content_model: str = Field(default="anthropic/claude-sonnet-4.5", env="CONTENT_MODEL")
    translation_model: str = Field(default="openai/gpt-4o-mini", env="TRANSLATION_MODEL")
    fallback_models: str = Field(default=DEFAULT_FALLBACK_MODELS, env="FALLBACK_MODELS")
    max_tokens: int = Field(default=8192, env="MAX_TOKENS")

    # Timeouts and retry budget
    request_timeout_seconds: float = Field(default=90.0, env="REQUEST_TIMEOUT_SECONDS")
    total_budget_seconds: float = Field(default=180.0, env="TOTAL_BUDGET_SECONDS")
    retry_per_model: int = Field(default=1, env="RETRY_PER_MODEL")
    max_model_attempts: int = Field(default=2, env="MAX_MODEL_ATTEMPTS")
    degrade_window_seconds: float = Field(default=600.0, env="DEGRADE_WINDOW_SECONDS")

    # Quality gate
    review_rounds: int = Field(default=2, env="REVIEW_ROUNDS")
    seo_threshold: int = Field(default=85, env="SEO_THRESHOLD")
    geo_threshold: int = Field(default=85, env="GEO_THRESHOLD")
    search_threshold: int = Field(default=85, env="SEARCH_THRESHOLD")
    ai_action_threshold: int = Field(default=85, env="AI_ACTION_THRESHOLD")
    search_gate_mode: str = Field(default="soft", env="SEARCH_GATE_MODE")
    ai_action_gate_mode: str = Field(default="soft", env="AI_ACTION_GATE_MODE")
    evidence_mode: str = Field(default="auto", env="EVIDENCE_MODE")
    allowed_note_accounts: str = Field(default="", env="ALLOWED_NOTE_ACCOUNTS")

    # Persistence
    content_dir: str = Field(default="./content", env="CONTENT_DIR")

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    # Service configuration
    service_host: str = Field(default="0.0.0.0", env="SERVICE_HOST")
    service_port: int = Field(default=8000, env="SERVICE_PORT")
    debug: bool = Field(default=False, env="DEBUG")

    app_name: str = "ContentGate"
    environment: str = Field(default="development", env="ENVIRONMENT")

    class Config:
        """Pydantic config."""
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def fallback_model_list(self) -> List[str]:
        """Fallback models in priority order."""
        return [item.strip() for item in self.fallback_models.split(",") if item.strip()]

    @property
    def note_account_list(self) -> List[str]:
        return [item.strip().lower() for item in self.allowed_note_accounts.split(",") if item.strip()]

    @property
    def search_gate_is_hard(self) -> bool:
        return self.search_gate_mode.strip().lower() == "hard"

    @property
    def ai_action_gate_is_hard(self) -> bool:
        return self.ai_action_gate_mode.strip().lower() == "hard"


@lru_cache()
def get_settings() -> Settings:
    """Get settings singleton."""
    return Settings()


# Global settings instance
settings = get_settings()
