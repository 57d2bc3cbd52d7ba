"""
Application Settings
Load from environment variables
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_REDACTION_ENABLED: bool = True

    # ======================
    # LLM completion service
    # ======================
    OPENAI_API_KEY: Optional[str] = None
    LLM_BASE_URL: str = "https://api.openai.com/v1"
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 1000
    LLM_MAX_TOKENS_CEILING: int = 1500
    LLM_TIMEOUT_SECONDS: float = 30.0
    LLM_JSON_MODE: bool = True

    # ======================
    # Operational envelope
    # ======================
    LLM_RATE_LIMIT_PER_MINUTE: int = 10
    LLM_RETRY_ATTEMPTS: int = 3
    LLM_RETRY_BACKOFF_SECONDS: float = 1.0
    COMPLETION_CACHE_TTL_SECONDS: int = 86_400
    COMPLETION_CACHE_CONTEXT_MESSAGES: int = 3

    # ======================
    # Prompting & batching
    # ======================
    PROMPT_BODY_CHAR_LIMIT: int = 1000
    BATCH_STAGGER_MIN_SECONDS: float = 1.0
    BATCH_STAGGER_MAX_SECONDS: float = 3.0
    BATCH_MAX_PROPOSALS: int = 3

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
