"""
Stayline Settings

Environment-driven configuration shared by the webhook app, the CLI and the
messaging pipeline. Secrets are only ever read from the environment (or .env).
"""

import functools

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "stayline"
    ENV: str = "dev"

    DATABASE_URL: str = "sqlite:///./stayline.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Meta webhook + transport
    WHATSAPP_VERIFY_TOKEN: str = ""
    WHATSAPP_APP_SECRET: str = ""
    WHATSAPP_PROVIDER: str = "stub"  # meta, stub
    WHATSAPP_ENCRYPTION_KEY: str = ""
    GRAPH_API_VERSION: str = "v18.0"

    # Reply drafting
    LLM_API_KEY: str = ""
    LLM_BASE_URL: str = "https://api.deepseek.com/v1"
    LLM_MODEL: str = "deepseek-chat"
    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_TOKENS: int = 500

    # Auto-response policy
    AI_DRAFT_TIMEOUT_SECONDS: float = 30.0
    SEND_TIMEOUT_SECONDS: float = 15.0
    AUTO_SEND_CONFIDENCE_THRESHOLD: float = 0.95
    HISTORY_LIMIT: int = 20

    # Activity sink: log, memory, redis
    ACTIVITY_SINK: str = "log"
    ACTIVITY_STREAM: str = "stayline:activity"
    ACTIVITY_MAXLEN: int = 500

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # text, json


@functools.lru_cache()
def get_settings() -> Settings:
    """Get settings (cached). Call get_settings.cache_clear() after changing the environment."""
    return Settings()
