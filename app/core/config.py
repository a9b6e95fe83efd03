from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import orjson
            out = orjson.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except ValueError:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="storyboard_chat", alias="MONGODB_DB_NAME")
    # Multi-document transactions need a replica set
    mongodb_transactions: bool = Field(default=False, alias="MONGODB_TRANSACTIONS")

    # Redis (arq worker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Identity provider
    google_client_id: str = Field(default="", alias="GOOGLE_CLIENT_ID")

    # OpenRouter (chat completions)
    openrouter_api_key: str = Field(default="", alias="OPENROUTER_API_KEY")
    openrouter_model: str = Field(default="anthropic/claude-haiku-4.5", alias="OPENROUTER_MODEL")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1", alias="OPENROUTER_BASE_URL")
    openrouter_timeout_seconds: float | None = Field(default=None, alias="OPENROUTER_TIMEOUT_SECONDS")
    chat_context_window: int = Field(default=20, alias="CHAT_CONTEXT_WINDOW")

    # Leonardo (image generation)
    leonardo_api_key: str = Field(default="", alias="LEONARDO_API_KEY")
    leonardo_base_url: str = Field(default="https://cloud.leonardo.ai/api/rest/v1", alias="LEONARDO_BASE_URL")

    # Chargebee (billing)
    chargebee_site: str = Field(default="", alias="CHARGEBEE_SITE")
    chargebee_api_key: str = Field(default="", alias="CHARGEBEE_API_KEY")
    chargebee_webhook_username: str = Field(default="", alias="CHARGEBEE_WEBHOOK_USERNAME")
    chargebee_webhook_password: str = Field(default="", alias="CHARGEBEE_WEBHOOK_PASSWORD")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Tokens
    free_signup_tokens: int = Field(default=10, alias="FREE_SIGNUP_TOKENS")
    low_balance_threshold: int = Field(default=3, alias="LOW_BALANCE_THRESHOLD")


@lru_cache
def get_settings() -> Settings:
    return Settings()
