"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./analyst.db"

    # API-Football (api-sports.io direct or RapidAPI)
    RAPIDAPI_KEY: str = ""
    RAPIDAPI_HOST: str = "v3.football.api-sports.io"

    # Provider rate limiting (Pro plan: 300 r/m, 7500/day)
    API_REQUESTS_PER_MINUTE: int = 300
    API_DAILY_BUDGET: int = 7500
    API_TIMEOUT_SECONDS: float = 15.0

    # HTTP surface
    RATE_LIMIT_PER_MINUTE: str = "30/minute"
    API_KEY: str = ""  # Optional API key for /analyst endpoints
    API_KEY_HEADER: str = "X-API-Key"
    METRICS_BEARER_TOKEN: str = ""  # Empty = /metrics is public

    # ═══════════════════════════════════════════════════════════════
    # Match analyst pipeline
    # ═══════════════════════════════════════════════════════════════

    ANALYST_FETCH_TIMEOUT_SECONDS: float = 8.0  # Per category, per attempt
    ANALYST_FETCH_RETRIES: int = 1              # Extra attempts on timeout/transport error
    ANALYST_HISTORY_WINDOW: int = 12            # Turns sent to the model (6 exchanges)
    ANALYST_CONTEXT_CHAR_BUDGET: int = 4000
    ANALYST_INSIGHTS_LIMIT: int = 20            # Max insights read per query
    ANALYST_PROMPT_INSIGHTS: int = 10           # Max insights rendered into the prompt
    ANALYST_STORE_BACKEND: str = "database"     # "database" | "memory"
    ANALYST_DEFAULT_LEAGUE_ID: int = 39         # Premier League
    ANALYST_PREDICTION_JITTER: bool = False
    TEAM_SEARCH_CACHE_TTL: int = 3600           # Team ids rarely change

    # LLM gateway
    ANALYST_LLM_PROVIDER: str = "gemini"  # "gemini" | "openai"
    ANALYST_LLM_MAX_TOKENS: int = 800
    ANALYST_LLM_TEMPERATURE: float = 0.8
    ANALYST_LLM_TOP_P: float = 0.95
    ANALYST_LLM_TIMEOUT_SECONDS: int = 30

    # Gemini
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.0-flash"

    # OpenAI-compatible (OpenAI, OpenRouter, DeepSeek)
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o-mini"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
