"""Application configuration with comprehensive validation."""
from typing import Optional, Literal
from functools import lru_cache
from pathlib import Path
from pydantic import Field, field_validator, model_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with production-grade validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Report Insight Platform"
    APP_VERSION: str = "1.0.0"
    APP_ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "console"

    # API
    API_V1_PREFIX: str = "/api/v1"

    # Durable store (catalogs, markdown, keyword cache, evaluation artifact)
    DATA_DIR: Path = Path("data")

    # Redis (response cache only)
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL_REPORTS: int = 300        # 5 minutes
    CACHE_TTL_EVALUATION: int = 3600    # 1 hour

    # LLM Providers (Multi-provider via LiteLLM)
    GOOGLE_API_KEY: Optional[SecretStr] = None
    OPENAI_API_KEY: Optional[SecretStr] = None
    ANTHROPIC_API_KEY: Optional[SecretStr] = None
    DEFAULT_LLM_MODEL: str = "gemini/gemini-2.5-flash"
    FALLBACK_LLM_MODEL: Optional[str] = None
    LLM_TIMEOUT_SECONDS: float = Field(default=180.0, ge=5.0, le=1800.0)
    LLM_TEMPERATURE: float = Field(default=0.1, ge=0.0, le=2.0)

    # Document fetcher
    FETCH_TIMEOUT_SECONDS: float = Field(default=60.0, ge=1.0, le=600.0)
    FETCH_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    )

    # Page chunking (map-reduce conversion)
    CHUNK_PAGE_SIZE: int = Field(default=20, ge=1, le=500)
    CHUNK_TAIL_MERGE_PAGES: int = Field(default=5, ge=0, le=100)
    CHUNK_MAP_WORKERS: int = Field(default=2, ge=1, le=16)

    # Orchestrator
    DISCOVERY_FRESHNESS_HOURS: float = Field(default=6.0, ge=0.0, le=168.0)
    REPORT_FEED_URL: Optional[str] = Field(
        default=None,
        description="External discovery feed, '{category}' is substituted",
    )

    # Industry evaluation
    EVALUATION_SAMPLE_SIZE: int = Field(default=10, ge=1, le=100)
    EVALUATION_MIN_CONFIDENCE: float = Field(default=0.6, ge=0.0, le=1.0)
    CONFIDENCE_FALLBACK: float = Field(default=0.5, ge=0.0, le=1.0)
    HOME_MARKET: str = "Korean"
    CLASSIFY_EXCERPT_CHARS: int = Field(default=200, ge=50, le=5000)
    EVALUATE_CONTENT_CHARS: int = Field(default=10000, ge=500, le=100000)

    # Keyword summary
    KEYWORD_SAMPLE_SIZE: int = Field(default=5, ge=1, le=20)
    KEYWORD_CONTENT_CHARS: int = Field(default=3000, ge=100, le=50000)
    KEYWORD_PROMPT_CHARS: int = Field(default=500, ge=100, le=10000)

    @field_validator("OPENAI_API_KEY")
    @classmethod
    def validate_openai_key(cls, v: Optional[SecretStr]) -> Optional[SecretStr]:
        if v is not None and not v.get_secret_value().startswith("sk-"):
            raise ValueError("Invalid OpenAI API key format")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure production has an LLM key and no debug mode."""
        if self.APP_ENV == "production":
            if self.DEBUG:
                raise ValueError("DEBUG must be False in production")
            if not (self.GOOGLE_API_KEY or self.OPENAI_API_KEY or self.ANTHROPIC_API_KEY):
                raise ValueError("At least one LLM API key required in production")
        return self

    @property
    def catalog_dir(self) -> Path:
        return self.DATA_DIR / "catalog"

    @property
    def markdown_dir(self) -> Path:
        return self.DATA_DIR / "markdown"

    @property
    def summary_dir(self) -> Path:
        return self.DATA_DIR / "summary"


@lru_cache
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
