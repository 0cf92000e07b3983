"""Application configuration management.

This module handles environment-specific configuration loading for the market
advisor service. Values come from, in increasing priority: field defaults,
environment presets, ``.env`` files, and process environment variables.
"""

import os
from enum import Enum
from pathlib import Path
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Optional,
    Tuple,
)

from pydantic import (
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    SettingsConfigDict,
)

BASE_DIR = Path(__file__).resolve().parent.parent.parent


class Environment(str, Enum):
    """Application environment types.

    Defines the possible environments the application can run in:
    development, staging, production, and test.
    """

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


def parse_environment(value: Any) -> Environment:
    """Map an ``APP_ENV`` value, including short aliases, to an Environment."""
    match str(value or "development").strip().lower():
        case "production" | "prod":
            return Environment.PRODUCTION
        case "staging" | "stage":
            return Environment.STAGING
        case "test":
            return Environment.TEST
        case _:
            return Environment.DEVELOPMENT


def get_environment() -> Environment:
    """Get the current environment.

    Returns:
        Environment: The current environment (development, staging, production, or test)
    """
    return parse_environment(os.getenv("APP_ENV"))


def env_files_for(env: Environment) -> Tuple[Path, ...]:
    """Return the .env files for an environment, lowest priority first."""
    return (
        BASE_DIR / ".env",
        BASE_DIR / ".env.local",
        BASE_DIR / f".env.{env.value}",
        BASE_DIR / f".env.{env.value}.local",
    )


def split_env_list(value: Any) -> Any:
    """Split a comma-separated string into a list; other values pass through."""
    if not isinstance(value, str):
        return value
    return [item.strip() for item in value.strip("\"'").split(",") if item.strip()]


EnvList = Annotated[List[str], NoDecode]

ENVIRONMENT_PRESETS: Dict[Environment, Dict[str, Any]] = {
    Environment.DEVELOPMENT: {
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "console",
        "RATE_LIMIT_DEFAULT": ["1000 per day", "200 per hour"],
    },
    Environment.STAGING: {
        "DEBUG": False,
        "LOG_LEVEL": "INFO",
        "RATE_LIMIT_DEFAULT": ["500 per day", "100 per hour"],
    },
    Environment.PRODUCTION: {
        "DEBUG": False,
        "LOG_LEVEL": "WARNING",
        "RATE_LIMIT_DEFAULT": ["200 per day", "50 per hour"],
    },
    Environment.TEST: {
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "console",
        "RATE_LIMIT_DEFAULT": ["1000 per day", "1000 per hour"],
    },
}


class Settings(BaseSettings):
    """Application settings loaded from the environment and .env files."""

    model_config = SettingsConfigDict(
        env_file=env_files_for(get_environment()),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    ENVIRONMENT: Environment = Field(default=Environment.DEVELOPMENT, validation_alias="APP_ENV")

    # ==========================================
    # Application Settings
    # ==========================================
    PROJECT_NAME: str = "Market Advisor"
    VERSION: str = "1.0.0"
    DESCRIPTION: str = "Multi-agent market advisory service with streamed progress events"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS Settings
    ALLOWED_ORIGINS: EnvList = ["*"]

    # ==========================================
    # LLM Settings
    # ==========================================
    OPENAI_API_KEY: str = ""
    OPENAI_API_BASE: str = ""
    SMART_LLM_MODEL: str = "llama-3.3-70b-versatile"
    SMART_LLM_TEMPERATURE: float = 0.7
    SMART_LLM_MAX_TOKENS: int = 8192
    FAST_LLM_MODEL: str = "llama-3.1-8b-instant"
    FAST_LLM_TEMPERATURE: float = 0.3
    FAST_LLM_MAX_TOKENS: int = 2048
    LLM_MAX_RETRIES: int = 0

    # ==========================================
    # Langfuse Tracing
    # ==========================================
    LANGFUSE_PUBLIC_KEY: str = ""
    LANGFUSE_SECRET_KEY: str = ""
    LANGFUSE_HOST: str = "https://cloud.langfuse.com"
    # Unset means "on when both keys are present"
    LANGFUSE_TRACING_ENABLED: Optional[bool] = None

    # ==========================================
    # Market Data Backends
    # ==========================================
    TWELVEDATA_API_KEY: str = ""
    TWELVEDATA_BASE_URL: str = "https://api.twelvedata.com"
    TAVILY_API_KEY: str = ""
    TAVILY_BASE_URL: str = "https://api.tavily.com"
    SENTIMENT_API_URL: str = "http://localhost:3000"
    MARKET_INTELLIGENCE_API_URL: str = "http://localhost:3000"

    # ==========================================
    # Tool Invocation
    # ==========================================
    TOOL_HTTP_TIMEOUT_SECONDS: float = 30.0
    TOOL_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    TOOL_RETRY_BACKOFF_SECONDS: float = Field(default=10.0, ge=0)
    TOOL_RETRYABLE_STATUS_CODES: Annotated[List[int], NoDecode] = [429]
    TOOL_MIN_REQUEST_INTERVAL_SECONDS: float = Field(default=0.0, ge=0)
    TOOL_CACHE_TTL_SECONDS: float = 5 * 60
    TOOL_STATIC_CACHE_TTL_SECONDS: float = 24 * 60 * 60
    TOOL_CACHE_PURGE_INTERVAL_SECONDS: float = Field(default=5 * 60, gt=0)

    # ==========================================
    # Advisor Workflow
    # ==========================================
    ADVISOR_MAX_AGENT_CALLS: int = Field(default=3, ge=1)
    ADVISOR_MAX_HISTORY_MESSAGES: int = Field(default=6, ge=1)
    ADVISOR_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0)
    ADVISOR_RECURSION_LIMIT: int = 25

    # ==========================================
    # Logging
    # ==========================================
    LOG_DIR: Path = Path("logs")
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # "json" or "console"
    LOG_TO_FILE: bool = False

    # ==========================================
    # Rate Limiting
    # ==========================================
    RATE_LIMIT_DEFAULT: EnvList = ["200 per day", "50 per hour"]
    RATE_LIMIT_ADVISOR_CHAT: EnvList = ["20 per minute"]
    RATE_LIMIT_MARKETS: EnvList = ["30 per minute"]
    RATE_LIMIT_HEALTH: EnvList = ["20 per minute"]
    RATE_LIMIT_ROOT: EnvList = ["10 per minute"]

    @field_validator("ENVIRONMENT", mode="before")
    @classmethod
    def _parse_environment(cls, value: Any) -> Environment:
        return parse_environment(value)

    @field_validator(
        "ALLOWED_ORIGINS",
        "TOOL_RETRYABLE_STATUS_CODES",
        "RATE_LIMIT_DEFAULT",
        "RATE_LIMIT_ADVISOR_CHAT",
        "RATE_LIMIT_MARKETS",
        "RATE_LIMIT_HEALTH",
        "RATE_LIMIT_ROOT",
        mode="before",
    )
    @classmethod
    def _split_lists(cls, value: Any) -> Any:
        return split_env_list(value)

    @model_validator(mode="after")
    def apply_environment_settings(self) -> "Settings":
        """Apply environment presets to every field not set explicitly."""
        explicit = set(self.model_fields_set)
        for key, value in ENVIRONMENT_PRESETS.get(self.ENVIRONMENT, {}).items():
            if key not in explicit:
                setattr(self, key, value)

        if self.LANGFUSE_TRACING_ENABLED is None:
            self.LANGFUSE_TRACING_ENABLED = bool(self.LANGFUSE_PUBLIC_KEY and self.LANGFUSE_SECRET_KEY)
        return self

    @property
    def RATE_LIMIT_ENDPOINTS(self) -> Dict[str, List[str]]:
        """Per-endpoint limits keyed by endpoint name."""
        return {
            "advisor_chat": self.RATE_LIMIT_ADVISOR_CHAT,
            "markets": self.RATE_LIMIT_MARKETS,
            "health": self.RATE_LIMIT_HEALTH,
            "root": self.RATE_LIMIT_ROOT,
        }

    @property
    def loaded_env_files(self) -> List[str]:
        """The configured .env files that exist on disk."""
        return [str(path) for path in self.model_config["env_file"] if Path(path).is_file()]

    def summary(self) -> Dict[str, Any]:
        """Return a loggable, secret-free view of the active configuration."""
        return {
            "environment": self.ENVIRONMENT.value,
            "env_files": self.loaded_env_files,
            "smart_model": self.SMART_LLM_MODEL,
            "fast_model": self.FAST_LLM_MODEL,
            "max_agent_calls": self.ADVISOR_MAX_AGENT_CALLS,
            "tool_max_attempts": self.TOOL_MAX_ATTEMPTS,
            "tracing": self.LANGFUSE_TRACING_ENABLED,
        }


settings = Settings()
