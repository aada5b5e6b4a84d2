"""
Application Settings and Configuration.

Loads configuration from environment variables and .env files.
Covers database, logging, language-model and mock market-data settings.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator
from .paths import default_database_url


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables:
        DATABASE_URL: Database connection URL (default: sqlite file in the data dir)
        AGENTDESK_APP_DATA_DIR: Data directory for the default sqlite file (default: ./data)
        GROQ_API_KEY: API key for the language-model provider
        AGENTDESK_LLM_MODEL: Chat-completions model name
        AGENTDESK_MARKET_SEED: Optional seed for the mock price generator
    """

    # Database Configuration
    app_data_dir: Optional[str] = Field(default=None, alias="AGENTDESK_APP_DATA_DIR")
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    sql_echo: bool = Field(default=False, alias="SQL_ECHO")

    # Application Configuration
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_directory: Optional[str] = Field(default=None, alias="AGENTDESK_LOG_DIR")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        alias="AGENTDESK_CORS_ORIGINS",
    )

    # Language-model provider (OpenAI-compatible chat completions)
    llm_api_key: Optional[str] = Field(default=None, alias="GROQ_API_KEY")
    llm_base_url: str = Field(default="https://api.groq.com/openai/v1", alias="AGENTDESK_LLM_BASE_URL")
    llm_model: str = Field(default="llama-3.1-8b-instant", alias="AGENTDESK_LLM_MODEL")
    llm_timeout_seconds: float = Field(default=30.0, alias="AGENTDESK_LLM_TIMEOUT_SECONDS")

    # Mock market data
    market_seed: Optional[int] = Field(default=None, alias="AGENTDESK_MARKET_SEED")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("llm_api_key")
    @classmethod
    def strip_api_key(cls, v):
        """Strip whitespace from API key to prevent authentication failures."""
        return v.strip() if v else v

    @model_validator(mode="after")
    def default_to_sqlite(self):
        if not self.database_url:
            self.database_url = default_database_url(self.app_data_dir)
        return self


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def has_llm_credentials() -> bool:
    """
    Check if the language-model API key is configured.

    Returns:
        True if an API key is set
    """
    settings = get_settings()
    return bool(settings.llm_api_key)
