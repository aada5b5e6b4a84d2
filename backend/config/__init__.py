"""
Configuration module for AgentDesk backend.

Provides settings management using pydantic-settings.
Supports loading from environment variables and .env files.
"""

from .settings import Settings, get_settings, has_llm_credentials
from .paths import resolve_data_dir, default_database_url

__all__ = [
    "Settings",
    "get_settings",
    "has_llm_credentials",
    "resolve_data_dir",
    "default_database_url",
]
