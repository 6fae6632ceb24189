"""
API Configuration
==================

Environment variables and `.env` settings for the settlement service.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings"""

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # Application
    APP_NAME: str = "Energy Allocation API"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Monthly energy allocation, banking and lapse settlement"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 1
    RELOAD: bool = False

    # CORS
    CORS_ORIGINS: str = "*"
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: str = "*"
    CORS_ALLOW_HEADERS: str = "*"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json | text
    LOG_OUTPUT: str = "console"  # console | file | both
    LOG_DIR: str = "./logs"

    # Settlement
    DEFAULT_COMPANY_ID: Optional[str] = None
    STRICT_SHAREHOLDING: bool = False
    FINANCIAL_YEAR_START_MONTH: int = 4

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if not isinstance(logging.getLevelName(v.upper()), int):
            raise ValueError(f"Unknown log level: {v}")
        return v.upper()

    @field_validator('LOG_FORMAT')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ('json', 'text'):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v

    @field_validator('LOG_OUTPUT')
    @classmethod
    def validate_log_output(cls, v: str) -> str:
        if v not in ('console', 'file', 'both'):
            raise ValueError("LOG_OUTPUT must be 'console', 'file' or 'both'")
        return v

    @field_validator('FINANCIAL_YEAR_START_MONTH')
    @classmethod
    def validate_start_month(cls, v: int) -> int:
        if not 1 <= v <= 12:
            raise ValueError("FINANCIAL_YEAR_START_MONTH must be 1-12")
        return v

    @property
    def cors_origins_list(self) -> list:
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton"""
    return Settings()


settings = get_settings()
