"""
Runtime settings using Pydantic Settings.

Values come from ``TFCONF_*`` environment variables, optionally loaded
from a ``.env`` file in the working directory. The same file may also
hold ``TF_VAR_*`` input values, which become visible to the environment
source once loaded.
"""
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path.cwd() / ".env"

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    """tfconf settings"""

    log_level: str = Field(default="WARNING", description="Logging level")
    var_env_prefix: str = Field(
        default="TF_VAR_",
        description="Prefix of environment variables that set input variables",
    )
    strict_objects: bool = Field(
        default=False,
        description="Reject undeclared object attributes instead of dropping them",
    )
    mask_sensitive: bool = Field(
        default=True,
        description="Replace sensitive output values when displaying them",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Accept level names in any case"""
        level = str(v).upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @field_validator("var_env_prefix")
    @classmethod
    def prefix_not_empty(cls, v):
        if not v:
            raise ValueError("var_env_prefix must not be empty")
        return v

    model_config = SettingsConfigDict(
        env_prefix="TFCONF_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance, loading ``.env`` on first use"""
    if ENV_FILE.exists():
        load_dotenv(ENV_FILE, override=False)
    return Settings()
