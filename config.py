import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Payments Ledger Engine"
    app_version: str = "1.0.0"

    # Logging settings
    log_level: str = "WARNING"
    log_format: Literal["json", "text"] = "text"

    # Ledger store settings
    store_backend: Literal["sqlite", "memory"] = "sqlite"
    store_dir: Optional[str] = None  # parent of the per-run temporary directory
    sqlite_filename: str = "ledger.db"

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance, honouring LEDGER_ENV when it is set."""
    env = os.environ.get("LEDGER_ENV")
    if env:
        return get_settings_for_environment(env)
    return Settings()


# Environment-specific configurations
class DevelopmentSettings(Settings):
    log_level: str = "DEBUG"
    log_format: Literal["json", "text"] = "text"


class ProductionSettings(Settings):
    log_level: str = "WARNING"
    log_format: Literal["json", "text"] = "json"


class TestingSettings(Settings):
    log_level: str = "WARNING"  # Reduce noise in tests
    store_backend: Literal["sqlite", "memory"] = "memory"


def get_settings_for_environment(env: str = "development") -> Settings:
    """Get settings for specific environment."""
    settings_map = {
        "development": DevelopmentSettings,
        "production": ProductionSettings,
        "testing": TestingSettings,
    }

    settings_class = settings_map.get(env.lower(), Settings)
    return settings_class()
