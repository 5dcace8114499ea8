"""Application settings loaded from environment variables / .env file."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str
    bot_name: str
    dimension: int = 5
    roster_base_url: str = "https://people.anarchy-online.com"
    roster_timeout: float = 30.0
    alliance_mapped_rank: str = "guild"
    alliance_default_rank: int = 6
    alliance_sync_interval_hours: int = 24
    app_env: str = "development"
    app_port: int = 8100
    app_host: str = "0.0.0.0"


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
