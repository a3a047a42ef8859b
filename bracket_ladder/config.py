from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    startgg_token: str = ""
    startgg_api_url: str = "https://api.start.gg/gql/alpha"
    http_timeout_seconds: float = 20.0
    standings_page_size: int = 128
    data_dir: str = "data"
    admin_key: str = ""
    default_tier: str = "B"
    tier_multipliers: dict[str, float] = Field(default_factory=dict)
    default_tier_multiplier: float = 0.5
    rebuild_on_startup: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
