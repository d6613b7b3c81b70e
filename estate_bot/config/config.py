from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvSettings(BaseSettings):
    """
    Application settings.
    Loaded from the .env file and from environment variables.
    """

    BOT_TOKEN: str
    DATABASE_URL: str = "sqlite+aiosqlite:///estate_bot.db"

    # Mapbox credential shared by geocoding and the map frontend
    MAPBOX_ACCESS_TOKEN: str = ""
    MAPBOX_BASE_URL: str = "https://api.mapbox.com"

    FRONTEND_BASE_URL: str = "http://localhost:5173"
    MAP_LINK_TTL_MINUTES: int = 5
    MAP_REQUEST_CLEANUP_INTERVAL_MINUTES: int = 10

    GEOCODING_DEBOUNCE_MS: int = 300
    GEOCODING_MIN_QUERY_LENGTH: int = 3
    GEOCODING_TIMEOUT: float = 5.0

    # India Standard Time
    APP_TIMEZONE_OFFSET: float = 5.5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_env_settings() -> EnvSettings:
    """
    Returns the single settings instance.
    Created on the first call, reused afterwards.
    """
    return EnvSettings()
