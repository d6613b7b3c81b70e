from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvSettings(BaseSettings):
    """
    Settings of the map backend.
    Read from the .env file in the project root and from environment variables.
    """

    DATABASE_URL: str = "sqlite+aiosqlite:///estate_bot.db"
    FRONTEND_BASE_URL: str = "http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_env_settings() -> EnvSettings:
    return EnvSettings()
