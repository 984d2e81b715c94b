from pathlib import Path

from pydantic import HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """App configuration"""

    model_config = SettingsConfigDict(
        env_file='.env', env_file_encoding='utf-8', extra='ignore'
    )

    gemini_api_key: str | None = None
    gemini_model: str = 'gemini-2.5-flash'
    gemini_base_url: HttpUrl = 'https://generativelanguage.googleapis.com/v1beta'  # pyright: ignore[reportAssignmentType]
    request_timeout: float = 60.0

    # None keeps map history in memory only
    history_path: Path | None = None
    history_limit: int = 50

    session_store_max: int = 50
    log_level: str = 'INFO'

    @property
    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key)


settings = Settings()
