from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    pica_secret_key: str = Field(
        default="",
        validation_alias=AliasChoices("pica_secret_key", "pica_secret"),
    )
    pica_base_url: str = "https://api.picaos.com"
    database_url: str = "sqlite:///./.pipesync/pipesync.db"
    default_output: str = "stdout"  # "stdout" or "db"
    watch_interval: str = "30m"
    request_timeout: float = 30.0
    # Consecutive empty sync-token pages before a run stops; None disables.
    max_empty_pages: Optional[int] = 25

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
