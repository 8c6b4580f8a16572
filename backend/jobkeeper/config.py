import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

_CONFIG_PATH = os.getenv("JOBKEEPER_CONFIG", "config.toml")
_ENV_PATH = os.getenv("JOBKEEPER_ENV", ".env")


class SchedulerSettings(BaseModel):
    timezone: str = "UTC"
    execution_timeout_seconds: float = 30 * 60
    misfire_grace_seconds: int = 60
    shutdown_grace_seconds: float = 10


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="JOBKEEPER_",
        env_nested_delimiter="__",
        toml_file=_CONFIG_PATH,
        env_file=_ENV_PATH,
        extra="ignore",
    )

    database_url: str = "sqlite:///jobkeeper.db"
    database_echo: bool = False

    host: str = "127.0.0.1"
    port: int = 8000

    logs_dir: Path = Field(default=Path("logs"))
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Source order: init args > OS env > .env > config.toml > secrets
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()
