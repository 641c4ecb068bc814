import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

CONFIG_PATH_ENV = "FIGMA_RANGE_SYNC_CONFIG"
DEFAULT_CONFIG_PATH = Path("conf.yaml")


def config_path() -> Path:
    """Resolve the YAML config location, honouring FIGMA_RANGE_SYNC_CONFIG."""
    override = os.getenv(CONFIG_PATH_ENV, "").strip()
    return Path(override) if override else DEFAULT_CONFIG_PATH


class Settings(BaseSettings):
    # Logging
    log_level: str = "INFO"
    json_logs: bool = True

    # Figma settings
    figma_access_token: str
    figma_team_id: str
    figma_api_base_url: str = "https://api.figma.com/v1"
    figma_request_timeout_seconds: float = Field(default=30.0, gt=0)
    figma_requests_per_second: float = Field(default=5.0, gt=0)

    # Range settings
    range_webhook_url: str
    range_request_timeout_seconds: float = Field(default=30.0, gt=0)

    # Sync cadence
    initial_history_minutes: int = Field(default=60, ge=0)
    polling_interval_minutes: float = Field(default=5.0, gt=0)

    # Figma display name -> email address
    users: dict[str, str] = Field(default_factory=dict)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over the YAML file so deployments can override single values
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=config_path()),
        )

    def polling_interval_seconds(self) -> float:
        return self.polling_interval_minutes * 60


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
