"""Configuration management with YAML and environment variable support."""

from pathlib import Path
from typing import ClassVar, Literal

import yaml
from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    def get_field_value(self, field, field_name: str):
        # Not used with __call__
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        yaml_path = Path("config.yaml")
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class KieConfig(BaseModel):
    """KIE.ai provider connection settings."""

    api_key: str = ""
    base_url: str = "https://api.kie.ai/api/v1"
    upload_base_url: str = "https://kieai.redpandaai.co"
    request_timeout: float = 15.0
    status_timeout: float = 10.0
    submit_max_attempts: int = 3


class GenerationConfig(BaseModel):
    """Defaults applied when a clip or episode does not specify them."""

    default_model: str = "veo-fast"
    default_aspect_ratio: str = "16:9"
    reference_mode: Literal["single", "all"] = "single"


class PollingConfig(BaseModel):
    """Background poller tuning."""

    enabled: bool = True
    interval_seconds: float = 15.0
    concurrency: int = 4
    zombie_threshold: int = 3
    max_empty_responses: int = 3


class StorageConfig(BaseModel):
    """Storage and database configuration."""

    database_url: str = "sqlite+aiosqlite:///arcrunner.db"
    media_dir: Path = Path("storage/media")

    @field_validator("media_dir", mode="before")
    @classmethod
    def convert_media_dir_to_path(cls, v):
        """Convert string to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: ARCRUNNER_, delimiter: __)
    2. .env file
    3. YAML file (config.yaml)
    4. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="ARCRUNNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    kie: KieConfig = KieConfig()
    generation: GenerationConfig = GenerationConfig()
    polling: PollingConfig = PollingConfig()
    storage: StorageConfig = StorageConfig()
    server: ServerConfig = ServerConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Customize settings sources to include YAML configuration.

        Priority order (highest to lowest):
        1. Environment variables
        2. .env file
        3. YAML file
        4. Init settings (programmatic defaults)
        """
        return (
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            init_settings,
        )


# Singleton instance
settings = Settings()
