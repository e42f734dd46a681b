"""Configuration management for scriptrelay.

Loads settings from a YAML configuration file with environment variable
overrides for the shared secret and port. Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/scriptrelay.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class RelayConfig(BaseModel):
    filter_mode: Literal["role", "flat"] = Field(default="role")
    capacity: int = Field(default=100, gt=0, description="Max records kept in the log")
    poll_window_ms: int = Field(default=30_000, gt=0)
    max_age_ms: int = Field(default=300_000, gt=0)
    prune_interval: float = Field(default=300.0, gt=0, description="Seconds between prunes")


class AuthConfig(BaseModel):
    api_key: SecretStr = Field(default=SecretStr(""))
    require_api_key: bool = Field(default=False)

    @property
    def enforced(self) -> bool:
        return self.require_api_key and bool(self.api_key.get_secret_value())


class ClientConfig(BaseModel):
    base_url: str = Field(default="http://localhost:3000")
    timeout: float = Field(default=10.0, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)
    script_id: str = Field(default="default")
    sender_id: str = Field(default="")
    sender_name: str = Field(default="")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the scriptrelay server and client.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "SCRIPTRELAY_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; prefixed env vars must win over them
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: SCRIPTRELAY_ env vars > .env file > PORT/API_KEY/REQUIRE_API_KEY
    env vars > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    # Load .env file manually for non-prefixed vars
    _load_dotenv()

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _load_dotenv() -> None:
    """Load .env file into os.environ if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if not os.environ.get(key):
                    os.environ[key] = value


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply the plain PORT / API_KEY / REQUIRE_API_KEY variables."""
    port = os.environ.get("PORT", "")
    api_key = os.environ.get("API_KEY", "")
    require = os.environ.get("REQUIRE_API_KEY", "")

    if port:
        yaml_data.setdefault("server", {})["port"] = port

    if api_key or require:
        auth = yaml_data.setdefault("auth", {})
        if api_key:
            auth["api_key"] = api_key
        if require:
            auth["require_api_key"] = require.strip().lower() == "true"
