"""
TopoTable - Configuration Module
Settings come from config/settings.yml, then .env, then the environment;
later sources win. Nested keys use "__" (ENGINE__WORKERS=4).
"""
import logging
import os
import sys
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, Literal, Tuple
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

load_dotenv()

logger = logging.getLogger("topotable.config")

CONFIG_ENV_VAR = "TOPOTABLE_CONFIG"


class AppConfig(BaseModel):
    name: str = "TopoTable"
    version: str = "0.1.0"
    description: str = "Network controller REST to table data source"


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)


class DatasourceConfig(BaseModel):
    """Upstream controller API; everything but base_url/fetcher goes to the fetcher"""
    base_url: str = "http://localhost:8181"
    fetcher: str = "rest_api"
    verify_ssl: bool = False
    timeout: float = 15
    max_retries: int = Field(default=3, ge=1)
    retry_backoff: float = 2
    auth_type: Literal["none", "basic", "bearer"] = "none"
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None

    @model_validator(mode="after")
    def check_credentials(self) -> "DatasourceConfig":
        if self.auth_type == "basic" and not self.username:
            raise ValueError("auth_type 'basic' requires a username")
        if self.auth_type == "bearer" and not self.token:
            raise ValueError("auth_type 'bearer' requires a token")
        return self

    def fetcher_options(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"base_url", "fetcher"})


class EngineConfig(BaseModel):
    # None disables the per-query extraction deadline
    timeout_seconds: Optional[float] = Field(default=30, gt=0)
    workers: int = Field(default=1, ge=1)
    strict_conversion: bool = False
    max_concurrent_queries: int = Field(default=4, ge=1)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: Optional[str] = "logs/topotable.log"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    max_size_mb: int = 10
    backup_count: int = 5


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    app: AppConfig = AppConfig()
    server: ServerConfig = ServerConfig()
    datasource: DatasourceConfig = DatasourceConfig()
    engine: EngineConfig = EngineConfig()
    logging: LoggingConfig = LoggingConfig()

    # Flat env-var shortcut for the upstream API base URL
    base_url: Optional[str] = Field(default=None, alias="BASE_URL")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # YAML arrives as init kwargs; the environment must override it
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @model_validator(mode="after")
    def apply_base_url(self) -> "Settings":
        if self.base_url:
            self.datasource = self.datasource.model_copy(update={"base_url": self.base_url})
        return self


def find_config_file(filename: str = "settings.yml") -> Optional[Path]:
    """$TOPOTABLE_CONFIG if set, else the first of /app/config, ./config, cwd"""
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        return Path(explicit) if Path(explicit).exists() else None

    for directory in (Path("/app/config"), Path("config"), Path(".")):
        candidate = directory / filename
        if candidate.exists():
            return candidate
    return None


def load_yaml(path: Path) -> Dict[str, Any]:
    """Mapping from a YAML file; {} when unreadable or not a mapping"""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load YAML from {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.error(f"Ignoring {path}: top level is not a mapping")
        return {}
    return data


def load_settings(path: Optional[Path] = None) -> Settings:
    """Build Settings from one YAML file plus the environment. Raises ValidationError."""
    yaml_data = load_yaml(path) if path else {}
    return Settings(**yaml_data)


@lru_cache()
def get_config() -> Settings:
    """Process-wide settings; exits when they do not validate"""
    settings_path = find_config_file()
    if settings_path:
        logger.info(f"Loaded base settings from {settings_path}")
    else:
        logger.warning("settings.yml not found, using defaults and environment variables")

    try:
        return load_settings(settings_path)
    except Exception as e:
        logger.critical(f"Configuration validation failed: {e}")
        sys.exit(1)
