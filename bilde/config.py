import os
import re
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early so env vars are available for YAML interpolation
_env_file = Path(__file__).parent.parent / ".env"
load_dotenv(_env_file)

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def get_config_path() -> Path:
    """Return the app.yaml path, overridable with BILDE_CONFIG."""
    return Path(os.environ.get("BILDE_CONFIG", Path.cwd() / "app.yaml"))


def load_app_config() -> dict:
    """Load and parse app.yaml with environment variable interpolation."""
    config_path = get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"app.yaml not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class DatabaseConfig(BaseModel):
    """Database connection configuration for the SQL metadata index."""

    url: str = "sqlite+aiosqlite:///./bilde.db"
    pool_size: int = 5
    pool_overflow: int = 10
    pool_timeout: int = 30
    pool_pre_ping: bool = True
    echo: bool = False


class S3Config(BaseModel):
    """S3-compatible bucket settings."""

    bucket: str = ""
    region: str = "us-east-1"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    prefix: str = ""


class StoreConfig(BaseModel):
    """Content store configuration.

    ``backend`` is ``local``, ``s3`` or a ``module:ClassName`` spec.
    """

    backend: str = "local"
    local_path: str = "./storage"
    container: str = "images"
    max_upload_size: int = 20 * 1024 * 1024
    s3: S3Config = S3Config()


class IndexConfig(BaseModel):
    """Metadata index configuration (``memory`` or ``sqlalchemy``)."""

    backend: str = "sqlalchemy"
    create_tables: bool = False


class RedisConfig(BaseModel):
    """Redis connection used by the Redis work queue."""

    url: str = "redis://localhost:6379/0"
    prefix: str = ""

    def make_key(self, *parts: str) -> str:
        """Join key parts with ``:``, prefixed by the configured namespace."""
        key = ":".join(parts)
        if self.prefix:
            return f"{self.prefix}:{key}"
        return key


class QueueConfig(BaseModel):
    """Work queue configuration (``memory``, ``redis`` or ``module:ClassName``)."""

    backend: str = "memory"
    name: str = "jobs"


class VersionConfig(BaseModel):
    """A named variant precomputed for every upload."""

    width: int = 0
    height: int = 0
    format: str = "jpeg"
    quality: int = 85


DEFAULT_VERSIONS: dict[str, VersionConfig] = {
    "thumb": VersionConfig(width=200, height=200),
    "small": VersionConfig(width=400),
    "medium": VersionConfig(width=800),
    "cover": VersionConfig(width=1200),
}


class ImagingConfig(BaseModel):
    """Codec defaults and precomputed versions."""

    formats: list[str] = ["bmp", "gif", "jpeg", "png", "tiff", "webp"]
    default_format: str = "jpeg"
    default_quality: int = 100
    default_extension: str = "jpeg"
    versions: dict[str, VersionConfig] = DEFAULT_VERSIONS


class LogfireConfig(BaseModel):
    """Pydantic Logfire settings (optional dependency)."""

    enabled: bool = False
    service_name: str = "bilde"
    environment: str | None = None
    sample_rate: float = 1.0
    console: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BILDE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    debug: bool = False
    log_level: str = "info"

    # Sections below are usually loaded from app.yaml
    db: DatabaseConfig = DatabaseConfig()
    storage: StoreConfig = StoreConfig()
    index: IndexConfig = IndexConfig()
    queue: QueueConfig = QueueConfig()
    redis: RedisConfig = RedisConfig()
    imaging: ImagingConfig = ImagingConfig()
    logfire: LogfireConfig = LogfireConfig()


_SECTIONS: dict[str, type[BaseModel]] = {
    "db": DatabaseConfig,
    "storage": StoreConfig,
    "index": IndexConfig,
    "queue": QueueConfig,
    "redis": RedisConfig,
    "imaging": ImagingConfig,
    "logfire": LogfireConfig,
}


@lru_cache
def get_settings() -> Settings:
    """Load settings from .env and app.yaml."""
    # First create base settings from .env
    base_settings = Settings()

    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return base_settings

    # Merge YAML config with settings
    updates = {}

    for name, model in _SECTIONS.items():
        if name in app_config:
            updates[name] = model(**app_config[name])

    for name in ("debug", "log_level"):
        if name in app_config:
            updates[name] = app_config[name]

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings


def clear_settings_cache() -> None:
    """Forget cached settings so the next get_settings() reloads them."""
    get_settings.cache_clear()
