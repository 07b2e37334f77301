"""Configuration management for the earnings tracker and bag monitor."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.constants import MAX_ADDRESS_LENGTH, MIN_ADDRESS_LENGTH

DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "BAGSTATS_CONFIG_FILE"
MODE_ENV_VAR = "BAGSTATS_MODE"


class AppMode(str, Enum):
    """Supported runtime modes."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    if not data:
        return {}
    base_section = cast(Dict[str, Any], data.get("default", {}))
    requested_mode = os.getenv(MODE_ENV_VAR)
    if not requested_mode:
        mode_section = base_section.get("mode")
        if isinstance(mode_section, dict):
            requested_mode = cast(str, mode_section.get("active", AppMode.DEVELOPMENT.value))
        elif isinstance(mode_section, str):
            requested_mode = mode_section
    requested_mode = (requested_mode or AppMode.DEVELOPMENT.value).lower()

    if requested_mode in data and requested_mode != "default":
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested_mode]))
    if base_section:
        return base_section
    return data


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    merged = dict(_select_profile(payload))
    mode_section = merged.get("mode")
    if isinstance(mode_section, dict):
        mode_section = dict(mode_section)
        mode_section.setdefault("config_file", str(path))
        merged["mode"] = mode_section
    else:
        merged["mode"] = {"config_file": str(path)}
    return merged, path


class ModeConfig(BaseModel):
    """Runtime mode toggles."""

    active: AppMode = Field(default=AppMode.DEVELOPMENT)
    config_file: Optional[Path] = None


class DataSourceConfig(BaseModel):
    """Upstream endpoints consumed by the aggregation pipeline."""

    bags_base_url: AnyHttpUrl = Field(default="https://public-api-v2.bags.fm/api/v1")
    bags_api_key: Optional[str] = None
    positions_endpoint: str = Field(default="/token-launch/claimable-positions")
    claim_stats_endpoint: str = Field(default="/token-launch/claim-stats")
    price_url: AnyHttpUrl = Field(
        default="https://api.coingecko.com/api/v3/simple/price?ids=solana&vs_currencies=usd"
    )
    fallback_sol_price: float = Field(default=200.0, ge=0.0)
    price_cache_ttl_seconds: int = Field(default=60, ge=0)
    metadata_url_template: str = Field(default="https://api.jup.ag/tokens/v1/{mint}")
    metadata_fetch_limit: int = Field(default=30, ge=0)
    metadata_cache_ttl_seconds: int = Field(default=3_600, ge=0)
    claim_stats_delay_seconds: float = Field(default=0.05, ge=0.0)
    http_timeout: float = Field(default=10.0, ge=1.0, le=60.0)
    stats_cache_ttl_seconds: int = Field(default=300, ge=0)
    stats_cache_size: int = Field(default=1_024, ge=1)

    @field_validator("http_timeout", mode="before")
    @classmethod
    def _parse_http_timeout(cls, value) -> float:
        if isinstance(value, str):
            return float(value)
        return value


class MonitorConfig(BaseModel):
    """Scheduling of the change-detection monitor."""

    enabled: bool = True
    interval_minutes: float = Field(default=5.0, gt=0.0)
    wallet_delay_seconds: float = Field(default=1.0, ge=0.0)
    min_address_length: int = Field(default=MIN_ADDRESS_LENGTH, ge=1)
    max_address_length: int = Field(default=MAX_ADDRESS_LENGTH, ge=1)

    @model_validator(mode="after")
    def _check_address_bounds(self) -> "MonitorConfig":
        if self.min_address_length > self.max_address_length:
            raise ValueError("min_address_length must not exceed max_address_length")
        return self


class StorageConfig(BaseModel):
    """State persistence configuration."""

    database_path: Path = Field(default=Path("./data/bagstats.sqlite3"))
    snapshot_history_limit: int = Field(default=10, ge=1)
    notification_history_limit: int = Field(default=50, ge=1)


class NotificationConfig(BaseModel):
    """Push relay used to reach subscribed devices."""

    push_gateway_url: Optional[AnyHttpUrl] = None
    push_gateway_token: Optional[str] = None
    bundle_id: str = Field(default="xyz.bagstats.app")
    request_timeout: float = Field(default=5.0, ge=0.5, le=30.0)
    default_token_symbol: str = Field(default="Bags")


class ApiConfig(BaseModel):
    """HTTP surface configuration."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3002, ge=1, le=65535)
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])
    start_monitor: bool = True


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    mode: ModeConfig = Field(default_factory=ModeConfig)
    data_sources: DataSourceConfig = Field(default_factory=DataSourceConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, _ = _load_toml_config()
            return payload

        # Runtime environment variables win over the static config file.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _sync_mode(self) -> "AppConfig":
        requested = os.getenv(MODE_ENV_VAR)
        if requested:
            self.mode.active = AppMode(requested.lower())
        return self

    @property
    def is_production(self) -> bool:
        return self.mode.active == AppMode.PRODUCTION


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "ApiConfig",
    "AppConfig",
    "AppMode",
    "DataSourceConfig",
    "ModeConfig",
    "MonitorConfig",
    "MonitoringConfig",
    "NotificationConfig",
    "StorageConfig",
    "get_app_config",
]
