from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .resilience import CircuitBreakerConfig

LOGGER = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class MissingApiKeyError(RuntimeError):
    """Raised at startup when an enabled provider has no API key configured."""


def _validate_base_url(value: str) -> str:
    text = value.strip()
    if not text:
        raise ValueError("providers.*.base_url must not be empty")
    parsed = urlparse(text)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("providers.*.base_url must be an absolute http(s) URL")
    return text.rstrip("/")


class WeatherStackSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    base_url: str = "http://api.weatherstack.com"
    priority: int = Field(default=1, ge=0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        return _validate_base_url(value)


class OpenWeatherMapSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    base_url: str = "https://api.openweathermap.org/data/2.5"
    priority: int = Field(default=2, ge=0)
    country_code: str = "AU"
    units: Literal["metric", "imperial", "standard"] = "metric"

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        return _validate_base_url(value)

    @field_validator("country_code")
    @classmethod
    def validate_country_code(cls, value: str) -> str:
        return value.strip().upper()


class ProvidersSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    weatherstack: WeatherStackSettings = Field(default_factory=WeatherStackSettings)
    openweathermap: OpenWeatherMapSettings = Field(default_factory=OpenWeatherMapSettings)


class ResilienceSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sliding_window_size: int = Field(default=10, ge=1, le=1000)
    failure_rate_threshold_percent: float = Field(default=50.0, gt=0, le=100)
    minimum_number_of_calls: int | None = Field(default=None, ge=1)
    wait_duration_in_open_state_seconds: float = Field(default=10.0, ge=0)
    permitted_calls_in_half_open_state: int = Field(default=5, ge=1)
    call_timeout_seconds: float = Field(default=2.0, gt=0)

    def to_breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            sliding_window_size=self.sliding_window_size,
            failure_rate_threshold_percent=self.failure_rate_threshold_percent,
            minimum_number_of_calls=self.minimum_number_of_calls,
            wait_duration_in_open_state_seconds=self.wait_duration_in_open_state_seconds,
            permitted_calls_in_half_open_state=self.permitted_calls_in_half_open_state,
            call_timeout_seconds=self.call_timeout_seconds,
        )


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ttl_seconds: float = Field(default=3, ge=0)
    stale_grace_seconds: float = Field(default=0, ge=0)
    prune_interval_seconds: int = Field(default=60, ge=1, le=86400)


class WeatherProxyYamlSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    providers: ProvidersSettings = Field(default_factory=ProvidersSettings)
    resilience: ResilienceSettings = Field(default_factory=ResilienceSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)

    @model_validator(mode="after")
    def validate_minimum_calls(self) -> WeatherProxyYamlSettings:
        minimum = self.resilience.minimum_number_of_calls
        if minimum is not None and minimum > self.resilience.sliding_window_size:
            raise ValueError(
                "resilience.minimum_number_of_calls must not exceed resilience.sliding_window_size"
            )
        return self


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    weatherproxy_env: Literal["dev", "test", "prod"] = "dev"
    weatherproxy_config_path: Path = Path("config/weatherproxy.yaml")
    weatherproxy_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    weatherstack_api_key: str = ""
    openweathermap_api_key: str = ""

    @field_validator("weatherproxy_log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("weatherstack_api_key", "openweathermap_api_key")
    @classmethod
    def strip_api_key(cls, value: str) -> str:
        return value.strip()


class AppSettings(BaseModel):
    env: EnvSettings
    yaml: WeatherProxyYamlSettings
    project_root: Path
    config_path: Path


def _resolve_project_path(path: Path) -> Path:
    if path.is_absolute():
        return path
    return (PROJECT_ROOT / path).resolve()


def _load_yaml_settings(path: Path) -> WeatherProxyYamlSettings:
    if not path.exists():
        raise FileNotFoundError(f"weatherproxy config file not found: {path}")

    raw_config = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError("weatherproxy config must be a YAML mapping/object at the top level")
    return WeatherProxyYamlSettings.model_validate(raw_config)


@lru_cache(maxsize=1)
def load_settings() -> AppSettings:
    env = EnvSettings()
    config_path = _resolve_project_path(env.weatherproxy_config_path)
    yaml_settings = _load_yaml_settings(config_path)
    return AppSettings(
        env=env,
        yaml=yaml_settings,
        project_root=PROJECT_ROOT,
        config_path=config_path,
    )


def validate_api_keys(settings: AppSettings) -> None:
    required = (
        ("WeatherStack", settings.yaml.providers.weatherstack.enabled, settings.env.weatherstack_api_key),
        (
            "OpenWeatherMap",
            settings.yaml.providers.openweathermap.enabled,
            settings.env.openweathermap_api_key,
        ),
    )
    for provider_name, enabled, api_key in required:
        if enabled and not api_key:
            LOGGER.error("%s API key is missing!", provider_name)
            raise MissingApiKeyError(f"Missing {provider_name} API key")
    LOGGER.info("API keys validated successfully.")
