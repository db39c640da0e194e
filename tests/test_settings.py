from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from weatherproxy.settings import (
    EnvSettings,
    MissingApiKeyError,
    WeatherProxyYamlSettings,
    _load_yaml_settings,
    load_settings,
    validate_api_keys,
)


def test_yaml_defaults_match_resilience_defaults() -> None:
    settings = WeatherProxyYamlSettings()
    config = settings.resilience.to_breaker_config()

    assert config.sliding_window_size == 10
    assert config.failure_rate_threshold_percent == 50
    assert config.wait_duration_in_open_state_seconds == 10
    assert config.permitted_calls_in_half_open_state == 5
    assert config.call_timeout_seconds == 2
    assert settings.cache.ttl_seconds == 3
    assert settings.providers.weatherstack.priority == 1
    assert settings.providers.openweathermap.priority == 2


def test_load_yaml_settings_from_file(tmp_path) -> None:
    path = tmp_path / "weatherproxy.yaml"
    path.write_text(
        "providers:\n"
        "  openweathermap:\n"
        "    base_url: https://owm.example.com/data/2.5/\n"
        "    country_code: nz\n"
        "cache:\n"
        "  ttl_seconds: 5\n",
        encoding="utf-8",
    )

    settings = _load_yaml_settings(path)

    assert settings.providers.openweathermap.base_url == "https://owm.example.com/data/2.5"
    assert settings.providers.openweathermap.country_code == "NZ"
    assert settings.cache.ttl_seconds == 5


def test_empty_yaml_uses_defaults(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    assert _load_yaml_settings(path) == WeatherProxyYamlSettings()


def test_missing_yaml_file_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        _load_yaml_settings(tmp_path / "absent.yaml")


def test_non_mapping_yaml_raises(tmp_path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError):
        _load_yaml_settings(path)


@pytest.mark.parametrize(
    "raw",
    [
        {"providers": {"weatherstack": {"base_url": "ftp://example.com"}}},
        {"providers": {"weatherstack": {"priority": -1}}},
        {"resilience": {"failure_rate_threshold_percent": 0}},
        {"resilience": {"sliding_window_size": 5, "minimum_number_of_calls": 6}},
        {"cache": {"ttl_seconds": -1}},
    ],
)
def test_invalid_yaml_values_are_rejected(raw) -> None:
    with pytest.raises(ValidationError):
        WeatherProxyYamlSettings.model_validate(raw)


def test_env_settings_read_api_keys(monkeypatch) -> None:
    monkeypatch.setenv("WEATHERSTACK_API_KEY", "  ws-key ")
    monkeypatch.setenv("OPENWEATHERMAP_API_KEY", "owm-key")
    monkeypatch.setenv("WEATHERPROXY_LOG_LEVEL", "debug")

    env = EnvSettings(_env_file=None)

    assert env.weatherstack_api_key == "ws-key"
    assert env.openweathermap_api_key == "owm-key"
    assert env.weatherproxy_log_level == "DEBUG"


def test_load_settings_resolves_config_path(monkeypatch, tmp_path) -> None:
    path = tmp_path / "weatherproxy.yaml"
    path.write_text("cache:\n  ttl_seconds: 7\n", encoding="utf-8")
    monkeypatch.setenv("WEATHERPROXY_CONFIG_PATH", str(path))
    load_settings.cache_clear()

    try:
        settings = load_settings()
    finally:
        load_settings.cache_clear()

    assert settings.config_path == path
    assert settings.yaml.cache.ttl_seconds == 7


def test_validate_api_keys_passes_when_present(make_settings, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="weatherproxy.settings"):
        validate_api_keys(make_settings())

    assert "API keys validated successfully." in caplog.text


def test_validate_api_keys_rejects_missing_key(make_settings) -> None:
    with pytest.raises(MissingApiKeyError, match="WeatherStack"):
        validate_api_keys(make_settings(weatherstack_api_key=""))


def test_validate_api_keys_ignores_disabled_provider(make_settings) -> None:
    settings = make_settings(
        {"providers": {"openweathermap": {"enabled": False}}},
        openweathermap_api_key="",
    )

    validate_api_keys(settings)
