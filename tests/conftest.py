"""Shared fixtures: a controllable clock, scripted providers and settings builders."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from weatherproxy.domain.errors import ErrorKind, WeatherProviderError
from weatherproxy.domain.models import WeatherObservation
from weatherproxy.settings import AppSettings, EnvSettings, WeatherProxyYamlSettings
from weatherproxy.storage.cache import ResultCache


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider:
    """Provider double that replays outcomes; the last outcome repeats forever."""

    def __init__(self, name: str, priority: int, *outcomes: Any) -> None:
        self.name = name
        self.priority = priority
        self._outcomes = list(outcomes) or [WeatherObservation(wind_speed=1.0, temperature_degrees=1.0)]
        self.calls: list[str] = []

    def fetch(self, city: str) -> WeatherObservation:
        self.calls.append(city)
        index = min(len(self.calls) - 1, len(self._outcomes) - 1)
        outcome = self._outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def provider_error(kind: ErrorKind, provider: str = "fake", **kwargs: Any) -> WeatherProviderError:
    return WeatherProviderError(kind, f"{kind.value} from {provider}", provider=provider, **kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResultCache:
    return ResultCache(3, clock=clock)


@pytest.fixture
def observation() -> WeatherObservation:
    return WeatherObservation(wind_speed=20.0, temperature_degrees=29.0)


@pytest.fixture
def make_settings():
    def _make(yaml_config: dict[str, Any] | None = None, **env: Any) -> AppSettings:
        env.setdefault("weatherstack_api_key", "ws-key")
        env.setdefault("openweathermap_api_key", "owm-key")
        return AppSettings(
            env=EnvSettings(_env_file=None, **env),
            yaml=WeatherProxyYamlSettings.model_validate(yaml_config or {}),
            project_root=Path("."),
            config_path=Path("config/weatherproxy.yaml"),
        )

    return _make
