from __future__ import annotations

import logging
from typing import Iterable, Iterator

from .adapters.weather import OpenWeatherMapAdapter, WeatherProvider, WeatherStackAdapter
from .adapters.weather.base import JsonFetcher
from .settings import AppSettings

LOGGER = logging.getLogger(__name__)


class ProviderRegistry:
    """Providers in the order they are tried: ascending priority, input order on ties."""

    def __init__(self, providers: Iterable[WeatherProvider]) -> None:
        # sorted() is stable, so equal priorities keep their input order.
        self._providers: tuple[WeatherProvider, ...] = tuple(
            sorted(providers, key=lambda provider: provider.priority)
        )

    @property
    def providers(self) -> tuple[WeatherProvider, ...]:
        return self._providers

    def names(self) -> list[str]:
        return [provider.name for provider in self._providers]

    def __iter__(self) -> Iterator[WeatherProvider]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)


def build_registry(settings: AppSettings, *, fetcher: JsonFetcher | None = None) -> ProviderRegistry:
    breaker_config = settings.yaml.resilience.to_breaker_config()
    providers_settings = settings.yaml.providers
    providers: list[WeatherProvider] = []

    weatherstack = providers_settings.weatherstack
    if weatherstack.enabled:
        providers.append(
            WeatherStackAdapter(
                base_url=weatherstack.base_url,
                api_key=settings.env.weatherstack_api_key,
                priority=weatherstack.priority,
                breaker_config=breaker_config,
                fetcher=fetcher,
            )
        )

    openweathermap = providers_settings.openweathermap
    if openweathermap.enabled:
        providers.append(
            OpenWeatherMapAdapter(
                base_url=openweathermap.base_url,
                api_key=settings.env.openweathermap_api_key,
                priority=openweathermap.priority,
                country_code=openweathermap.country_code,
                units=openweathermap.units,
                breaker_config=breaker_config,
                fetcher=fetcher,
            )
        )

    registry = ProviderRegistry(providers)
    LOGGER.info("Weather provider order: %s", ", ".join(registry.names()) or "<none>")
    return registry
