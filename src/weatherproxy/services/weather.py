from __future__ import annotations

import logging
from typing import Optional

from ..domain.errors import ErrorKind, WeatherError, WeatherProviderError, WeatherServiceError
from ..domain.models import WeatherObservation
from ..registry import ProviderRegistry
from ..storage.cache import ResultCache


class WeatherService:
    """Walks the provider registry in priority order for each request.

    Only an UPSTREAM_UNAVAILABLE failure moves on to the next provider; every
    other classified failure ends the walk. Whatever ends the walk, the last
    successful observation for the city is served from the cache when one is
    still available. An empty registry is reported without consulting the cache.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        cache: ResultCache,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self._log = logger or logging.getLogger(self.__class__.__name__)

    # Public API ---------------------------------------------------------
    def get_weather(self, city: str) -> WeatherObservation:
        self._log.info("Fetching weather data for city: %s", city)
        if not isinstance(city, str) or not city.strip():
            raise WeatherServiceError(ErrorKind.INVALID_INPUT, f"Invalid city name: {city!r}")

        if len(self.registry) == 0:
            self._log.error("No weather providers are configured")
            raise WeatherServiceError(ErrorKind.NO_PROVIDERS_AVAILABLE, "No providers available")

        try:
            observation = self._fetch_from_providers(city)
        except WeatherError as exc:
            cached = self.cache.get(city, allow_stale=True)
            if cached is None:
                self._log.error(
                    "Weather lookup for %s failed (%s) with no cached fallback: %s",
                    city,
                    exc.kind.value,
                    exc,
                )
                raise
            self._log.info(
                "Returning cached data for %s after provider failure (%s)", city, exc.kind.value
            )
            return cached

        self.cache.put(city, observation)
        return observation

    # Helpers ------------------------------------------------------------
    def _fetch_from_providers(self, city: str) -> WeatherObservation:
        attempted: list[str] = []
        last_error: WeatherProviderError | None = None

        for provider in self.registry:
            attempted.append(provider.name)
            try:
                return provider.fetch(city)
            except WeatherProviderError as exc:
                self._log.warning(
                    "Failed to fetch weather from %s for %s: %s", provider.name, city, exc
                )
                if not exc.kind.allows_failover:
                    raise
                last_error = exc
                self._log.info("Falling back from %s to the next provider", provider.name)

        raise WeatherServiceError(
            ErrorKind.ALL_PROVIDERS_EXHAUSTED,
            "No more providers available",
            attempted=attempted,
        ) from last_error


__all__ = ["WeatherService"]
