from __future__ import annotations

from typing import Any, Literal
from urllib.parse import urlencode

from ...domain.models import WeatherObservation
from .base import CircuitBreakingAdapter
from .classifier import classify_flat_error

OPENWEATHERMAP_BASE_URL = "https://api.openweathermap.org/data/2.5"
DEFAULT_COUNTRY_CODE = "AU"


def _error_detail(payload: dict[str, Any]) -> str | None:
    """OpenWeatherMap reports failures as a non-200 `cod` or as an `error` object."""
    error = payload.get("error")
    if isinstance(error, dict):
        info = error.get("info") or error.get("message") or error.get("type")
        return str(info) if info else "error object without details"
    if error is not None:
        return str(error)

    cod = payload.get("cod")
    if cod is None or str(cod) == "200":
        return None
    message = payload.get("message")
    return f"cod {cod}: {message}" if message else f"cod {cod}"


class OpenWeatherMapAdapter(CircuitBreakingAdapter):
    provider_name = "OpenWeatherMap"
    default_priority = 2

    def __init__(
        self,
        *,
        country_code: str = DEFAULT_COUNTRY_CODE,
        units: Literal["metric", "imperial", "standard"] = "metric",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._country_code = country_code
        self._units = units

    def build_url(self, city: str) -> str:
        query = f"{city},{self._country_code}" if self._country_code else city
        params = {"q": query, "appid": self._api_key, "units": self._units}
        return f"{self._base_url}/weather?{urlencode(params)}"

    def parse_payload(self, payload: dict[str, Any]) -> WeatherObservation:
        detail = _error_detail(payload)
        if detail is not None:
            classification = classify_flat_error(detail)
            self._log.warning("OpenWeatherMap returned an error: %s", detail)
            raise self.error(classification.kind, classification.message, info=detail)

        main = payload.get("main")
        wind = payload.get("wind")
        if not isinstance(main, dict):
            raise self.malformed("missing current weather data")
        if not isinstance(wind, dict):
            raise self.malformed("missing wind data")

        return WeatherObservation(
            wind_speed=self.coerce_float(wind.get("speed"), field_name="wind.speed"),
            temperature_degrees=self.coerce_float(main.get("temp"), field_name="main.temp"),
        )
