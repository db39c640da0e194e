from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

from ...domain.models import WeatherObservation
from .base import CircuitBreakingAdapter
from .classifier import classify_weatherstack_error

WEATHERSTACK_BASE_URL = "http://api.weatherstack.com"


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class WeatherStackAdapter(CircuitBreakingAdapter):
    provider_name = "WeatherStack"
    default_priority = 1

    def build_url(self, city: str) -> str:
        params = {"access_key": self._api_key, "query": city}
        return f"{self._base_url}/current?{urlencode(params)}"

    def parse_payload(self, payload: dict[str, Any]) -> WeatherObservation:
        error = payload.get("error")
        if error is not None:
            raise self._classified_error(error)

        current = payload.get("current")
        if not isinstance(current, dict):
            raise self.malformed("missing current weather data")

        return WeatherObservation(
            wind_speed=self.coerce_float(current.get("wind_speed"), field_name="current.wind_speed"),
            temperature_degrees=self.coerce_float(
                current.get("temperature"), field_name="current.temperature"
            ),
        )

    def _classified_error(self, error: Any):
        if not isinstance(error, dict):
            error = {}
        code = _optional_int(error.get("code"))
        error_type = _optional_text(error.get("type"))
        info = _optional_text(error.get("info"))
        classification = classify_weatherstack_error(code, error_type, info)
        self._log.warning(
            "WeatherStack returned error code=%s type=%s: %s", code, error_type, info
        )
        return self.error(
            classification.kind,
            classification.message,
            code=code,
            error_type=error_type,
            info=info,
        )
