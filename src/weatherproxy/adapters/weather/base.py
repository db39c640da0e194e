from __future__ import annotations

import json
import logging
import math
from http.client import HTTPException
from typing import Any, Callable, ClassVar, Protocol
from urllib.error import HTTPError
from urllib.request import Request, urlopen

from ...domain.errors import ErrorKind, WeatherProviderError
from ...domain.models import WeatherObservation
from ...resilience import CircuitBreaker, CircuitBreakerConfig

DEFAULT_TIMEOUT_SECONDS = 10

JsonFetcher = Callable[[str], dict[str, Any]]


class UpstreamTransportError(RuntimeError):
    """Raised when an upstream could not be reached or returned an unreadable body."""


class WeatherProvider(Protocol):
    name: str
    priority: int

    def fetch(self, city: str) -> WeatherObservation:
        """Fetch the current observation for a city or raise WeatherProviderError."""


def fetch_json(url: str) -> dict[str, Any]:
    request = Request(url, headers={"User-Agent": "weatherproxy/0.1", "Accept": "application/json"})
    try:
        with urlopen(request, timeout=DEFAULT_TIMEOUT_SECONDS) as response:
            body = response.read()
    except HTTPError as exc:
        return _decode_error_body(exc)
    # URLError, TimeoutError and dropped connections are all OSError subclasses;
    # truncated bodies surface as http.client.HTTPException.
    except (OSError, HTTPException) as exc:
        raise UpstreamTransportError(f"Request failed: {exc}") from exc

    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise UpstreamTransportError("Response body was not valid JSON") from exc
    if not isinstance(payload, dict):
        raise UpstreamTransportError("Unexpected response shape")
    return payload


def _decode_error_body(exc: HTTPError) -> dict[str, Any]:
    # Error statuses frequently carry a JSON error document worth classifying.
    try:
        body = exc.read()
    except (OSError, HTTPException) as read_exc:
        raise UpstreamTransportError(f"HTTP {exc.code}") from read_exc
    if not body:
        raise UpstreamTransportError(f"HTTP {exc.code}") from exc
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as decode_exc:
        raise UpstreamTransportError(f"HTTP {exc.code}") from decode_exc
    if not isinstance(payload, dict):
        raise UpstreamTransportError(f"HTTP {exc.code}") from exc
    return payload


class CircuitBreakingAdapter:
    """Shared plumbing: URL building and parsing happen inside the provider's breaker."""

    provider_name: ClassVar[str]
    default_priority: ClassVar[int]

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        priority: int | None = None,
        breaker: CircuitBreaker | None = None,
        breaker_config: CircuitBreakerConfig | None = None,
        fetcher: JsonFetcher | None = None,
    ) -> None:
        self.name = self.provider_name
        self.priority = self.default_priority if priority is None else priority
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._fetch_json = fetcher or fetch_json
        self.breaker = breaker or CircuitBreaker(self.provider_name.lower(), breaker_config)
        self._log = logging.getLogger(self.__class__.__name__)

    def fetch(self, city: str) -> WeatherObservation:
        observation = self.breaker.call(self._fetch_uncircuited, city)
        self._log.info("Successfully fetched data from %s", self.name)
        return observation

    def build_url(self, city: str) -> str:
        raise NotImplementedError

    def parse_payload(self, payload: dict[str, Any]) -> WeatherObservation:
        raise NotImplementedError

    def _fetch_uncircuited(self, city: str) -> WeatherObservation:
        url = self.build_url(city)
        try:
            payload = self._fetch_json(url)
        except UpstreamTransportError as exc:
            raise self.error(
                ErrorKind.UNKNOWN_PROVIDER_FAULT,
                f"Weather service error: {exc}",
                info=str(exc),
            ) from exc
        return self.parse_payload(payload)

    def error(
        self,
        kind: ErrorKind,
        message: str,
        *,
        code: int | None = None,
        error_type: str | None = None,
        info: str | None = None,
    ) -> WeatherProviderError:
        return WeatherProviderError(
            kind,
            message,
            provider=self.name,
            code=code,
            error_type=error_type,
            info=info,
        )

    def malformed(self, detail: str) -> WeatherProviderError:
        return self.error(
            ErrorKind.UNKNOWN_PROVIDER_FAULT,
            f"Invalid response from {self.name}: {detail}",
            info=detail,
        )

    def coerce_float(self, value: Any, *, field_name: str) -> float:
        if isinstance(value, bool):
            raise self.malformed(f"invalid numeric value for {field_name}")
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise self.malformed(f"invalid numeric value for {field_name}") from exc
        if not math.isfinite(number):
            raise self.malformed(f"invalid numeric value for {field_name}")
        return number
