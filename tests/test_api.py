from __future__ import annotations

import pytest
from conftest import ScriptedProvider, provider_error
from fastapi.testclient import TestClient

from weatherproxy.domain.errors import ErrorKind
from weatherproxy.domain.models import WeatherObservation
from weatherproxy.main import create_app
from weatherproxy.registry import ProviderRegistry
from weatherproxy.resilience import CircuitBreaker, CircuitBreakerConfig
from weatherproxy.storage.cache import ResultCache

OBSERVATION = WeatherObservation(wind_speed=20.0, temperature_degrees=29.0)


@pytest.fixture
def client_for(make_settings):
    clients: list[TestClient] = []

    def _client(*providers: ScriptedProvider, cache: ResultCache | None = None) -> TestClient:
        app = create_app(
            settings=make_settings(),
            registry=ProviderRegistry(providers),
            cache=cache if cache is not None else ResultCache(3),
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _client
    for client in clients:
        client.__exit__(None, None, None)


def test_returns_observation_json(client_for) -> None:
    client = client_for(ScriptedProvider("primary", 1, OBSERVATION))

    response = client.get("/v1/weather", params={"city": "Melbourne"})

    assert response.status_code == 200
    assert response.json() == {"wind_speed": 20.0, "temperature_degrees": 29.0}


def test_failover_is_invisible_to_caller(client_for) -> None:
    primary = ScriptedProvider("primary", 1, provider_error(ErrorKind.UPSTREAM_UNAVAILABLE))
    secondary = ScriptedProvider("secondary", 2, OBSERVATION)
    client = client_for(primary, secondary)

    response = client.get("/v1/weather", params={"city": "Melbourne"})

    assert response.status_code == 200
    assert response.json()["temperature_degrees"] == 29.0


@pytest.mark.parametrize(
    ("kind", "status"),
    [
        (ErrorKind.INVALID_INPUT, 400),
        (ErrorKind.UNAUTHORIZED, 401),
        (ErrorKind.RATE_LIMITED, 401),
        (ErrorKind.PROVIDER_UNAVAILABLE, 503),
        (ErrorKind.UNKNOWN_PROVIDER_FAULT, 502),
        (ErrorKind.UPSTREAM_UNAVAILABLE, 503),
    ],
)
def test_error_kinds_map_to_status_codes(client_for, kind, status) -> None:
    client = client_for(ScriptedProvider("primary", 1, provider_error(kind)))

    response = client.get("/v1/weather", params={"city": "Melbourne"})

    body = response.json()
    assert response.status_code == status
    assert body["status"] == status
    assert body["kind"] == (
        ErrorKind.ALL_PROVIDERS_EXHAUSTED.value
        if kind is ErrorKind.UPSTREAM_UNAVAILABLE
        else kind.value
    )
    assert {"timestamp", "error", "message"} <= body.keys()


def test_no_providers_is_service_unavailable(client_for) -> None:
    client = client_for()

    response = client.get("/v1/weather", params={"city": "Melbourne"})

    assert response.status_code == 503
    assert response.json()["kind"] == "no_providers_available"


def test_blank_city_is_bad_request(client_for) -> None:
    primary = ScriptedProvider("primary", 1, OBSERVATION)
    client = client_for(primary)

    response = client.get("/v1/weather", params={"city": "   "})

    assert response.status_code == 400
    assert response.json()["kind"] == "invalid_input"
    assert primary.calls == []


def test_missing_city_parameter_is_bad_request(client_for) -> None:
    client = client_for(ScriptedProvider("primary", 1, OBSERVATION))

    response = client.get("/v1/weather")

    assert response.status_code == 400
    assert response.json()["message"] == "Missing required parameter: city"


def test_cached_value_served_during_outage(client_for) -> None:
    primary = ScriptedProvider(
        "primary", 1, OBSERVATION, provider_error(ErrorKind.UPSTREAM_UNAVAILABLE)
    )
    client = client_for(primary)

    first = client.get("/v1/weather", params={"city": "Melbourne"})
    second = client.get("/v1/weather", params={"city": " melbourne "})

    assert first.status_code == second.status_code == 200
    assert second.json() == first.json()
    assert len(primary.calls) == 2


def test_health_reports_providers_and_cache(client_for) -> None:
    client = client_for(ScriptedProvider("primary", 1, OBSERVATION))
    client.get("/v1/weather", params={"city": "Melbourne"})

    response = client.get("/health")

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "ok"
    assert body["service"] == "weatherproxy"
    assert body["scheduler_running"] is True
    assert body["cache_entries"] == 1
    assert body["providers"] == [{"name": "primary", "priority": 1}]


def test_shutdown_closes_provider_breakers(make_settings) -> None:
    provider = ScriptedProvider("primary", 1, OBSERVATION)
    provider.breaker = CircuitBreaker("primary", CircuitBreakerConfig(call_timeout_seconds=1))
    provider.breaker.call(lambda: None)
    executor = provider.breaker._executor
    app = create_app(settings=make_settings(), registry=ProviderRegistry([provider]), cache=ResultCache(3))

    with TestClient(app) as client:
        assert client.get("/health").json()["providers"][0]["circuit"]["state"] == "closed"

    with pytest.raises(RuntimeError):
        executor.submit(lambda: None)
