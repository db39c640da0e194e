from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .domain.errors import ErrorKind, WeatherError
from .domain.models import WeatherObservation
from .registry import ProviderRegistry, build_registry
from .scheduler import build_scheduler
from .services.weather import WeatherService
from .settings import AppSettings, load_settings, validate_api_keys
from .storage.cache import ResultCache

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

ERROR_STATUS_CODES = {
    ErrorKind.INVALID_INPUT: HTTPStatus.BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: HTTPStatus.UNAUTHORIZED,
    ErrorKind.RATE_LIMITED: HTTPStatus.UNAUTHORIZED,
    ErrorKind.UPSTREAM_UNAVAILABLE: HTTPStatus.SERVICE_UNAVAILABLE,
    ErrorKind.PROVIDER_UNAVAILABLE: HTTPStatus.SERVICE_UNAVAILABLE,
    ErrorKind.UNKNOWN_PROVIDER_FAULT: HTTPStatus.BAD_GATEWAY,
    ErrorKind.NO_PROVIDERS_AVAILABLE: HTTPStatus.SERVICE_UNAVAILABLE,
    ErrorKind.ALL_PROVIDERS_EXHAUSTED: HTTPStatus.SERVICE_UNAVAILABLE,
}


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


def _error_response(status: HTTPStatus, message: str, *, kind: ErrorKind | None = None) -> JSONResponse:
    body: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": status.value,
        "error": status.phrase,
        "message": message,
    }
    if kind is not None:
        body["kind"] = kind.value
    return JSONResponse(body, status_code=status.value)


def _get_service(request: Request) -> WeatherService:
    return request.app.state.weather_service


def create_app(
    *,
    settings: AppSettings | None = None,
    registry: ProviderRegistry | None = None,
    cache: ResultCache | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(application: FastAPI):
        app_settings = settings or load_settings()
        configure_logging(app_settings.env.weatherproxy_log_level)
        if registry is None:
            validate_api_keys(app_settings)
        provider_registry = registry if registry is not None else build_registry(app_settings)
        result_cache = cache if cache is not None else ResultCache(
            app_settings.yaml.cache.ttl_seconds,
            stale_grace_seconds=app_settings.yaml.cache.stale_grace_seconds,
        )
        scheduler = build_scheduler(app_settings, result_cache)
        scheduler.start()

        application.state.settings = app_settings
        application.state.registry = provider_registry
        application.state.cache = result_cache
        application.state.weather_service = WeatherService(provider_registry, result_cache)
        application.state.scheduler = scheduler
        application.state.started_at_utc = datetime.now(timezone.utc)

        try:
            yield
        finally:
            if scheduler.running:
                scheduler.shutdown(wait=False)
            for provider in provider_registry:
                breaker = getattr(provider, "breaker", None)
                if breaker is not None:
                    breaker.close()

    application = FastAPI(title="Weather Proxy", version="0.1.0", lifespan=lifespan)

    @application.exception_handler(WeatherError)
    async def weather_error_handler(request: Request, exc: WeatherError) -> JSONResponse:
        status = ERROR_STATUS_CODES.get(exc.kind, HTTPStatus.INTERNAL_SERVER_ERROR)
        LOGGER.error("Weather request failed (%s): %s", exc.kind.value, exc)
        return _error_response(status, exc.message, kind=exc.kind)

    @application.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        missing = [
            str(error["loc"][-1])
            for error in exc.errors()
            if error.get("type") == "missing" and error.get("loc")
        ]
        if missing:
            message = f"Missing required parameter: {', '.join(missing)}"
        else:
            message = "Validation error"
        LOGGER.error("Request validation failed: %s", exc.errors())
        return _error_response(HTTPStatus.BAD_REQUEST, message, kind=ErrorKind.INVALID_INPUT)

    @application.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("Unexpected error while handling %s", request.url.path)
        return _error_response(HTTPStatus.INTERNAL_SERVER_ERROR, "An unexpected error occurred")

    # Sync handler: FastAPI runs it on its worker threadpool, one walk per request.
    @application.get("/v1/weather", response_model=WeatherObservation)
    def get_weather(request: Request, city: str = Query(...)) -> WeatherObservation:
        LOGGER.info("Received request for weather data for city: %s", city)
        observation = _get_service(request).get_weather(city)
        LOGGER.info("Successfully returned weather data for city: %s", city)
        return observation

    @application.get("/health", response_class=JSONResponse)
    async def health(request: Request) -> JSONResponse:
        state = request.app.state
        providers = []
        for provider in state.registry:
            entry: dict[str, Any] = {"name": provider.name, "priority": provider.priority}
            breaker = getattr(provider, "breaker", None)
            if breaker is not None:
                snapshot = breaker.snapshot()
                entry["circuit"] = {
                    "state": snapshot.state.value,
                    "buffered_calls": snapshot.buffered_calls,
                    "failed_calls": snapshot.failed_calls,
                    "failure_rate_percent": snapshot.failure_rate_percent,
                }
            providers.append(entry)

        return JSONResponse(
            {
                "status": "ok" if providers else "degraded",
                "service": "weatherproxy",
                "environment": state.settings.env.weatherproxy_env,
                "scheduler_running": state.scheduler.running,
                "cache_entries": len(state.cache),
                "providers": providers,
                "started_at_utc": state.started_at_utc.isoformat(),
                "timestamp_utc": datetime.now(timezone.utc).isoformat(),
            }
        )

    return application


app = create_app()
