from .base import CircuitBreakingAdapter, UpstreamTransportError, WeatherProvider, fetch_json
from .openweathermap import OpenWeatherMapAdapter
from .weatherstack import WeatherStackAdapter

__all__ = [
    "CircuitBreakingAdapter",
    "OpenWeatherMapAdapter",
    "UpstreamTransportError",
    "WeatherProvider",
    "WeatherStackAdapter",
    "fetch_json",
]
