from __future__ import annotations

from enum import Enum
from typing import Sequence


class ErrorKind(str, Enum):
    """Normalized failure taxonomy shared by every provider."""

    INVALID_INPUT = "invalid_input"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    UNKNOWN_PROVIDER_FAULT = "unknown_provider_fault"
    NO_PROVIDERS_AVAILABLE = "no_providers_available"
    ALL_PROVIDERS_EXHAUSTED = "all_providers_exhausted"

    @property
    def allows_failover(self) -> bool:
        return self is ErrorKind.UPSTREAM_UNAVAILABLE


class WeatherError(RuntimeError):
    """Base class for every failure that carries a normalized kind."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class WeatherProviderError(WeatherError):
    """Raised by a provider adapter once its failure has been classified."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        provider: str,
        code: int | None = None,
        error_type: str | None = None,
        info: str | None = None,
    ) -> None:
        super().__init__(kind, message)
        self.provider = provider
        self.code = code
        self.error_type = error_type
        self.info = info

    def __str__(self) -> str:
        details = [f"{self.provider}: {self.message}"]
        if self.code is not None:
            details.append(f"code={self.code}")
        if self.error_type:
            details.append(f"type={self.error_type}")
        if self.info and self.info != self.message:
            details.append(f"info={self.info}")
        return " ".join(details)


class WeatherServiceError(WeatherError):
    """Raised by the orchestrator for input and provider-chain level failures."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        attempted: Sequence[str] = (),
    ) -> None:
        super().__init__(kind, message)
        self.attempted = tuple(attempted)
