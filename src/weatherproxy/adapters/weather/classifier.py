"""Map provider-specific error payloads onto the shared ErrorKind taxonomy."""

from __future__ import annotations

from dataclasses import dataclass

from ...domain.errors import ErrorKind

INVALID_ACCESS_KEY_TYPE = "invalid_access_key"


@dataclass(frozen=True, slots=True)
class Classification:
    kind: ErrorKind
    message: str


@dataclass(frozen=True, slots=True)
class _Rule:
    kind: ErrorKind
    message: str
    error_type: str | None = None


# Rules for one code are checked in order; a rule without error_type matches any type.
WEATHERSTACK_ERROR_RULES: dict[int, tuple[_Rule, ...]] = {
    101: (
        _Rule(ErrorKind.UNAUTHORIZED, "Invalid API access key provided", INVALID_ACCESS_KEY_TYPE),
        _Rule(ErrorKind.UNAUTHORIZED, "Missing API access key"),
    ),
    104: (_Rule(ErrorKind.RATE_LIMITED, "usage limit reached"),),
    601: (_Rule(ErrorKind.INVALID_INPUT, "Missing or invalid location query"),),
    615: (_Rule(ErrorKind.UPSTREAM_UNAVAILABLE, "External Service Down error: Request failed"),),
}


def _unknown(info: str | None) -> Classification:
    detail = info or "no error details supplied"
    return Classification(ErrorKind.UNKNOWN_PROVIDER_FAULT, f"Weather service error: {detail}")


def classify_weatherstack_error(
    code: int | None,
    error_type: str | None = None,
    info: str | None = None,
) -> Classification:
    if code is None:
        return _unknown(info)
    for rule in WEATHERSTACK_ERROR_RULES.get(code, ()):
        if rule.error_type is None or rule.error_type == error_type:
            return Classification(rule.kind, rule.message)
    return _unknown(info)


def classify_flat_error(info: str | None = None) -> Classification:
    """Classify a failure from an upstream that never supplies usable codes."""
    return _unknown(info)
