from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, field_validator


class WeatherObservation(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    wind_speed: float
    temperature_degrees: float

    @field_validator("wind_speed", "temperature_degrees")
    @classmethod
    def validate_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("weather observation values must be finite numbers")
        return value
