"""Weather provider configuration."""

from pydantic import BaseModel


class WeatherConfig(BaseModel, frozen=True):
    """Geocoding and forecast endpoint settings."""

    geocoding_url: str
    forecast_url: str
    timeout_seconds: float
    language: str
