"""Weather lookup schemas."""

from pydantic import BaseModel, ConfigDict


class DataRequest(BaseModel):
    """City and date the model asked for, as written in its sentinel line."""

    model_config = ConfigDict(frozen=True)

    city: str
    date: str


class GeocodingResult(BaseModel):
    """Best geocoding match for a city name."""

    model_config = ConfigDict(frozen=True)

    name: str
    country: str = ""
    latitude: float
    longitude: float


class WeatherForecast(BaseModel):
    """Daily aggregates for one city on one date."""

    model_config = ConfigDict(frozen=True)

    city: str
    country: str
    date: str
    temp_max: float
    temp_min: float
    temp_avg: float
    weather_code: int
    lat: float
    lon: float
