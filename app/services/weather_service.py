"""Weather lookup against the Open-Meteo geocoding and forecast APIs."""

from typing import Any

import httpx
import structlog

from app.core.exceptions import CityNotFoundError, NoDataError, UpstreamError
from app.core.settings import WeatherConfig
from app.schemas.weather_schema import GeocodingResult, WeatherForecast

logger = structlog.get_logger()

DAILY_FIELDS = "temperature_2m_max,temperature_2m_min,weathercode"


class WeatherLookupClient:
    """Resolves a city to coordinates and fetches a single-day forecast.

    Stateless; the HTTP client and its timeouts are injected so one
    connection pool can be shared for the lifetime of the process.
    """

    def __init__(self, http_client: httpx.AsyncClient, config: WeatherConfig) -> None:
        self._http = http_client
        self._config = config

    async def forecast(self, city: str, iso_date: str) -> WeatherForecast:
        """Return daily aggregates for ``city`` on ``iso_date`` (YYYY-MM-DD).

        Raises:
            CityNotFoundError: the city could not be geocoded.
            NoDataError: the provider has no forecast for that date.
            UpstreamError: transport or HTTP failure.
        """
        location = await self.geocode(city)
        logger.info(
            "City geocoded",
            city=location.name,
            country=location.country,
            latitude=location.latitude,
            longitude=location.longitude,
        )

        data = await self._get_json(
            self._config.forecast_url,
            {
                "latitude": location.latitude,
                "longitude": location.longitude,
                "daily": DAILY_FIELDS,
                "timezone": "auto",
                "start_date": iso_date,
                "end_date": iso_date,
            },
        )
        daily = data.get("daily") or {}
        times = daily.get("time") or []
        if not times or not times[0]:
            logger.warning("No forecast for date", city=location.name, date=iso_date)
            raise NoDataError(iso_date)

        try:
            temp_max = float(daily["temperature_2m_max"][0])
            temp_min = float(daily["temperature_2m_min"][0])
            weather_code = int(daily["weathercode"][0])
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            logger.warning(
                "Incomplete forecast for date", city=location.name, date=iso_date
            )
            raise NoDataError(iso_date) from exc

        forecast = WeatherForecast(
            city=location.name,
            country=location.country,
            date=str(times[0]),
            temp_max=temp_max,
            temp_min=temp_min,
            temp_avg=round((temp_max + temp_min) / 2, 1),
            weather_code=weather_code,
            lat=location.latitude,
            lon=location.longitude,
        )
        logger.info(
            "Forecast retrieved",
            city=forecast.city,
            date=forecast.date,
            temp_avg=forecast.temp_avg,
            weather_code=forecast.weather_code,
        )
        return forecast

    async def geocode(self, city: str) -> GeocodingResult:
        """Resolve a city name to its first (best) geocoding match."""
        data = await self._get_json(
            self._config.geocoding_url,
            {
                "name": city,
                "count": 1,
                "language": self._config.language,
                "format": "json",
            },
        )
        results = data.get("results") or []
        if not results:
            logger.info("City not found", city=city)
            raise CityNotFoundError(city)
        try:
            return GeocodingResult.model_validate(results[0])
        except ValueError as exc:
            raise UpstreamError(f"Malformed geocoding result for '{city}'") from exc

    async def _get_json(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http.get(
                url, params=params, timeout=self._config.timeout_seconds
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Weather provider request failed",
                url=url,
                status_code=exc.response.status_code,
            )
            raise UpstreamError(
                f"Weather provider returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Weather provider unreachable", url=url, error=str(exc))
            raise UpstreamError(f"Weather provider unreachable: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError("Weather provider returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise UpstreamError("Weather provider returned an unexpected payload")
        return data
