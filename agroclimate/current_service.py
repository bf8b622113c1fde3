# ABOUTME: OpenWeatherMap current-conditions fetcher.
# ABOUTME: Single call, no retries; a failure only means current conditions are unavailable.

import logging
from datetime import datetime

import httpx

from agroclimate.config import Settings
from agroclimate.errors import ConfigurationError, ProviderError
from agroclimate.models import Coordinate, CurrentConditions
from agroclimate.sentinel import FieldKind, validate

logger = logging.getLogger(__name__)

PROVIDER = "openweather"
CURRENT_URL = "https://api.openweathermap.org/data/2.5/weather"
DEFAULT_VISIBILITY_M = 10000


async def fetch_current(
    client: httpx.AsyncClient,
    coord: Coordinate,
    settings: Settings,
    now: datetime,
) -> CurrentConditions:
    """Retrieve current weather in metric units."""
    if not settings.openweather_api_key:
        raise ConfigurationError("OpenWeather API key not configured")

    try:
        resp = await client.get(
            CURRENT_URL,
            params={
                "lat": coord.rounded_latitude,
                "lon": coord.rounded_longitude,
                "appid": settings.openweather_api_key,
                "units": "metric",
            },
            timeout=settings.current_timeout_seconds,
        )
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPError as e:
        # The request URL carries the API key, so only the status is reported.
        status = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else type(e).__name__
        raise ProviderError(PROVIDER, f"current weather failed ({status})") from e
    except ValueError as e:
        raise ProviderError(PROVIDER, "response was not valid JSON") from e

    return parse_current(data, now)


def parse_current(data: dict, now: datetime) -> CurrentConditions:
    """Map the flat current-weather object onto CurrentConditions."""
    try:
        main = data["main"]
        temperature = validate(main["temp"], FieldKind.TEMPERATURE)
        humidity = validate(main["humidity"], FieldKind.HUMIDITY)
        pressure = float(main["pressure"])
        wind_speed = float(data["wind"]["speed"])
        description = str(data["weather"][0]["description"])
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ProviderError(PROVIDER, f"malformed current weather payload: {e!r}") from e

    if temperature is None or humidity is None:
        raise ProviderError(PROVIDER, "current weather values outside plausible range")

    return CurrentConditions(
        timestamp=now,
        temperature=temperature,
        humidity=humidity,
        pressure=pressure,
        wind_speed=wind_speed,
        description=description,
        visibility=float(data.get("visibility") or DEFAULT_VISIBILITY_M),
        # UV index needs a separate One Call request.
        uv_index=0.0,
    )
