# ABOUTME: Open-Meteo seasonal (ECMWF SEAS5) fetcher for the six-month outlook.
# ABOUTME: Aggregates the provider's daily series into monthly anomaly records.

import calendar
import logging
from datetime import date, timedelta

import httpx
import pandas as pd

from agroclimate.config import Settings
from agroclimate.errors import ProviderError
from agroclimate.models import Coordinate, SeasonalForecastRecord
from agroclimate.sentinel import FieldKind, validate

logger = logging.getLogger(__name__)

PROVIDER = "open_meteo_seasonal"
SEASONAL_URL = "https://seasonal-api.open-meteo.com/v1/seasonal"

DAILY_PARAMS = "temperature_2m_mean,precipitation_sum,soil_moisture_0_to_7cm_mean"

# Climatological reference that anomalies are measured against.
REFERENCE_TEMPERATURE_C = 27.5
REFERENCE_PRECIPITATION_MM = 50.0

# Typical skill the seasonal model is credited with when a month is complete.
TYPICAL_CONFIDENCE = 75.0


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def forecast_window(today: date, months: int) -> tuple[date, date]:
    start = today + timedelta(days=1)
    return start, add_months(start, months)


async def fetch_seasonal(
    client: httpx.AsyncClient,
    coord: Coordinate,
    settings: Settings,
    today: date,
) -> list[SeasonalForecastRecord]:
    """Fetch the seasonal forecast starting tomorrow and aggregate it into monthly records."""
    start, end = forecast_window(today, settings.seasonal_months)
    logger.info("Fetching seasonal forecast for %s from %s to %s", coord.cache_key, start, end)
    try:
        resp = await client.get(
            SEASONAL_URL,
            params={
                "latitude": coord.rounded_latitude,
                "longitude": coord.rounded_longitude,
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "daily": DAILY_PARAMS,
            },
            timeout=settings.seasonal_timeout_seconds,
        )
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPError as e:
        raise ProviderError(PROVIDER, f"request failed: {e}") from e
    except ValueError as e:
        raise ProviderError(PROVIDER, "response was not valid JSON") from e

    daily = data.get("daily") if isinstance(data, dict) else None
    if not isinstance(daily, dict) or not daily.get("time"):
        raise ProviderError(PROVIDER, "response has no daily.time series")

    records = parse_seasonal_daily(daily, forecast_date=today, months=settings.seasonal_months)
    if not records:
        raise ProviderError(PROVIDER, "no usable seasonal forecast values")
    logger.info("Fetched %d monthly seasonal records", len(records))
    return records


# Provider column -> (frame column, validation kind).
DAILY_COLUMNS = {
    "temperature_2m_mean": ("temperature", FieldKind.TEMPERATURE),
    "precipitation_sum": ("precipitation", FieldKind.PRECIPITATION),
    "soil_moisture_0_to_7cm_mean": ("soil_surface", FieldKind.SOIL_MOISTURE),
    "soil_moisture_7_to_28cm_mean": ("soil_root_zone", FieldKind.SOIL_MOISTURE),
    "soil_moisture_28_to_100cm_mean": ("soil_deep", FieldKind.SOIL_MOISTURE),
    "et0_fao_evapotranspiration": ("evapotranspiration", FieldKind.EVAPOTRANSPIRATION),
}


def parse_seasonal_daily(raw: dict, forecast_date: date, months: int = 6) -> list[SeasonalForecastRecord]:
    """Group the column-oriented daily series by calendar month and compute monthly anomalies.

    A month is kept if any of its fields has at least one valid value.
    """
    frame = daily_frame(raw)
    records = []
    for period, month in frame.groupby(frame.index.to_period("M")):
        if len(records) >= months:
            break
        record = _monthly_record(month, period, forecast_date)
        if record is not None:
            records.append(record)
    return records


def daily_frame(raw: dict) -> pd.DataFrame:
    """Validated daily values indexed by date. Sentinels and implausible values become NaN."""
    times = raw.get("time") or []
    days = pd.to_datetime(pd.Series([str(t)[:10] for t in times], dtype=object), format="%Y-%m-%d", errors="coerce")
    frame = pd.DataFrame(
        {
            column: [validate(_get_at(raw, key, i), kind) for i in range(len(times))]
            for key, (column, kind) in DAILY_COLUMNS.items()
        },
        index=pd.DatetimeIndex(days),
        dtype=float,
    )
    unparseable = int(frame.index.isna().sum())
    if unparseable:
        logger.debug("Skipping %d unparseable seasonal dates", unparseable)
    return frame[frame.index.notna()]


def _monthly_record(month: pd.DataFrame, period: pd.Period, forecast_date: date) -> SeasonalForecastRecord | None:
    valid = month.count()
    if not valid.any():
        return None

    temperature_anomaly = None
    if valid["temperature"]:
        temperature_anomaly = round(float(month["temperature"].mean()) - REFERENCE_TEMPERATURE_C, 2)

    precipitation_anomaly = None
    if valid["precipitation"]:
        monthly_total = float(month["precipitation"].mean()) * period.days_in_month
        precipitation_anomaly = round(
            (monthly_total - REFERENCE_PRECIPITATION_MM) / REFERENCE_PRECIPITATION_MM * 100, 1
        )

    completeness = float(valid["temperature"] + valid["precipitation"]) / (2 * len(month))
    return SeasonalForecastRecord(
        forecast_date=forecast_date,
        valid_date=period.start_time.date(),
        temperature_anomaly=temperature_anomaly,
        precipitation_anomaly=precipitation_anomaly,
        soil_moisture_0_to_7cm=_mean(month["soil_surface"]),
        soil_moisture_7_to_28cm=_mean(month["soil_root_zone"]),
        soil_moisture_28_to_100cm=_mean(month["soil_deep"]),
        evapotranspiration=_mean(month["evapotranspiration"]),
        confidence=round(TYPICAL_CONFIDENCE * completeness, 1),
        completeness=round(completeness, 3),
    )


def _mean(values: pd.Series) -> float | None:
    return round(float(values.mean()), 4) if values.notna().any() else None


def _get_at(data: dict, key: str, index: int):
    """Safely get value at index from a column array, returning None if missing."""
    col = data.get(key)
    if col is None or index >= len(col):
        return None
    return col[index]
