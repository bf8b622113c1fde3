# ABOUTME: Chunked NASA POWER fetcher for daily historical climate observations.
# ABOUTME: Splits the lookback window into small date chunks fetched in bounded concurrent batches.

import asyncio
import logging
from datetime import date, datetime, timedelta

import httpx

from agroclimate.config import Settings
from agroclimate.errors import ProviderError
from agroclimate.models import Coordinate, DateRange, HistoricalRecord, HistoricalSeries
from agroclimate.sentinel import FieldKind, validate

logger = logging.getLogger(__name__)

PROVIDER = "nasa_power"
POWER_URL = "https://power.larc.nasa.gov/api/temporal/daily/point"

# Reduced, agriculturally essential parameter set: temperature at 2m,
# corrected precipitation, and surface soil wetness.
POWER_PARAMS = ("T2M", "PRECTOTCORR", "GWETTOP")
POWER_COMMUNITY = "AG"
POWER_DATE_FORMAT = "%Y%m%d"


def historical_window(today: date, settings: Settings) -> DateRange:
    """The requested range ends a few days before today to stay clear of the provider's reporting lag."""
    end = today - timedelta(days=settings.historical_lag_days)
    start = end - timedelta(days=settings.historical_lookback_days)
    return DateRange(start=start, end=end)


def chunk_date_range(start: date, end: date, days: int) -> list[DateRange]:
    """Split [start, end] into consecutive inclusive windows of at most `days` days."""
    if days < 1:
        raise ValueError("chunk size must be at least one day")
    chunks = []
    current = start
    while current <= end:
        chunk_end = min(end, current + timedelta(days=days - 1))
        chunks.append(DateRange(start=current, end=chunk_end))
        current = chunk_end + timedelta(days=1)
    return chunks


def estimate_solar_radiation(temperature: float | None) -> float | None:
    """Rough MJ/m²/day estimate derived from air temperature; the reduced request omits radiation."""
    if temperature is None:
        return None
    return validate(max(0.0, (temperature + 10) * 0.5), FieldKind.SOLAR_RADIATION)


def parse_power_data(data: dict) -> list[HistoricalRecord]:
    """Convert a POWER parameter -> date -> value block into validated daily records.

    Days where every field is missing or a sentinel are dropped.
    """
    try:
        block = data["properties"]["parameter"]
    except (KeyError, TypeError) as e:
        raise ProviderError(PROVIDER, "response has no properties.parameter block") from e
    if not isinstance(block, dict):
        raise ProviderError(PROVIDER, "parameter block is not an object")

    day_keys: set[str] = set()
    for column in block.values():
        if isinstance(column, dict):
            day_keys.update(column.keys())

    records = []
    for key in sorted(day_keys):
        try:
            day = datetime.strptime(key, POWER_DATE_FORMAT).date()
        except ValueError:
            logger.debug("Skipping unparseable POWER date key %r", key)
            continue

        temperature = validate(_value(block, "T2M", key), FieldKind.TEMPERATURE)
        precipitation = validate(_value(block, "PRECTOTCORR", key), FieldKind.PRECIPITATION)
        soil_moisture = validate(_value(block, "GWETTOP", key), FieldKind.SOIL_MOISTURE)

        if temperature is None and precipitation is None and soil_moisture is None:
            logger.debug("Skipping %s: all values filtered out", key)
            continue

        records.append(
            HistoricalRecord(
                date=day,
                temperature_2m=temperature,
                precipitation=precipitation,
                soil_moisture=soil_moisture,
                solar_radiation_estimate=estimate_solar_radiation(temperature),
            )
        )
    return records


async def fetch_chunk(
    client: httpx.AsyncClient,
    coord: Coordinate,
    chunk: DateRange,
    timeout: float,
) -> list[HistoricalRecord]:
    """Fetch and parse one date chunk. Any failure is reported as ProviderError."""
    start = chunk.start.strftime(POWER_DATE_FORMAT)
    end = chunk.end.strftime(POWER_DATE_FORMAT)
    try:
        resp = await client.get(
            POWER_URL,
            params={
                "parameters": ",".join(POWER_PARAMS),
                "community": POWER_COMMUNITY,
                "latitude": coord.rounded_latitude,
                "longitude": coord.rounded_longitude,
                "start": start,
                "end": end,
                "format": "JSON",
            },
            timeout=timeout,
        )
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPError as e:
        raise ProviderError(PROVIDER, f"chunk {start}-{end} failed: {e}") from e
    except ValueError as e:
        raise ProviderError(PROVIDER, f"chunk {start}-{end} returned invalid JSON") from e
    return parse_power_data(data)


async def fetch_historical_series(
    client: httpx.AsyncClient,
    coord: Coordinate,
    settings: Settings,
    today: date,
) -> HistoricalSeries:
    """Fetch the lookback window chunk by chunk, a few chunks at a time.

    Failed chunks are logged and skipped. The series is capped at
    settings.historical_max_records and returned sorted by date. Raises
    ProviderError only when no chunk produced any record.
    """
    window = historical_window(today, settings)
    chunks = chunk_date_range(window.start, window.end, settings.historical_chunk_days)
    batch_size = max(1, settings.historical_batch_size)
    cap = settings.historical_max_records

    logger.info(
        "Fetching POWER history for %s from %s to %s in %d chunks",
        coord.cache_key,
        window.start,
        window.end,
        len(chunks),
    )

    records: list[HistoricalRecord] = []
    requested = 0
    failed = 0
    for i in range(0, len(chunks), batch_size):
        batch = chunks[i : i + batch_size]
        requested += len(batch)
        results = await asyncio.gather(
            *(fetch_chunk(client, coord, chunk, settings.historical_timeout_seconds) for chunk in batch),
            return_exceptions=True,
        )
        for chunk, result in zip(batch, results):
            if isinstance(result, ProviderError):
                failed += 1
                logger.warning("Skipping POWER chunk %s-%s: %s", chunk.start, chunk.end, result)
                continue
            if isinstance(result, BaseException):
                raise result
            records.extend(result[: max(0, cap - len(records))])

        if len(records) >= cap:
            logger.info("Reached %d POWER records, not requesting further chunks", cap)
            break
        if i + batch_size < len(chunks) and settings.historical_batch_delay_seconds > 0:
            await asyncio.sleep(settings.historical_batch_delay_seconds)

    records.sort(key=lambda r: r.date)
    if not records:
        raise ProviderError(PROVIDER, "no historical data available for this location")

    logger.info("Fetched %d POWER records (%d of %d chunks failed)", len(records), failed, requested)
    return HistoricalSeries(
        records=records,
        requested_range=window,
        chunks_requested=requested,
        chunks_failed=failed,
    )


async def fetch_historical(
    client: httpx.AsyncClient,
    coord: Coordinate,
    settings: Settings,
    today: date,
) -> list[HistoricalRecord]:
    """Validated, date-sorted daily records for the configured lookback window."""
    series = await fetch_historical_series(client, coord, settings, today)
    return series.records


def _value(block: dict, parameter: str, key: str):
    """Safely get a parameter's value for a date key, returning None if missing."""
    column = block.get(parameter)
    if not isinstance(column, dict):
        return None
    return column.get(key)
