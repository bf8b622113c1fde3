# ABOUTME: Contract tests for the chunked NASA POWER historical fetcher.
# ABOUTME: Validates chunking, sentinel filtering, bounded batches, and partial-failure bookkeeping.

import asyncio
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock

import httpx
import pytest
from conftest import power_payload

from agroclimate.errors import ProviderError
from agroclimate.historical_service import (
    POWER_URL,
    chunk_date_range,
    fetch_chunk,
    fetch_historical,
    fetch_historical_series,
    historical_window,
    parse_power_data,
)
from agroclimate.models import Coordinate, DateRange

TODAY = date(2025, 6, 15)
COORD = Coordinate(latitude=20.5937, longitude=78.9629)


def _response(json_data, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code=status_code, json=json_data, request=httpx.Request("GET", POWER_URL))


def _chunk_start(params: dict) -> date:
    return datetime.strptime(params["start"], "%Y%m%d").date()


def _chunk_days(params: dict) -> int:
    end = datetime.strptime(params["end"], "%Y%m%d").date()
    return (end - _chunk_start(params)).days + 1


class TestChunking:
    def test_window_ends_before_reporting_lag(self, settings):
        """The requested window ends historical_lag_days before today.

        Implementation: Computes the window for a fixed date with default settings.
        Passing implies: Requests never ask POWER for dates it has not published yet.
        """
        window = historical_window(TODAY, settings)
        assert window.end == date(2025, 6, 5)
        assert window.start == date(2024, 6, 5)

    def test_chunks_are_contiguous_and_bounded(self):
        """Chunks cover the range exactly, without gaps or overlaps.

        Implementation: Splits a 366-day inclusive range into 15-day chunks.
        Passing implies: Every day is requested once and no chunk exceeds the size.
        """
        chunks = chunk_date_range(date(2024, 6, 5), date(2025, 6, 5), 15)
        assert chunks[0].start == date(2024, 6, 5)
        assert chunks[-1].end == date(2025, 6, 5)
        assert len(chunks) == 25
        for prev, nxt in zip(chunks, chunks[1:]):
            assert (nxt.start - prev.end).days == 1
        assert all((c.end - c.start).days < 15 for c in chunks)

    def test_single_day_range(self):
        chunks = chunk_date_range(date(2025, 1, 1), date(2025, 1, 1), 15)
        assert chunks == [DateRange(start=date(2025, 1, 1), end=date(2025, 1, 1))]

    def test_zero_chunk_size_raises(self):
        with pytest.raises(ValueError):
            chunk_date_range(date(2025, 1, 1), date(2025, 1, 31), 0)


class TestParsePowerData:
    def test_sentinels_are_dropped_per_field(self):
        """-999 values become None, and days with nothing valid are skipped.

        Implementation: Parses a payload with one fully-sentinel day and one partial day.
        Passing implies: Sentinel values never reach HistoricalRecord fields.
        """
        data = {
            "properties": {
                "parameter": {
                    "T2M": {"20250101": -999.0, "20250102": 24.0, "20250103": 22.0},
                    "PRECTOTCORR": {"20250101": -999.0, "20250102": -999.0, "20250103": 1.5},
                    "GWETTOP": {"20250101": -999.0, "20250102": 0.42, "20250103": 0.4},
                }
            }
        }
        records = parse_power_data(data)

        assert [r.date for r in records] == [date(2025, 1, 2), date(2025, 1, 3)]
        assert records[0].temperature_2m == 24.0
        assert records[0].precipitation is None
        assert records[0].soil_moisture == 0.42

    def test_solar_radiation_is_estimated_from_temperature(self):
        """Solar radiation is (T + 10) * 0.5 since the request omits radiation."""
        data = {"properties": {"parameter": {"T2M": {"20250101": 20.0}}}}
        records = parse_power_data(data)
        assert records[0].solar_radiation_estimate == 15.0

    def test_missing_parameter_block_raises(self):
        with pytest.raises(ProviderError):
            parse_power_data({"messages": ["no data"]})

    def test_unparseable_date_keys_are_skipped(self):
        data = {"properties": {"parameter": {"T2M": {"notadate": 20.0, "20250101": 21.0}}}}
        records = parse_power_data(data)
        assert [r.date for r in records] == [date(2025, 1, 1)]


class TestFetchChunk:
    @pytest.mark.asyncio
    async def test_sends_reduced_parameter_set(self):
        """fetch_chunk queries POWER with rounded coordinates and the AG community.

        Implementation: Mocks the client and inspects the call arguments.
        Passing implies: The request matches the POWER daily point API contract.
        """
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.return_value = _response(power_payload(date(2025, 1, 1), 3))
        chunk = DateRange(start=date(2025, 1, 1), end=date(2025, 1, 3))

        records = await fetch_chunk(client, Coordinate(latitude=20.593712, longitude=78.96289), chunk, 15.0)

        assert len(records) == 3
        args, kwargs = client.get.call_args
        assert args[0] == POWER_URL
        params = kwargs["params"]
        assert params["parameters"] == "T2M,PRECTOTCORR,GWETTOP"
        assert params["community"] == "AG"
        assert params["latitude"] == 20.5937
        assert params["longitude"] == 78.9629
        assert params["start"] == "20250101"
        assert params["end"] == "20250103"
        assert kwargs["timeout"] == 15.0

    @pytest.mark.asyncio
    async def test_http_error_becomes_provider_error(self):
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.return_value = _response({"error": "rate limited"}, status_code=429)
        chunk = DateRange(start=date(2025, 1, 1), end=date(2025, 1, 3))

        with pytest.raises(ProviderError) as exc_info:
            await fetch_chunk(client, COORD, chunk, 15.0)
        assert exc_info.value.provider == "nasa_power"

    @pytest.mark.asyncio
    async def test_timeout_becomes_provider_error(self):
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.side_effect = httpx.ReadTimeout("timed out")
        chunk = DateRange(start=date(2025, 1, 1), end=date(2025, 1, 3))

        with pytest.raises(ProviderError):
            await fetch_chunk(client, COORD, chunk, 15.0)


class TestFetchHistoricalSeries:
    @pytest.mark.asyncio
    async def test_never_exceeds_batch_concurrency(self, fast_settings):
        """At most historical_batch_size chunk requests are in flight at once.

        Implementation: A fake client tracks concurrent calls while sleeping briefly.
        Passing implies: The provider's rate limits are respected.
        """
        in_flight = 0
        peak = 0

        async def get(url, params=None, timeout=None):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return _response(power_payload(_chunk_start(params), _chunk_days(params)))

        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.side_effect = get

        series = await fetch_historical_series(client, COORD, fast_settings, TODAY)

        assert client.get.call_count == 4
        assert peak == 2
        assert len(series.records) == 60

    @pytest.mark.asyncio
    async def test_series_is_sorted_regardless_of_completion_order(self, fast_settings):
        """Records come back date-ordered even when later chunks finish first.

        Implementation: Earlier chunks sleep longer than later ones.
        Passing implies: Callers can rely on chronological order.
        """

        async def get(url, params=None, timeout=None):
            start = _chunk_start(params)
            await asyncio.sleep(0.02 if start.day % 2 else 0.0)
            return _response(power_payload(start, _chunk_days(params)))

        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.side_effect = get

        records = await fetch_historical(client, COORD, fast_settings, TODAY)

        dates = [r.date for r in records]
        assert dates == sorted(dates)
        assert len(set(dates)) == len(dates)

    @pytest.mark.asyncio
    async def test_sentinel_only_chunk_contributes_nothing(self, fast_settings):
        """A chunk of -999 values adds no records while its sibling chunks still do.

        Implementation: The first chunk returns only sentinels, the rest are healthy.
        Passing implies: Sentinel data is filtered without failing the series.
        """
        window = historical_window(TODAY, fast_settings)

        async def get(url, params=None, timeout=None):
            start = _chunk_start(params)
            if start == window.start:
                return _response(power_payload(start, _chunk_days(params), -999.0, -999.0, -999.0))
            return _response(power_payload(start, _chunk_days(params)))

        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.side_effect = get

        series = await fetch_historical_series(client, COORD, fast_settings, TODAY)

        assert len(series.records) == 45
        assert series.chunks_failed == 0
        assert series.records[0].date == window.start + timedelta(days=15)
        assert all(r.temperature_2m == 25.0 for r in series.records)

    @pytest.mark.asyncio
    async def test_failed_chunks_are_counted_and_skipped(self, fast_settings):
        """A failing chunk is logged and counted, and the others still contribute.

        Implementation: One chunk returns HTTP 500.
        Passing implies: A single bad chunk does not fail the historical source.
        """
        window = historical_window(TODAY, fast_settings)

        async def get(url, params=None, timeout=None):
            start = _chunk_start(params)
            if start == window.start:
                return _response({"error": "server"}, status_code=500)
            return _response(power_payload(start, _chunk_days(params)))

        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.side_effect = get

        series = await fetch_historical_series(client, COORD, fast_settings, TODAY)

        assert series.chunks_requested == 4
        assert series.chunks_failed == 1
        assert len(series.records) == 45

    @pytest.mark.asyncio
    async def test_all_chunks_failing_raises(self, fast_settings):
        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.side_effect = httpx.ConnectError("unreachable")

        with pytest.raises(ProviderError):
            await fetch_historical_series(client, COORD, fast_settings, TODAY)

    @pytest.mark.asyncio
    async def test_stops_requesting_at_record_cap(self, fast_settings):
        """Once the record cap is reached no further batches are requested.

        Implementation: Caps the series at 20 records with 15-day chunks in batches of 2.
        Passing implies: The fetch stops after the first batch.
        """
        capped = fast_settings.model_copy(update={"historical_max_records": 20})

        async def get(url, params=None, timeout=None):
            return _response(power_payload(_chunk_start(params), _chunk_days(params)))

        client = AsyncMock(spec=httpx.AsyncClient)
        client.get.side_effect = get

        series = await fetch_historical_series(client, COORD, capped, TODAY)

        assert len(series.records) == 20
        assert client.get.call_count == 2
