# ABOUTME: Shared test fixtures for the agroclimate test suite.
# ABOUTME: Provides fast settings, a fixed clock, provider payload builders, and fake provider clients.

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from agroclimate.config import Settings
from agroclimate.current_service import CURRENT_URL
from agroclimate.deps import ProviderDeps
from agroclimate.historical_service import POWER_URL
from agroclimate.seasonal_service import SEASONAL_URL

FIXED_NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    """Settings with no inter-batch delay and an OpenWeather key configured."""
    return Settings(openweather_api_key="test-key", historical_batch_delay_seconds=0)


@pytest.fixture
def fast_settings(settings) -> Settings:
    """Four 15-day historical chunks instead of a full year."""
    return settings.model_copy(update={"historical_lookback_days": 59})


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


def power_payload(start: date, days: int, temperature=25.0, precipitation=3.0, soil=0.4) -> dict:
    """A NASA POWER daily point response with constant values for `days` days."""
    keys = [(start + timedelta(days=i)).strftime("%Y%m%d") for i in range(days)]
    return {
        "properties": {
            "parameter": {
                "T2M": {k: temperature for k in keys},
                "PRECTOTCORR": {k: precipitation for k in keys},
                "GWETTOP": {k: soil for k in keys},
            }
        }
    }


def seasonal_payload(start: date, days: int, temperature=28.5, precipitation=2.0, soil=0.35) -> dict:
    """An Open-Meteo seasonal response with constant daily values starting at `start`."""
    times = [(start + timedelta(days=i)).isoformat() for i in range(days)]
    return {
        "daily": {
            "time": times,
            "temperature_2m_mean": [temperature] * days,
            "precipitation_sum": [precipitation] * days,
            "soil_moisture_0_to_7cm_mean": [soil] * days,
        }
    }


def current_payload(temperature=31.2, humidity=58) -> dict:
    return {
        "main": {"temp": temperature, "humidity": humidity, "pressure": 1008},
        "wind": {"speed": 3.4},
        "weather": [{"description": "scattered clouds"}],
        "visibility": 8000,
    }


class FakeProviders:
    """Routes client.get calls to canned provider responses and counts them."""

    def __init__(self, fail_seasonal=None, fail_current=None, failing_chunk=None, fail_power=False):
        self.fail_seasonal = fail_seasonal
        self.fail_current = fail_current
        self.failing_chunk = failing_chunk
        self.fail_power = fail_power
        self.calls = {"power": 0, "seasonal": 0, "current": 0}

        self.http_client = AsyncMock(spec=httpx.AsyncClient)
        self.http_client.get.side_effect = self._get
        self.current_client = AsyncMock(spec=httpx.AsyncClient)
        self.current_client.get.side_effect = self._get

    def deps(self) -> ProviderDeps:
        return ProviderDeps(http_client=self.http_client, current_client=self.current_client)

    @property
    def total(self) -> int:
        return sum(self.calls.values())

    async def _get(self, url, params=None, timeout=None):
        request = httpx.Request("GET", url)
        if url == POWER_URL:
            self.calls["power"] += 1
            start = datetime.strptime(params["start"], "%Y%m%d").date()
            end = datetime.strptime(params["end"], "%Y%m%d").date()
            if self.fail_power or start == self.failing_chunk:
                return httpx.Response(500, json={"error": "server"}, request=request)
            return httpx.Response(200, json=power_payload(start, (end - start).days + 1), request=request)
        if url == SEASONAL_URL:
            self.calls["seasonal"] += 1
            if self.fail_seasonal is not None:
                raise self.fail_seasonal
            start = date.fromisoformat(params["start_date"])
            return httpx.Response(200, json=seasonal_payload(start, 184), request=request)
        if url == CURRENT_URL:
            self.calls["current"] += 1
            if self.fail_current is not None:
                raise self.fail_current
            return httpx.Response(200, json=current_payload(), request=request)
        raise AssertionError(f"unexpected url {url}")
