# ABOUTME: Contract tests for the SQLAlchemy report store.
# ABOUTME: Uses a SQLite file database under tmp_path.

from datetime import datetime, timedelta, timezone

import pytest

from agroclimate.errors import PersistenceError
from agroclimate.models import (
    AgriculturalAnalysis,
    AiInsights,
    ComprehensiveAnalysis,
    Coordinate,
    CurrentConditions,
    DataSources,
    DataSourceStatus,
    HistoricalAnalysis,
    Location,
    RiskAssessment,
    SeasonalForecast,
    SoilConditions,
    SustainabilityScore,
    WaterManagement,
)
from agroclimate.storage import ReportStore

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def _report(analysis_id: str, generated_at: datetime, land_id: int | None = None) -> ComprehensiveAnalysis:
    return ComprehensiveAnalysis(
        analysis_id=analysis_id,
        location=Location(latitude=20.59371, longitude=78.96289),
        generated_at=generated_at,
        land_id=land_id,
        data_sources=DataSources(
            historical=DataSourceStatus(status="success", confidence=95, record_count=366),
            seasonal=DataSourceStatus(status="success", confidence=80, record_count=6),
            current=DataSourceStatus.failed(),
        ),
        historical_analysis=HistoricalAnalysis(),
        seasonal_forecast=SeasonalForecast(),
        current_conditions=CurrentConditions(timestamp=generated_at),
        agricultural_analysis=AgriculturalAnalysis(
            overall_suitability=80,
            soil_conditions=SoilConditions(type="Loam", ph=6.8, fertility="medium", drainage="good", organic_matter=2.8),
            water_management=WaterManagement(irrigation_need="low"),
            risk_assessment=RiskAssessment(overall="low"),
        ),
        ai_insights=AiInsights(sustainability_score=SustainabilityScore(score=80)),
    )


@pytest.fixture
def store(tmp_path):
    store = ReportStore(f"sqlite:///{tmp_path / 'reports.db'}")
    yield store
    store.dispose()


COORD = Coordinate(latitude=20.5937, longitude=78.9629)


class TestReportStore:
    def test_saved_report_is_found_while_fresh(self, store):
        """A stored report is returned for the same rounded location and land id.

        Implementation: Saves a report and looks it up within the freshness window.
        Passing implies: Reports survive a process restart in identical shape.
        """
        report = _report("a1", NOW)
        store.save(report)

        found = store.latest(COORD, None, NOW - timedelta(hours=6))
        assert found == report

    def test_stale_report_is_ignored(self, store):
        store.save(_report("a1", NOW - timedelta(hours=7)))
        assert store.latest(COORD, None, NOW - timedelta(hours=6)) is None

    def test_newest_report_wins(self, store):
        """With several fresh rows for a location the newest one is returned."""
        store.save(_report("old", NOW - timedelta(hours=2)))
        store.save(_report("new", NOW - timedelta(hours=1)))
        assert store.latest(COORD, None, NOW - timedelta(hours=6)).analysis_id == "new"

    def test_land_id_is_part_of_the_key(self, store):
        store.save(_report("land", NOW, land_id=3))
        assert store.latest(COORD, None, NOW - timedelta(hours=6)) is None
        assert store.latest(COORD, 3, NOW - timedelta(hours=6)).analysis_id == "land"

    def test_saving_same_id_twice_is_tolerated(self, store):
        store.save(_report("dup", NOW))
        store.save(_report("dup", NOW))
        assert store.latest(COORD, None, NOW - timedelta(hours=6)).analysis_id == "dup"

    def test_unreadable_payload_raises_persistence_error(self, store):
        """Corrupt stored JSON surfaces as PersistenceError, not a pydantic error."""
        store.save(_report("bad", NOW))
        with store.engine.begin() as conn:
            conn.exec_driver_sql("UPDATE comprehensive_weather_analysis SET payload = '{broken'")

        with pytest.raises(PersistenceError):
            store.latest(COORD, None, NOW - timedelta(hours=6))
