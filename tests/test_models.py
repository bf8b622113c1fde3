# ABOUTME: Contract tests for the Pydantic models shared across fetchers and analyzers.
# ABOUTME: Validates coordinate checks, source status invariants, and report immutability.

import math
from datetime import date, datetime, timezone

import pydantic
import pytest

from agroclimate.errors import ValidationError
from agroclimate.models import (
    AgriculturalAnalysis,
    AiInsights,
    ComprehensiveAnalysis,
    Coordinate,
    CurrentConditions,
    DataSources,
    DataSourceStatus,
    HistoricalAnalysis,
    HistoricalRecord,
    Location,
    RiskAssessment,
    SeasonalForecast,
    SoilConditions,
    SustainabilityScore,
    WaterManagement,
)


def _report() -> ComprehensiveAnalysis:
    now = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
    return ComprehensiveAnalysis(
        analysis_id="abc",
        location=Location(latitude=20.5937, longitude=78.9629),
        generated_at=now,
        land_id=7,
        data_sources=DataSources(
            historical=DataSourceStatus(status="success", confidence=95, record_count=366),
            seasonal=DataSourceStatus(status="partial", confidence=60, record_count=4),
            current=DataSourceStatus.failed(),
        ),
        historical_analysis=HistoricalAnalysis(),
        seasonal_forecast=SeasonalForecast(),
        current_conditions=CurrentConditions(timestamp=now),
        agricultural_analysis=AgriculturalAnalysis(
            overall_suitability=75,
            soil_conditions=SoilConditions(type="Loam", ph=6.8, fertility="medium", drainage="good", organic_matter=2.8),
            water_management=WaterManagement(irrigation_need="medium"),
            risk_assessment=RiskAssessment(overall="medium"),
        ),
        ai_insights=AiInsights(sustainability_score=SustainabilityScore(score=70)),
    )


class TestCoordinate:
    def test_valid_coordinate_rounds_for_keys(self):
        """Coordinates are rounded to four decimals for cache keys and queries.

        Implementation: Creates a coordinate with six decimals of precision.
        Passing implies: Cache keys and provider parameters use the rounded values.
        """
        coord = Coordinate.create(20.593712, 78.962891)
        assert coord.rounded_latitude == 20.5937
        assert coord.rounded_longitude == 78.9629
        assert coord.cache_key == "20.5937_78.9629"

    def test_negative_zero_rounds_to_the_same_key(self):
        south = Coordinate.create(-0.00001, -0.00004)
        north = Coordinate.create(0.00001, 0.00004)

        assert south.cache_key == north.cache_key == "0.0000_0.0000"
        assert str(south.rounded_latitude) == "0.0"
        assert str(south.rounded_longitude) == "0.0"

    @pytest.mark.parametrize(
        "latitude,longitude",
        [(90.1, 0.0), (-91.0, 0.0), (0.0, 180.5), (0.0, -181.0), (math.nan, 0.0)],
    )
    def test_out_of_range_raises_validation_error(self, latitude, longitude):
        """Out-of-range or NaN coordinates raise the engine's ValidationError.

        Implementation: Calls Coordinate.create with invalid values.
        Passing implies: Callers never see pydantic's error type for bad input.
        """
        with pytest.raises(ValidationError):
            Coordinate.create(latitude, longitude)

    def test_boundaries_are_accepted(self):
        """The poles and the antimeridian are valid coordinates."""
        coord = Coordinate.create(-90.0, 180.0)
        assert coord.latitude == -90.0


class TestDataSourceStatus:
    def test_failed_factory_has_zero_confidence(self):
        """DataSourceStatus.failed() yields a failed status with confidence 0."""
        status = DataSourceStatus.failed()
        assert status.status == "failed"
        assert status.confidence == 0
        assert status.record_count == 0

    def test_failed_with_confidence_is_rejected(self):
        """A failed source cannot claim any confidence.

        Implementation: Constructs a failed status with confidence 50.
        Passing implies: The model validator enforces the failed-means-zero rule.
        """
        with pytest.raises(pydantic.ValidationError):
            DataSourceStatus(status="failed", confidence=50)

    def test_confidence_must_be_a_percentage(self):
        with pytest.raises(pydantic.ValidationError):
            DataSourceStatus(status="success", confidence=120)


class TestHistoricalRecord:
    def test_optional_fields_default_to_none(self):
        """HistoricalRecord only requires a date; missing observations are None."""
        record = HistoricalRecord(date=date(2025, 1, 1))
        assert record.temperature_2m is None
        assert record.precipitation is None
        assert record.soil_moisture is None
        assert record.solar_radiation_estimate is None


class TestComprehensiveAnalysis:
    def test_report_is_immutable(self):
        """The assembled report cannot be modified after construction."""
        report = _report()
        with pytest.raises(pydantic.ValidationError):
            report.land_id = 8

    def test_json_restores_identical_report(self):
        """A report serialised to JSON restores to an equal report.

        Implementation: Dumps a report to JSON and validates it back.
        Passing implies: Cached and persisted reports have the same shape as fresh ones.
        """
        report = _report()
        restored = ComprehensiveAnalysis.model_validate_json(report.model_dump_json())
        assert restored == report
        assert restored.data_sources.current.status == "failed"
