# ABOUTME: Pydantic models for provider records, analysis sections, and the comprehensive report.
# ABOUTME: Provider-specific field names stop at the fetchers; everything here is provider-neutral.

from datetime import date, datetime
from typing import Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field, model_validator

from agroclimate.errors import ValidationError

COORDINATE_PRECISION = 4

SourceState = Literal["success", "partial", "failed"]
Level = Literal["low", "medium", "high"]
Priority = Literal["low", "medium", "high", "critical"]


class Coordinate(BaseModel):
    """A point on the globe. Rounded to four decimals for cache keys and provider queries."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    @classmethod
    def create(cls, latitude: float, longitude: float) -> "Coordinate":
        """Validate raw input, raising the engine's ValidationError instead of pydantic's."""
        try:
            return cls(latitude=latitude, longitude=longitude)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid coordinates: {latitude}, {longitude}") from e

    # Adding 0.0 turns a rounded -0.0 into 0.0, so points just either side of zero share a key.
    @property
    def rounded_latitude(self) -> float:
        return round(self.latitude, COORDINATE_PRECISION) + 0.0

    @property
    def rounded_longitude(self) -> float:
        return round(self.longitude, COORDINATE_PRECISION) + 0.0

    @property
    def cache_key(self) -> str:
        return f"{self.rounded_latitude:.4f}_{self.rounded_longitude:.4f}"


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: date
    end: date


# --- Provider records -------------------------------------------------------


class HistoricalRecord(BaseModel):
    """One day of validated historical observations. Absent fields were missing or sentinel."""

    model_config = ConfigDict(frozen=True)

    date: date
    temperature_2m: float | None = None
    precipitation: float | None = None
    soil_moisture: float | None = None
    solar_radiation_estimate: float | None = None


class HistoricalSeries(BaseModel):
    """Result of a chunked historical fetch, with bookkeeping about failed chunks."""

    model_config = ConfigDict(frozen=True)

    records: list[HistoricalRecord] = []
    requested_range: DateRange
    chunks_requested: int = 0
    chunks_failed: int = 0


class SeasonalForecastRecord(BaseModel):
    """One forecast month. Anomalies are relative to the climatological reference."""

    model_config = ConfigDict(frozen=True)

    forecast_date: date
    valid_date: date
    temperature_anomaly: float | None = None
    precipitation_anomaly: float | None = None
    soil_moisture_0_to_7cm: float | None = None
    soil_moisture_7_to_28cm: float | None = None
    soil_moisture_28_to_100cm: float | None = None
    evapotranspiration: float | None = None
    confidence: float = 0.0
    completeness: float = 1.0


class CurrentConditions(BaseModel):
    """Instantaneous weather snapshot."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    temperature: float = 0.0
    humidity: float = 0.0
    pressure: float = 0.0
    wind_speed: float = 0.0
    description: str = ""
    visibility: float = 0.0
    uv_index: float = 0.0


# --- Data source bookkeeping ------------------------------------------------


class DataSourceStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: SourceState
    confidence: float = Field(ge=0, le=100)
    record_count: int = 0
    time_range: DateRange | None = None

    @model_validator(mode="after")
    def _failed_has_no_confidence(self):
        if self.status == "failed" and self.confidence != 0:
            raise ValueError("a failed data source must have confidence 0")
        return self

    @classmethod
    def failed(cls) -> "DataSourceStatus":
        return cls(status="failed", confidence=0)


class DataSources(BaseModel):
    model_config = ConfigDict(frozen=True)

    historical: DataSourceStatus
    seasonal: DataSourceStatus
    current: DataSourceStatus


# --- Historical analysis ----------------------------------------------------


class TemperatureStats(BaseModel):
    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0


class SeasonalTemperature(BaseModel):
    season: str
    avg_temp: float
    min_temp: float
    max_temp: float


class TemperatureNormals(BaseModel):
    annual: TemperatureStats = TemperatureStats()
    seasonal: list[SeasonalTemperature] = []


class PrecipitationStats(BaseModel):
    total: float = 0.0
    avg: float = 0.0


class SeasonalPrecipitation(BaseModel):
    season: str
    total: float
    avg_monthly: float


class PrecipitationNormals(BaseModel):
    annual: PrecipitationStats = PrecipitationStats()
    seasonal: list[SeasonalPrecipitation] = []


class SolarStats(BaseModel):
    avg: float = 0.0
    peak: float = 0.0


class SeasonalSolar(BaseModel):
    season: str
    avg: float


class SolarNormals(BaseModel):
    annual: SolarStats = SolarStats()
    seasonal: list[SeasonalSolar] = []


class ClimaticNormals(BaseModel):
    temperature: TemperatureNormals = TemperatureNormals()
    precipitation: PrecipitationNormals = PrecipitationNormals()
    solar_radiation: SolarNormals = SolarNormals()


class ExtremeEvent(BaseModel):
    type: Literal["drought", "flood", "heatwave", "frost"]
    year: int
    severity: Literal["low", "medium", "high", "extreme"]
    impact: str
    duration: int


class ClimateTrends(BaseModel):
    """Per-decade linear trends: °C, mm/day, and MJ/m²/day."""

    temperature_trend: float = 0.0
    precipitation_trend: float = 0.0
    solar_radiation_trend: float = 0.0


class ValidCounts(BaseModel):
    temperature: int = 0
    precipitation: int = 0
    solar_radiation: int = 0


class HistoricalAnalysis(BaseModel):
    climatic_normals: ClimaticNormals = ClimaticNormals()
    extreme_events: list[ExtremeEvent] = []
    trends: ClimateTrends = ClimateTrends()
    valid_counts: ValidCounts = ValidCounts()


# --- Seasonal forecast ------------------------------------------------------


class TemperatureProbability(BaseModel):
    warmer: int
    normal: int
    colder: int


class PrecipitationProbability(BaseModel):
    wetter: int
    normal: int
    drier: int


class TemperatureOutlook(BaseModel):
    anomaly: float
    probability: TemperatureProbability
    expected: TemperatureStats


class PrecipitationOutlook(BaseModel):
    anomaly: float
    probability: PrecipitationProbability
    expected: float


class SoilMoistureProfile(BaseModel):
    surface: float
    root_zone: float
    deep: float


class MonthlyOutlook(BaseModel):
    month: int
    year: int
    temperature: TemperatureOutlook
    precipitation: PrecipitationOutlook
    soil_moisture: SoilMoistureProfile
    evapotranspiration: float
    confidence: float


class SeasonalSummary(BaseModel):
    dominant_pattern: str = ""
    key_features: list[str] = []
    agricultural_implications: list[str] = []


class SeasonalForecast(BaseModel):
    confidence: float = 0.0
    model: Literal["ECMWF_SEAS5"] = "ECMWF_SEAS5"
    forecast_period: DateRange | None = None
    monthly_outlook: list[MonthlyOutlook] = []
    seasonal_summary: SeasonalSummary = SeasonalSummary()


# --- Agricultural analysis --------------------------------------------------


class SoilConditions(BaseModel):
    type: str
    ph: float
    fertility: Level
    drainage: Literal["poor", "moderate", "good", "excellent"]
    organic_matter: float


class CriticalPeriod(BaseModel):
    start_date: date
    end_date: date
    requirement: float
    priority: Priority


class WaterManagement(BaseModel):
    irrigation_need: Level
    critical_periods: list[CriticalPeriod] = []
    drainage_requirements: list[str] = []


class WeatherRisk(BaseModel):
    type: str
    probability: int
    impact: Level
    timeline: str
    mitigation: list[str] = []


class RiskAssessment(BaseModel):
    overall: Level
    weather_risks: list[WeatherRisk] = []
    seasonal_risks: list[str] = []


class AgriculturalAnalysis(BaseModel):
    overall_suitability: int = Field(ge=0, le=100)
    soil_conditions: SoilConditions
    water_management: WaterManagement
    risk_assessment: RiskAssessment


# --- Insights ---------------------------------------------------------------


class Recommendation(BaseModel):
    category: Literal["planting", "irrigation", "fertilization", "pest_management", "harvest"]
    priority: Literal["low", "medium", "high", "urgent"]
    description: str
    timeline: str
    expected_benefit: str


class SustainabilityScore(BaseModel):
    score: int = Field(ge=0, le=100)
    factors: list[str] = []
    improvements: list[str] = []


class AiInsights(BaseModel):
    key_findings: list[str] = []
    recommendations: list[Recommendation] = []
    marketing_suggestions: list[str] = []
    sustainability_score: SustainabilityScore


# --- Aggregate root ---------------------------------------------------------


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class ComprehensiveAnalysis(BaseModel):
    """The assembled report. Immutable once built; cached and persisted as a whole."""

    model_config = ConfigDict(frozen=True)

    analysis_id: str
    location: Location
    generated_at: datetime
    land_id: int | None = None
    data_sources: DataSources
    historical_analysis: HistoricalAnalysis
    seasonal_forecast: SeasonalForecast
    current_conditions: CurrentConditions
    agricultural_analysis: AgriculturalAnalysis
    ai_insights: AiInsights
    processing_time_ms: int = 0
