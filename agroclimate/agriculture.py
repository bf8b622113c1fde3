# ABOUTME: Agricultural suitability analysis from historical normals and the seasonal outlook.
# ABOUTME: Never raises; with no climate input it returns neutral defaults instead of an error.

import calendar
import logging
from datetime import date

import pandas as pd

from agroclimate.analysis import FALLBACK_EVAPOTRANSPIRATION
from agroclimate.models import (
    AgriculturalAnalysis,
    Coordinate,
    CriticalPeriod,
    HistoricalAnalysis,
    Level,
    MonthlyOutlook,
    RiskAssessment,
    SeasonalForecast,
    SoilConditions,
    TemperatureStats,
    WaterManagement,
    WeatherRisk,
)
from agroclimate.seasonal_service import REFERENCE_PRECIPITATION_MM

logger = logging.getLogger(__name__)

BASE_SUITABILITY = 75


def estimate_soil_type(latitude: float) -> str:
    """Coarse latitude-band soil guess. Downstream scoring assumes exactly these four categories."""
    if latitude > 30:
        return "Sandy loam"
    if latitude > 20:
        return "Loam"
    if latitude > 10:
        return "Clay loam"
    return "Alluvial"


def analyze_agriculture(
    coord: Coordinate,
    historical: HistoricalAnalysis | None,
    seasonal: SeasonalForecast | None,
) -> AgriculturalAnalysis:
    """Soil conditions, water management, risk, and an overall 0-100 suitability score."""
    soil_type = estimate_soil_type(coord.latitude)
    months = seasonal.monthly_outlook if seasonal is not None else []

    temperature = None
    daily_precipitation = None
    events = []
    if historical is not None:
        if historical.valid_counts.temperature:
            temperature = historical.climatic_normals.temperature.annual
        if historical.valid_counts.precipitation:
            daily_precipitation = historical.climatic_normals.precipitation.annual.avg
        events = historical.extreme_events

    temp_anomaly, precip_anomaly, evapotranspiration = 0.0, 0.0, FALLBACK_EVAPOTRANSPIRATION
    if months:
        outlook = pd.DataFrame(
            [(m.temperature.anomaly, m.precipitation.anomaly, m.evapotranspiration) for m in months],
            columns=["temperature_anomaly", "precipitation_anomaly", "evapotranspiration"],
        ).mean()
        temp_anomaly = float(outlook["temperature_anomaly"])
        precip_anomaly = float(outlook["precipitation_anomaly"])
        evapotranspiration = float(outlook["evapotranspiration"])
    has_data = temperature is not None or daily_precipitation is not None or bool(months)

    score = suitability_score(temperature, daily_precipitation, temp_anomaly, precip_anomaly, events)
    risks = weather_risks(temperature, daily_precipitation, temp_anomaly, precip_anomaly, events)

    analysis = AgriculturalAnalysis(
        overall_suitability=score,
        soil_conditions=SoilConditions(type=soil_type, ph=6.8, fertility="medium", drainage="good", organic_matter=2.8),
        water_management=WaterManagement(
            irrigation_need=irrigation_need(daily_precipitation, evapotranspiration, precip_anomaly, bool(months)),
            critical_periods=critical_periods(months),
            drainage_requirements=drainage_requirements(soil_type, daily_precipitation, precip_anomaly),
        ),
        risk_assessment=RiskAssessment(
            overall=overall_risk(risks, has_data),
            weather_risks=risks,
            seasonal_risks=seasonal_risks(months),
        ),
    )
    logger.info(
        "Agricultural analysis for %s: suitability %d, irrigation %s, risk %s",
        coord.cache_key,
        analysis.overall_suitability,
        analysis.water_management.irrigation_need,
        analysis.risk_assessment.overall,
    )
    return analysis


def suitability_score(
    temperature: TemperatureStats | None,
    daily_precipitation: float | None,
    temp_anomaly: float,
    precip_anomaly: float,
    events: list,
) -> int:
    score = BASE_SUITABILITY
    if temperature is not None:
        if 18 <= temperature.avg <= 30:
            score += 10
        elif not (10 <= temperature.avg <= 35):
            score -= 15
        if temperature.max >= 40:
            score -= 5
        if temperature.min <= 0:
            score -= 5

    if daily_precipitation is not None:
        if daily_precipitation < 1:
            score -= 10
        elif daily_precipitation > 8:
            score -= 5
        elif 2 <= daily_precipitation <= 6:
            score += 5

    if temp_anomaly >= 1.5:
        score -= 5
    if precip_anomaly <= -20:
        score -= 5
    elif precip_anomaly >= 30:
        score -= 3

    severe = sum(1 for e in events if e.severity in ("high", "extreme"))
    score -= min(10, 2 * severe)
    return max(0, min(100, int(round(score))))


def irrigation_need(
    daily_precipitation: float | None,
    evapotranspiration: float,
    precip_anomaly: float,
    has_forecast: bool,
) -> Level:
    """Classify the water balance between expected rainfall and evapotranspiration (mm/day)."""
    if daily_precipitation is None and not has_forecast:
        return "medium"
    if daily_precipitation is None:
        supply = REFERENCE_PRECIPITATION_MM * (1 + precip_anomaly / 100) / 30
    else:
        supply = daily_precipitation * (1 + precip_anomaly / 100)

    deficit = evapotranspiration - max(0.0, supply)
    if deficit > 3:
        level = "high"
    elif deficit > 1:
        level = "medium"
    else:
        level = "low"

    if precip_anomaly <= -20 and level != "high":
        level = "medium" if level == "low" else "high"
    return level


def critical_periods(months: list[MonthlyOutlook]) -> list[CriticalPeriod]:
    """Forecast months where expected rainfall covers less than 80% of crop water demand."""
    periods = []
    for m in months:
        days = calendar.monthrange(m.year, m.month)[1]
        demand = m.evapotranspiration * days
        supply = m.precipitation.expected
        if demand <= 0 or supply >= 0.8 * demand:
            continue
        ratio = supply / demand
        priority = "critical" if ratio < 0.25 else "high" if ratio < 0.5 else "medium"
        periods.append(
            CriticalPeriod(
                start_date=date(m.year, m.month, 1),
                end_date=date(m.year, m.month, days),
                requirement=round(demand - supply, 1),
                priority=priority,
            )
        )
    return periods


def drainage_requirements(soil_type: str, daily_precipitation: float | None, precip_anomaly: float) -> list[str]:
    requirements = []
    if daily_precipitation is not None and daily_precipitation > 8:
        requirements.append("Maintain field drains ahead of heavy rainfall periods")
    if precip_anomaly >= 20:
        requirements.append("Clear drainage channels before the wetter-than-normal season")
    if soil_type == "Clay loam":
        requirements.append("Use raised beds to limit waterlogging on heavier soil")
    return requirements


def weather_risks(
    temperature: TemperatureStats | None,
    daily_precipitation: float | None,
    temp_anomaly: float,
    precip_anomaly: float,
    events: list,
) -> list[WeatherRisk]:
    event_types = {e.type for e in events}
    risks = []

    if (temperature is not None and temperature.max >= 38) or "heatwave" in event_types or temp_anomaly >= 1.5:
        risks.append(
            WeatherRisk(
                type="heat_stress",
                probability=60 if "heatwave" in event_types else 40,
                impact="high",
                timeline="Peak summer months",
                mitigation=["Shift sowing dates to avoid flowering in peak heat", "Mulch to reduce soil temperature"],
            )
        )
    if (temperature is not None and temperature.min <= 2) or "frost" in event_types:
        risks.append(
            WeatherRisk(
                type="frost",
                probability=50 if "frost" in event_types else 30,
                impact="medium",
                timeline="Winter nights",
                mitigation=["Delay planting of frost-sensitive crops", "Use row covers on cold nights"],
            )
        )
    if (daily_precipitation is not None and daily_precipitation < 1) or "drought" in event_types or precip_anomaly <= -20:
        risks.append(
            WeatherRisk(
                type="drought",
                probability=60 if "drought" in event_types else 40,
                impact="high",
                timeline="Next 6 months",
                mitigation=["Prioritise drought-tolerant varieties", "Install drip irrigation"],
            )
        )
    if (daily_precipitation is not None and daily_precipitation > 8) or "flood" in event_types or precip_anomaly >= 20:
        risks.append(
            WeatherRisk(
                type="excess_rainfall",
                probability=50 if "flood" in event_types else 30,
                impact="medium",
                timeline="Monsoon or wet season",
                mitigation=["Improve field drainage", "Avoid fertiliser application before heavy rain"],
            )
        )
    return risks


def overall_risk(risks: list[WeatherRisk], has_data: bool) -> Level:
    if not has_data:
        return "medium"
    high_impact = sum(1 for r in risks if r.impact == "high")
    if high_impact >= 2 or len(risks) >= 3:
        return "high"
    if risks:
        return "medium"
    return "low"


def seasonal_risks(months: list[MonthlyOutlook]) -> list[str]:
    notes = []
    for m in months:
        label = f"{m.year}-{m.month:02d}"
        if m.precipitation.anomaly <= -20:
            notes.append(f"Below-normal rainfall expected in {label}")
        elif m.precipitation.anomaly >= 20:
            notes.append(f"Above-normal rainfall expected in {label}")
        if m.temperature.anomaly >= 1.5:
            notes.append(f"Above-normal temperatures expected in {label}")
        elif m.temperature.anomaly <= -1.5:
            notes.append(f"Below-normal temperatures expected in {label}")
    return notes
