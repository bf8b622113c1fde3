# ABOUTME: Historical climate analysis and seasonal outlook synthesis.
# ABOUTME: Turns validated provider records into climatic normals, trends, extremes, and monthly outlooks.

import calendar
import logging
from collections.abc import Iterable
from datetime import timedelta

import numpy as np
import pandas as pd
from scipy.stats import linregress

from agroclimate.models import (
    ClimateTrends,
    ClimaticNormals,
    DateRange,
    ExtremeEvent,
    HistoricalAnalysis,
    HistoricalRecord,
    MonthlyOutlook,
    PrecipitationNormals,
    PrecipitationOutlook,
    PrecipitationProbability,
    PrecipitationStats,
    SeasonalForecast,
    SeasonalForecastRecord,
    SeasonalPrecipitation,
    SeasonalSolar,
    SeasonalSummary,
    SeasonalTemperature,
    SoilMoistureProfile,
    SolarNormals,
    SolarStats,
    TemperatureNormals,
    TemperatureOutlook,
    TemperatureProbability,
    TemperatureStats,
    ValidCounts,
)
from agroclimate.seasonal_service import REFERENCE_PRECIPITATION_MM, REFERENCE_TEMPERATURE_C
from agroclimate.sentinel import FieldKind, validate

logger = logging.getLogger(__name__)

SEASON_BY_MONTH = {
    12: "DJF", 1: "DJF", 2: "DJF",
    3: "MAM", 4: "MAM", 5: "MAM",
    6: "JJA", 7: "JJA", 8: "JJA",
    9: "SON", 10: "SON", 11: "SON",
}  # fmt: skip
SEASON_ORDER = ("DJF", "MAM", "JJA", "SON")

HEATWAVE_TEMPERATURE_C = 35.0
HEATWAVE_MIN_DAYS = 3
FROST_TEMPERATURE_C = 0.0
DRY_DAY_PRECIPITATION_MM = 1.0
DROUGHT_MIN_DAYS = 30
HEAVY_RAIN_MM = 50.0

# Climatological fallbacks used when the seasonal provider omits a layer.
FALLBACK_SOIL_SURFACE = 0.3
FALLBACK_SOIL_ROOT_ZONE = 0.25
FALLBACK_SOIL_DEEP = 0.2
FALLBACK_EVAPOTRANSPIRATION = 4.5
TEMPERATURE_SPREAD_C = 7.5

NORMAL_PATTERN = "Normal conditions expected"
INSUFFICIENT_PATTERN = "Insufficient forecast data"


# --- Historical analyzer ----------------------------------------------------


def analyze_historical(records: Iterable[HistoricalRecord]) -> HistoricalAnalysis:
    """Compute climatic normals, extreme events, and decadal trends.

    Each field is filtered on its own, so temperature, precipitation, and solar
    radiation can have different valid counts. A field with no valid values yields
    zeros rather than an error.
    """
    frame = daily_frame(records)
    temps = frame["temperature"].dropna()
    precips = frame["precipitation"].dropna()
    solars = frame["solar_radiation"].dropna()

    counts = ValidCounts(temperature=len(temps), precipitation=len(precips), solar_radiation=len(solars))
    logger.info(
        "Analyzing %d historical records: %d temps, %d precip, %d solar",
        len(frame),
        counts.temperature,
        counts.precipitation,
        counts.solar_radiation,
    )
    if temps.empty and precips.empty and solars.empty:
        logger.warning("No valid historical values; returning empty normals")
        return HistoricalAnalysis()

    normals = ClimaticNormals(
        temperature=_temperature_normals(temps),
        precipitation=_precipitation_normals(precips),
        solar_radiation=_solar_normals(solars),
    )
    trends = ClimateTrends(
        temperature_trend=decadal_trend(temps),
        precipitation_trend=decadal_trend(precips),
        solar_radiation_trend=decadal_trend(solars),
    )
    return HistoricalAnalysis(
        climatic_normals=normals,
        extreme_events=detect_extreme_events(temps, precips),
        trends=trends,
        valid_counts=counts,
    )


def daily_frame(records: Iterable[HistoricalRecord]) -> pd.DataFrame:
    """Validated daily values indexed by date. Rejected values become NaN."""
    records = list(records)
    frame = pd.DataFrame(
        {
            "temperature": [validate(r.temperature_2m, FieldKind.TEMPERATURE) for r in records],
            "precipitation": [validate(r.precipitation, FieldKind.PRECIPITATION) for r in records],
            "solar_radiation": [validate(r.solar_radiation_estimate, FieldKind.SOLAR_RADIATION) for r in records],
        },
        index=pd.DatetimeIndex([r.date for r in records]),
        dtype=float,
    )
    return frame.sort_index()


def _by_season(series: pd.Series):
    return series.groupby(series.index.month.map(SEASON_BY_MONTH))


def _temperature_normals(temps: pd.Series) -> TemperatureNormals:
    if temps.empty:
        return TemperatureNormals()
    stats = _by_season(temps).agg(["mean", "min", "max"]).reindex(SEASON_ORDER).dropna()
    seasonal = [
        SeasonalTemperature(
            season=season,
            avg_temp=round(float(row["mean"]), 2),
            min_temp=float(row["min"]),
            max_temp=float(row["max"]),
        )
        for season, row in stats.iterrows()
    ]
    return TemperatureNormals(
        annual=TemperatureStats(min=float(temps.min()), max=float(temps.max()), avg=round(float(temps.mean()), 2)),
        seasonal=seasonal,
    )


def _precipitation_normals(precips: pd.Series) -> PrecipitationNormals:
    if precips.empty:
        return PrecipitationNormals()
    frame = pd.DataFrame({"value": precips, "month": precips.index.to_period("M")})
    stats = (
        frame.groupby(precips.index.month.map(SEASON_BY_MONTH))
        .agg(total=("value", "sum"), months=("month", "nunique"))
        .reindex(SEASON_ORDER)
        .dropna()
    )
    seasonal = [
        SeasonalPrecipitation(
            season=season,
            total=round(float(row["total"]), 2),
            avg_monthly=round(float(row["total"] / row["months"]), 2),
        )
        for season, row in stats.iterrows()
    ]
    return PrecipitationNormals(
        annual=PrecipitationStats(total=round(float(precips.sum()), 2), avg=round(float(precips.mean()), 3)),
        seasonal=seasonal,
    )


def _solar_normals(solars: pd.Series) -> SolarNormals:
    if solars.empty:
        return SolarNormals()
    means = _by_season(solars).mean().reindex(SEASON_ORDER).dropna()
    seasonal = [SeasonalSolar(season=season, avg=round(float(avg), 2)) for season, avg in means.items()]
    return SolarNormals(
        annual=SolarStats(avg=round(float(solars.mean()), 2), peak=float(solars.max())),
        seasonal=seasonal,
    )


def decadal_trend(series: pd.Series) -> float:
    """Slope of annual means per decade, or 0.0 when the series covers a year or less.

    With the default 365-day lookback the window is exactly a year, so trends only
    appear once HISTORICAL_LOOKBACK_DAYS is raised past 365.
    """
    series = series.dropna().sort_index()
    if len(series) < 2 or (series.index[-1] - series.index[0]).days <= 365:
        return 0.0

    annual = series.groupby(series.index.year).mean()
    if len(annual) < 2:
        return 0.0
    result = linregress(annual.index.to_numpy(dtype=float), annual.to_numpy())
    return round(float(result.slope) * 10, 3)


def _runs(series: pd.Series, mask: pd.Series) -> list[pd.Series]:
    """Consecutive-day stretches where mask holds. A missing day breaks a stretch."""
    days = series.index.to_series()
    breaks = ~mask | (days.diff() != pd.Timedelta(days=1))
    run_ids = breaks.cumsum()
    return [run for _, run in series[mask].groupby(run_ids[mask])]


def detect_extreme_events(temps: pd.Series, precips: pd.Series) -> list[ExtremeEvent]:
    """Heatwaves, frost spells, droughts, and heavy-rain floods in the daily series."""
    temps = temps.dropna().sort_index()
    precips = precips.dropna().sort_index()
    events = []

    for run in _runs(temps, temps >= HEATWAVE_TEMPERATURE_C):
        if len(run) < HEATWAVE_MIN_DAYS:
            continue
        severity = "medium" if len(run) < 5 else "high" if len(run) <= 7 else "extreme"
        events.append(
            ExtremeEvent(
                type="heatwave",
                year=int(run.index[0].year),
                severity=severity,
                impact=f"{len(run)} days at or above {HEATWAVE_TEMPERATURE_C:.0f}°C; heat stress on crops and livestock",
                duration=len(run),
            )
        )

    for run in _runs(temps, temps <= FROST_TEMPERATURE_C):
        coldest = float(run.min())
        severity = "low" if coldest > -2 else "medium" if coldest > -5 else "high"
        events.append(
            ExtremeEvent(
                type="frost",
                year=int(run.index[0].year),
                severity=severity,
                impact=f"Mean temperature down to {coldest:.1f}°C; frost damage to sensitive crops",
                duration=len(run),
            )
        )

    for run in _runs(precips, precips < DRY_DAY_PRECIPITATION_MM):
        if len(run) < DROUGHT_MIN_DAYS:
            continue
        severity = "medium" if len(run) < 45 else "high" if len(run) < 60 else "extreme"
        events.append(
            ExtremeEvent(
                type="drought",
                year=int(run.index[0].year),
                severity=severity,
                impact=f"{len(run)} consecutive dry days; soil moisture deficit",
                duration=len(run),
            )
        )

    for run in _runs(precips, precips >= HEAVY_RAIN_MM):
        wettest = float(run.max())
        severity = "medium" if wettest < 75 else "high" if wettest < 100 else "extreme"
        events.append(
            ExtremeEvent(
                type="flood",
                year=int(run.index[0].year),
                severity=severity,
                impact=f"Up to {wettest:.0f} mm/day; waterlogging and runoff",
                duration=len(run),
            )
        )

    return events


# --- Seasonal synthesizer ---------------------------------------------------


def synthesize_seasonal(records: list[SeasonalForecastRecord]) -> SeasonalForecast:
    """Build the monthly outlook and a qualitative summary from monthly forecast records."""
    if not records:
        return SeasonalForecast(seasonal_summary=SeasonalSummary(dominant_pattern=INSUFFICIENT_PATTERN))

    records = sorted(records, key=lambda r: r.valid_date)
    outlook = [_monthly_outlook(r) for r in records]

    first, last = records[0], records[-1]
    start = max(first.valid_date, first.forecast_date + timedelta(days=1))
    last_day = calendar.monthrange(last.valid_date.year, last.valid_date.month)[1]
    end = last.valid_date.replace(day=last_day)

    return SeasonalForecast(
        confidence=round(float(np.mean([m.confidence for m in outlook])), 1),
        forecast_period=DateRange(start=start, end=end),
        monthly_outlook=outlook,
        seasonal_summary=summarize_season(records),
    )


def _monthly_outlook(record: SeasonalForecastRecord) -> MonthlyOutlook:
    temperature_anomaly = record.temperature_anomaly or 0.0
    precipitation_anomaly = record.precipitation_anomaly or 0.0
    expected_avg = REFERENCE_TEMPERATURE_C + temperature_anomaly
    return MonthlyOutlook(
        month=record.valid_date.month,
        year=record.valid_date.year,
        temperature=TemperatureOutlook(
            anomaly=temperature_anomaly,
            probability=temperature_probability(temperature_anomaly),
            expected=TemperatureStats(
                min=round(expected_avg - TEMPERATURE_SPREAD_C, 2),
                max=round(expected_avg + TEMPERATURE_SPREAD_C, 2),
                avg=round(expected_avg, 2),
            ),
        ),
        precipitation=PrecipitationOutlook(
            anomaly=precipitation_anomaly,
            probability=precipitation_probability(precipitation_anomaly),
            expected=round(max(0.0, REFERENCE_PRECIPITATION_MM * (1 + precipitation_anomaly / 100)), 1),
        ),
        soil_moisture=SoilMoistureProfile(
            surface=_or(record.soil_moisture_0_to_7cm, FALLBACK_SOIL_SURFACE),
            root_zone=_or(record.soil_moisture_7_to_28cm, FALLBACK_SOIL_ROOT_ZONE),
            deep=_or(record.soil_moisture_28_to_100cm, FALLBACK_SOIL_DEEP),
        ),
        evapotranspiration=_or(record.evapotranspiration, FALLBACK_EVAPOTRANSPIRATION),
        confidence=record.confidence,
    )


def _or(value: float | None, fallback: float) -> float:
    return fallback if value is None else value


def temperature_probability(anomaly: float) -> TemperatureProbability:
    if anomaly >= 1.0:
        return TemperatureProbability(warmer=55, normal=30, colder=15)
    if anomaly >= 0.5:
        return TemperatureProbability(warmer=45, normal=35, colder=20)
    if anomaly <= -1.0:
        return TemperatureProbability(warmer=15, normal=30, colder=55)
    if anomaly <= -0.5:
        return TemperatureProbability(warmer=20, normal=35, colder=45)
    return TemperatureProbability(warmer=33, normal=34, colder=33)


def precipitation_probability(anomaly: float) -> PrecipitationProbability:
    if anomaly >= 20:
        return PrecipitationProbability(wetter=55, normal=30, drier=15)
    if anomaly >= 10:
        return PrecipitationProbability(wetter=45, normal=35, drier=20)
    if anomaly <= -20:
        return PrecipitationProbability(wetter=15, normal=30, drier=55)
    if anomaly <= -10:
        return PrecipitationProbability(wetter=20, normal=35, drier=45)
    return PrecipitationProbability(wetter=33, normal=34, drier=33)


def summarize_season(records: list[SeasonalForecastRecord]) -> SeasonalSummary:
    """Threshold rules over the mean anomalies across the horizon."""
    anomalies = pd.DataFrame(
        [(r.temperature_anomaly, r.precipitation_anomaly) for r in records],
        columns=["temperature", "precipitation"],
        dtype=float,
    )
    if anomalies.isna().all().all():
        return SeasonalSummary(
            dominant_pattern=INSUFFICIENT_PATTERN,
            key_features=["Only soil moisture available in the forecast"],
            agricultural_implications=["Rely on local observations for planting decisions"],
        )

    # Mean over the months that carry a value; a field missing everywhere counts as normal.
    means = anomalies.mean().fillna(0.0)
    mean_temp = float(means["temperature"])
    mean_precip = float(means["precipitation"])

    temp_word = "Warmer" if mean_temp > 1.0 else "Cooler" if mean_temp < -1.0 else None
    precip_word = "wetter" if mean_precip > 15 else "drier" if mean_precip < -15 else None

    if temp_word and precip_word:
        pattern = f"{temp_word} and {precip_word} than normal"
    elif temp_word:
        pattern = f"{temp_word} than normal"
    elif precip_word:
        pattern = f"{precip_word.capitalize()} than normal"
    else:
        pattern = NORMAL_PATTERN

    features = []
    implications = []
    if temp_word == "Warmer":
        features.append(f"Temperatures about {mean_temp:.1f}°C above normal")
        implications.append("Elevated heat stress risk during flowering")
    elif temp_word == "Cooler":
        features.append(f"Temperatures about {abs(mean_temp):.1f}°C below normal")
        implications.append("Slower crop development; delay sowing of warm-season crops")
    else:
        features.append("Moderate temperatures")

    if precip_word == "wetter":
        features.append(f"Rainfall about {mean_precip:.0f}% above normal")
        implications.append("Waterlogging and fungal disease risk")
    elif precip_word == "drier":
        features.append(f"Rainfall about {abs(mean_precip):.0f}% below normal")
        implications.append("Increased irrigation demand")
    else:
        features.append("Average rainfall")

    if not implications:
        implications = ["Good growing conditions", "Normal irrigation needs"]

    return SeasonalSummary(dominant_pattern=pattern, key_features=features, agricultural_implications=implications)
