# ABOUTME: Rule-based findings, recommendations, and sustainability scoring.
# ABOUTME: Deterministic text generation; no external AI service is called.

from agroclimate.models import (
    AgriculturalAnalysis,
    AiInsights,
    ComprehensiveAnalysis,
    CurrentConditions,
    DataSources,
    HistoricalAnalysis,
    Recommendation,
    SeasonalForecast,
    SustainabilityScore,
)

MARKETING_SUGGESTIONS = [
    "Focus on high-value crops suitable for local climate",
    "Consider organic farming practices for premium markets",
]


def generate_insights(analysis: ComprehensiveAnalysis) -> AiInsights:
    """Summarise an assembled analysis. Identical input always yields identical insights.

    Reads every section except ai_insights, so a draft report with placeholder insights
    can be passed in.
    """
    agricultural = analysis.agricultural_analysis
    risk_types = {r.type for r in agricultural.risk_assessment.weather_risks}
    return AiInsights(
        key_findings=_key_findings(
            analysis.data_sources,
            analysis.historical_analysis,
            analysis.seasonal_forecast,
            analysis.current_conditions,
            agricultural,
        ),
        recommendations=_recommendations(agricultural, risk_types),
        marketing_suggestions=list(MARKETING_SUGGESTIONS),
        sustainability_score=_sustainability(agricultural),
    )


def _key_findings(
    data_sources: DataSources,
    historical: HistoricalAnalysis,
    seasonal: SeasonalForecast,
    current: CurrentConditions,
    agricultural: AgriculturalAnalysis,
) -> list[str]:
    findings = []

    counts = historical.valid_counts
    if data_sources.historical.status == "failed":
        findings.append("Historical climate data unavailable; climatic normals use defaults")
    else:
        temperature = historical.climatic_normals.temperature.annual
        precipitation = historical.climatic_normals.precipitation.annual
        if counts.temperature:
            findings.append(
                f"Average temperature {temperature.avg:.1f}°C (range {temperature.min:.1f} to "
                f"{temperature.max:.1f}°C) over {counts.temperature} days of observations"
            )
        if counts.precipitation:
            findings.append(
                f"Mean rainfall {precipitation.avg:.1f} mm/day, {precipitation.total:.0f} mm in total"
            )
        if historical.extreme_events:
            findings.append(f"{len(historical.extreme_events)} extreme weather events in the historical record")
        if historical.trends.temperature_trend:
            findings.append(f"Temperature trend of {historical.trends.temperature_trend:+.2f}°C per decade")

    if data_sources.seasonal.status == "failed":
        findings.append("Seasonal forecast unavailable")
    else:
        findings.append(f"Seasonal outlook: {seasonal.seasonal_summary.dominant_pattern}")

    if data_sources.current.status == "failed":
        findings.append("Current conditions unavailable")
    else:
        findings.append(
            f"Currently {current.temperature:.1f}°C with {current.description or 'no description'}, "
            f"humidity {current.humidity:.0f}%"
        )

    findings.append(
        f"Estimated soil type {agricultural.soil_conditions.type}; "
        f"overall suitability {agricultural.overall_suitability}/100"
    )
    return findings


def _recommendations(agricultural: AgriculturalAnalysis, risk_types: set[str]) -> list[Recommendation]:
    need = agricultural.water_management.irrigation_need
    recommendations = []

    if need == "high":
        recommendations.append(
            Recommendation(
                category="irrigation",
                priority="high",
                description="Schedule supplemental irrigation; expected rainfall will not meet crop demand",
                timeline="Next 2 weeks",
                expected_benefit="Prevents yield loss from water stress",
            )
        )
    elif need == "medium":
        recommendations.append(
            Recommendation(
                category="irrigation",
                priority="medium",
                description="Monitor soil moisture and irrigate during critical periods",
                timeline="Throughout the season",
                expected_benefit="Stable soil moisture at key growth stages",
            )
        )
    else:
        recommendations.append(
            Recommendation(
                category="irrigation",
                priority="low",
                description="Rainfall should cover crop water needs; irrigate only during dry spells",
                timeline="As needed",
                expected_benefit="Lower water and pumping costs",
            )
        )

    if "drought" in risk_types or agricultural.risk_assessment.overall == "high":
        recommendations.append(
            Recommendation(
                category="planting",
                priority="high",
                description="Consider drought-resistant crops for upcoming season",
                timeline="Next 2 weeks",
                expected_benefit="Reduced water stress risk",
            )
        )
    else:
        recommendations.append(
            Recommendation(
                category="planting",
                priority="medium",
                description="Follow the regular seasonal planting calendar",
                timeline="Next 2 weeks",
                expected_benefit="Crops establish under favourable conditions",
            )
        )

    if "excess_rainfall" in risk_types:
        recommendations.append(
            Recommendation(
                category="pest_management",
                priority="medium",
                description="Scout for fungal disease after wet spells",
                timeline="After each heavy rain",
                expected_benefit="Early control of disease outbreaks",
            )
        )

    if "heat_stress" in risk_types:
        recommendations.append(
            Recommendation(
                category="harvest",
                priority="medium",
                description="Plan harvest ahead of peak heat to protect grain quality",
                timeline="Before the hottest month",
                expected_benefit="Less heat damage at maturity",
            )
        )

    recommendations.append(
        Recommendation(
            category="fertilization",
            priority="low",
            description="Split nitrogen applications to match crop uptake",
            timeline="At sowing and mid-season",
            expected_benefit="Better nutrient use efficiency",
        )
    )
    return recommendations


def _sustainability(agricultural: AgriculturalAnalysis) -> SustainabilityScore:
    need = agricultural.water_management.irrigation_need
    risk = agricultural.risk_assessment.overall
    score = 75
    factors = []
    improvements = ["Implement water conservation", "Use organic fertilizers"]

    if need == "high":
        score -= 10
        factors.append("High water usage")
        improvements.append("Switch to drip or sprinkler irrigation")
    elif need == "medium":
        factors.append("Moderate water usage")
    else:
        score += 5
        factors.append("Low water usage")

    if risk == "high":
        score -= 10
        factors.append("High weather risk exposure")
        improvements.append("Diversify crops to spread weather risk")
    elif risk == "low":
        score += 5
        factors.append("Low weather risk exposure")

    if agricultural.soil_conditions.type == "Sandy loam":
        factors.append("Light soil prone to nutrient leaching")
        improvements.append("Add compost to improve water retention")
    else:
        factors.append("Good soil health potential")

    return SustainabilityScore(score=max(0, min(100, score)), factors=factors, improvements=improvements)
