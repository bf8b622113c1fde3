# ABOUTME: Report orchestrator: fetches all providers concurrently, analyzes, caches, and persists.
# ABOUTME: Any subset of providers may fail; the report is still assembled with degraded inputs.

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone

from agroclimate.agriculture import analyze_agriculture
from agroclimate.analysis import analyze_historical, synthesize_seasonal
from agroclimate.cache import HotCache, ReportCache, report_key
from agroclimate.config import Settings
from agroclimate.current_service import fetch_current
from agroclimate.deps import ProviderDeps, create_deps
from agroclimate.errors import AnalysisError, PersistenceError
from agroclimate.historical_service import fetch_historical_series
from agroclimate.insights import generate_insights
from agroclimate.models import (
    AiInsights,
    ComprehensiveAnalysis,
    Coordinate,
    CurrentConditions,
    DataSources,
    DataSourceStatus,
    DateRange,
    HistoricalAnalysis,
    HistoricalRecord,
    HistoricalSeries,
    Location,
    SeasonalForecastRecord,
    SustainabilityScore,
)
from agroclimate.seasonal_service import fetch_seasonal
from agroclimate.storage import ReportStore

logger = logging.getLogger(__name__)

HISTORICAL_CONFIDENCE = 95.0
SEASONAL_CONFIDENCE = 80.0
SEASONAL_PARTIAL_CONFIDENCE = 60.0
CURRENT_CONFIDENCE = 95.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hot_key(source: str, coord: Coordinate) -> str:
    return f"{source}:{coord.cache_key}"


class AnalysisService:
    """Entry point for comprehensive weather analyses.

    Caches are plain objects owned by the service; pass your own to share or isolate them.
    """

    def __init__(
        self,
        deps: ProviderDeps,
        settings: Settings | None = None,
        *,
        hot_cache: HotCache | None = None,
        report_cache: ReportCache | None = None,
        store: ReportStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.deps = deps
        self.settings = settings or Settings()
        self.clock = clock
        self.report_ttl = timedelta(hours=self.settings.report_cache_ttl_hours)
        if hot_cache is None:
            hot_cache = HotCache(
                ttl_seconds=self.settings.hot_cache_ttl_seconds,
                maxsize=self.settings.hot_cache_max_entries,
            )
        if report_cache is None:
            report_cache = ReportCache(self.report_ttl, clock, maxsize=self.settings.report_cache_max_entries)
        self.hot_cache = hot_cache
        self.report_cache = report_cache
        self.store = store

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalysisService":
        store = ReportStore(settings.database_url) if settings.database_url else None
        return cls(create_deps(), settings, store=store)

    async def aclose(self) -> None:
        await self.deps.aclose()
        if self.store is not None:
            self.store.dispose()

    # --- Narrow accessors ---------------------------------------------------

    async def get_historical_data(self, latitude: float, longitude: float) -> list[HistoricalRecord]:
        """Validated daily history for the lookback window. Raises ProviderError on failure."""
        coord = Coordinate.create(latitude, longitude)
        series = await self._historical(coord, self.clock().date())
        return series.records

    async def get_seasonal_forecast(self, latitude: float, longitude: float) -> list[SeasonalForecastRecord]:
        """Monthly seasonal forecast records. Raises ProviderError on failure."""
        coord = Coordinate.create(latitude, longitude)
        return await self._seasonal(coord, self.clock().date())

    # --- Orchestration --------------------------------------------------------

    async def generate_comprehensive_analysis(
        self,
        latitude: float,
        longitude: float,
        land_id: int | None = None,
        force_refresh: bool = False,
    ) -> ComprehensiveAnalysis:
        """Build, or return a fresh cached, report for a location.

        Raises ValidationError for out-of-range coordinates. Provider failures never
        propagate; they show up as failed entries in data_sources.
        """
        coord = Coordinate.create(latitude, longitude)
        key = report_key(coord, land_id)

        try:
            if not force_refresh:
                cached = await self._lookup(coord, land_id, key)
                if cached is not None:
                    return cached

            analysis = await self._build(coord, land_id)
        except AnalysisError:
            raise
        except Exception as e:
            logger.exception("Analysis for %s failed unexpectedly", coord.cache_key)
            raise AnalysisError(f"Analysis for {coord.cache_key} failed: {e}") from e

        self.report_cache.set(key, analysis)
        await self._persist(analysis)
        return analysis

    async def _lookup(self, coord: Coordinate, land_id: int | None, key: str) -> ComprehensiveAnalysis | None:
        cached = self.report_cache.get(key)
        if cached is not None:
            logger.info("Report cache hit for %s", key)
            return cached
        if self.store is None:
            return None

        try:
            stored = await asyncio.to_thread(self.store.latest, coord, land_id, self.clock() - self.report_ttl)
        except PersistenceError as e:
            logger.warning("Report store lookup failed: %s", e)
            return None
        if stored is None:
            return None
        logger.info("Report store hit for %s", key)
        self.report_cache.set(key, stored)
        return stored

    async def _persist(self, analysis: ComprehensiveAnalysis) -> None:
        if self.store is None:
            return
        try:
            await asyncio.to_thread(self.store.save, analysis)
        except PersistenceError as e:
            logger.warning("Report %s was not persisted: %s", analysis.analysis_id, e)

    async def _build(self, coord: Coordinate, land_id: int | None) -> ComprehensiveAnalysis:
        started = time.perf_counter()
        now = self.clock()
        today = now.date()
        logger.info("Generating analysis for %s (land %s)", coord.cache_key, land_id)

        historical, seasonal, current = await asyncio.gather(
            self._historical(coord, today),
            self._seasonal(coord, today),
            self._current(coord, now),
            return_exceptions=True,
        )
        historical = _settled("historical", historical)
        seasonal = _settled("seasonal", seasonal)
        current = _settled("current", current)

        historical_analysis = analyze_historical(historical.records) if historical is not None else HistoricalAnalysis()
        seasonal_forecast = synthesize_seasonal(seasonal or [])
        current_conditions = current if current is not None else CurrentConditions(timestamp=now)
        agricultural = analyze_agriculture(
            coord,
            historical_analysis if historical is not None else None,
            seasonal_forecast if seasonal else None,
        )

        draft = ComprehensiveAnalysis(
            analysis_id=str(uuid.uuid4()),
            location=Location(latitude=coord.latitude, longitude=coord.longitude),
            generated_at=now,
            land_id=land_id,
            data_sources=DataSources(
                historical=self._historical_status(historical),
                seasonal=self._seasonal_status(seasonal),
                current=_current_status(current),
            ),
            historical_analysis=historical_analysis,
            seasonal_forecast=seasonal_forecast,
            current_conditions=current_conditions,
            agricultural_analysis=agricultural,
            ai_insights=AiInsights(sustainability_score=SustainabilityScore(score=0)),
        )
        analysis = draft.model_copy(
            update={
                "ai_insights": generate_insights(draft),
                "processing_time_ms": int((time.perf_counter() - started) * 1000),
            }
        )
        logger.info(
            "Analysis %s for %s done in %d ms (historical %s, seasonal %s, current %s)",
            analysis.analysis_id,
            coord.cache_key,
            analysis.processing_time_ms,
            analysis.data_sources.historical.status,
            analysis.data_sources.seasonal.status,
            analysis.data_sources.current.status,
        )
        return analysis

    # --- Cached fetchers ------------------------------------------------------

    async def _historical(self, coord: Coordinate, today: date) -> HistoricalSeries:
        return await self.hot_cache.get_or_fetch(
            hot_key("historical", coord),
            lambda: fetch_historical_series(self.deps.http_client, coord, self.settings, today),
        )

    async def _seasonal(self, coord: Coordinate, today: date) -> list[SeasonalForecastRecord]:
        return await self.hot_cache.get_or_fetch(
            hot_key("seasonal", coord),
            lambda: fetch_seasonal(self.deps.http_client, coord, self.settings, today),
        )

    async def _current(self, coord: Coordinate, now: datetime) -> CurrentConditions:
        return await self.hot_cache.get_or_fetch(
            hot_key("current", coord),
            lambda: fetch_current(self.deps.current_client, coord, self.settings, now),
        )

    # --- Source status --------------------------------------------------------

    def _historical_status(self, series: HistoricalSeries | None) -> DataSourceStatus:
        if series is None:
            return DataSourceStatus.failed()
        time_range = DateRange(start=series.records[0].date, end=series.records[-1].date)
        if series.chunks_failed == 0:
            return DataSourceStatus(
                status="success",
                confidence=HISTORICAL_CONFIDENCE,
                record_count=len(series.records),
                time_range=time_range,
            )
        succeeded = series.chunks_requested - series.chunks_failed
        return DataSourceStatus(
            status="partial",
            confidence=round(HISTORICAL_CONFIDENCE * succeeded / series.chunks_requested, 1),
            record_count=len(series.records),
            time_range=time_range,
        )

    def _seasonal_status(self, records: list[SeasonalForecastRecord] | None) -> DataSourceStatus:
        if not records:
            return DataSourceStatus.failed()
        complete = len(records) >= self.settings.seasonal_months and all(r.completeness >= 1.0 for r in records)
        return DataSourceStatus(
            status="success" if complete else "partial",
            confidence=SEASONAL_CONFIDENCE if complete else SEASONAL_PARTIAL_CONFIDENCE,
            record_count=len(records),
            time_range=DateRange(start=records[0].valid_date, end=records[-1].valid_date),
        )


def _current_status(current: CurrentConditions | None) -> DataSourceStatus:
    if current is None:
        return DataSourceStatus.failed()
    return DataSourceStatus(status="success", confidence=CURRENT_CONFIDENCE, record_count=1)


def _settled(source: str, result):
    """Unwrap a gather result, logging and dropping a failed fetch."""
    if isinstance(result, AnalysisError):
        logger.warning("%s data unavailable: %s", source.capitalize(), result)
        return None
    if isinstance(result, Exception):
        logger.error("%s fetch raised unexpectedly", source.capitalize(), exc_info=result)
        return None
    if isinstance(result, BaseException):
        raise result
    return result
