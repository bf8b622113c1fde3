# ABOUTME: SQLAlchemy persistence for completed comprehensive analyses.
# ABOUTME: One row per report keyed by rounded coordinates, optional land id, and analysis time.

import logging
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Integer, String, Text, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from agroclimate.errors import PersistenceError
from agroclimate.models import ComprehensiveAnalysis, Coordinate

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for ORM models."""

    pass


class StoredAnalysis(Base):
    __tablename__ = "comprehensive_weather_analysis"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    latitude: Mapped[float] = mapped_column(Float, index=True)
    longitude: Mapped[float] = mapped_column(Float, index=True)
    land_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    # Naive UTC; SQLite drops tzinfo.
    analysis_timestamp: Mapped[datetime] = mapped_column(DateTime, index=True)

    historical_confidence: Mapped[float] = mapped_column(Float)
    seasonal_confidence: Mapped[float] = mapped_column(Float)
    current_confidence: Mapped[float] = mapped_column(Float)
    overall_score: Mapped[int] = mapped_column(Integer)
    processing_time_ms: Mapped[int] = mapped_column(Integer, default=0)

    # The full report as JSON, restored with ComprehensiveAnalysis.model_validate_json.
    payload: Mapped[str] = mapped_column(Text)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ReportStore:
    """Persists reports and finds the newest fresh one for a location."""

    def __init__(self, database_url: str):
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_engine(database_url, connect_args=connect_args)
        self._sessions = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        Base.metadata.create_all(self.engine)

    def save(self, analysis: ComprehensiveAnalysis) -> None:
        coord = Coordinate(latitude=analysis.location.latitude, longitude=analysis.location.longitude)
        row = StoredAnalysis(
            id=analysis.analysis_id,
            latitude=coord.rounded_latitude,
            longitude=coord.rounded_longitude,
            land_id=analysis.land_id,
            analysis_timestamp=_naive_utc(analysis.generated_at),
            historical_confidence=analysis.data_sources.historical.confidence,
            seasonal_confidence=analysis.data_sources.seasonal.confidence,
            current_confidence=analysis.data_sources.current.confidence,
            overall_score=analysis.agricultural_analysis.overall_suitability,
            processing_time_ms=analysis.processing_time_ms,
            payload=analysis.model_dump_json(),
        )
        try:
            with self._sessions() as session:
                # merge: a concurrent writer may already have stored this id
                session.merge(row)
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not store analysis {analysis.analysis_id}: {e}") from e
        logger.info("Stored analysis %s", analysis.analysis_id)

    def latest(
        self, coord: Coordinate, land_id: int | None, newer_than: datetime
    ) -> ComprehensiveAnalysis | None:
        """Newest report for the location generated after newer_than, or None."""
        query = (
            select(StoredAnalysis)
            .where(StoredAnalysis.latitude == coord.rounded_latitude)
            .where(StoredAnalysis.longitude == coord.rounded_longitude)
            .where(StoredAnalysis.analysis_timestamp >= _naive_utc(newer_than))
            .order_by(StoredAnalysis.analysis_timestamp.desc())
            .limit(1)
        )
        if land_id is None:
            query = query.where(StoredAnalysis.land_id.is_(None))
        else:
            query = query.where(StoredAnalysis.land_id == land_id)

        try:
            with self._sessions() as session:
                row = session.scalars(query).first()
                payload = row.payload if row is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read stored analysis: {e}") from e

        if payload is None:
            return None
        try:
            return ComprehensiveAnalysis.model_validate_json(payload)
        except ValueError as e:
            raise PersistenceError(f"Stored analysis payload is unreadable: {e}") from e

    def dispose(self) -> None:
        self.engine.dispose()
