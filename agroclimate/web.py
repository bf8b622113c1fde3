# ABOUTME: ASGI web entry point exposing the comprehensive analysis and raw provider series.
# ABOUTME: Starlette app with a lifespan-managed AnalysisService and request logging middleware.

import contextlib
import logging
import time

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from agroclimate.config import Settings
from agroclimate.errors import AnalysisError, ProviderError, ValidationError
from agroclimate.service import AnalysisService, utc_now

logger = logging.getLogger(__name__)


class RequestLogMiddleware:
    """ASGI middleware that logs method, path, status, and duration of each HTTP request."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        status = 500

        async def send_wrapper(message):
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            logger.info(
                "%s %s -> %d (%.0f ms)",
                scope.get("method"),
                scope["path"],
                status,
                (time.perf_counter() - started) * 1000,
            )


def _error(status: int, message: str, error: str | None = None) -> JSONResponse:
    body = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    return JSONResponse(body, status_code=status)


def _coordinates(raw_lat, raw_lon) -> tuple[float, float] | None:
    if raw_lat in (None, "") or raw_lon in (None, ""):
        return None
    try:
        return float(raw_lat), float(raw_lon)
    except ValueError:
        return None


def _flag(value: str | None) -> bool:
    return value is not None and value.lower() in ("1", "true", "yes")


async def comprehensive(request: Request) -> JSONResponse:
    params = request.query_params
    coords = _coordinates(params.get("latitude"), params.get("longitude"))
    if coords is None:
        return _error(400, "Coordinates are required")
    latitude, longitude = coords

    land_id = None
    if params.get("landId"):
        try:
            land_id = int(params["landId"])
        except ValueError:
            return _error(400, "landId must be an integer")

    service: AnalysisService = request.app.state.service
    try:
        analysis = await service.generate_comprehensive_analysis(
            latitude, longitude, land_id=land_id, force_refresh=_flag(params.get("forceRefresh"))
        )
    except ValidationError as e:
        return _error(400, "Invalid coordinates", str(e))
    except AnalysisError as e:
        return _error(500, "Failed to generate comprehensive analysis", str(e))

    return JSONResponse(
        {
            "success": True,
            "coordinates": {"latitude": latitude, "longitude": longitude},
            "analysis": analysis.model_dump(mode="json"),
            "generatedAt": analysis.generated_at.isoformat(),
        }
    )


async def historical(request: Request) -> JSONResponse:
    coords = _coordinates(request.path_params.get("latitude"), request.path_params.get("longitude"))
    if coords is None:
        return _error(400, "Coordinates are required")
    latitude, longitude = coords

    service: AnalysisService = request.app.state.service
    try:
        records = await service.get_historical_data(latitude, longitude)
    except ValidationError as e:
        return _error(400, "Invalid coordinates", str(e))
    except ProviderError as e:
        return _error(502, "Failed to fetch historical weather data", str(e))

    return JSONResponse(
        {
            "success": True,
            "coordinates": {"latitude": latitude, "longitude": longitude},
            "data": [r.model_dump(mode="json") for r in records],
            "dataSource": "NASA_POWER",
            "generatedAt": utc_now().isoformat(),
        }
    )


async def seasonal(request: Request) -> JSONResponse:
    coords = _coordinates(request.path_params.get("latitude"), request.path_params.get("longitude"))
    if coords is None:
        return _error(400, "Coordinates are required")
    latitude, longitude = coords

    service: AnalysisService = request.app.state.service
    try:
        records = await service.get_seasonal_forecast(latitude, longitude)
    except ValidationError as e:
        return _error(400, "Invalid coordinates", str(e))
    except ProviderError as e:
        return _error(502, "Failed to fetch seasonal forecast", str(e))

    return JSONResponse(
        {
            "success": True,
            "coordinates": {"latitude": latitude, "longitude": longitude},
            "forecastMonths": len(records),
            "data": [r.model_dump(mode="json") for r in records],
            "model": "ECMWF_SEAS5",
            "dataSource": "Open-Meteo",
            "generatedAt": utc_now().isoformat(),
        }
    )


def create_app(service: AnalysisService | None = None, settings: Settings | None = None):
    """Build the ASGI app. Without a service, one is created from settings at startup and closed at shutdown."""

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        if service is not None:
            app.state.service = service
            yield
            return

        config = settings or Settings()
        logging.basicConfig(level=config.log_level.upper())
        owned = AnalysisService.from_settings(config)
        app.state.service = owned
        try:
            yield
        finally:
            await owned.aclose()

    inner = Starlette(
        routes=[
            Route("/api/weather/comprehensive", comprehensive),
            Route("/api/weather/historical/{latitude}/{longitude}", historical),
            Route("/api/weather/seasonal/{latitude}/{longitude}", seasonal),
        ],
        lifespan=lifespan,
    )
    return RequestLogMiddleware(inner)


app = create_app()
