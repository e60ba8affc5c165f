"""
Weather ingestion job.

Every WEATHER_INGESTION_SECONDS (15 min) the job:

    1. fetches Delhi-wide weather (OpenWeather → IMD → simulation-if-enabled)
       and caches it under ``weather:aggregate`` for the ward aggregator
    2. groups stored wards into 0.1° grid cells and fetches each cell once
       (10-minute cache); a cell without its own reading uses the city one
    3. derives per-ward rainfall with a ±10 % variation keyed on the ward id
    4. classifies each ward:
         rain > 1 mm or forecast > 5 mm  → single-ward POST /predict
         otherwise, or when /predict fails → ratio heuristic
    5. writes rainfall + risk pair back to the ward store
    6. publishes ``ward-update`` per ward, ``data-refresh`` once, and
       ``alert-new`` when critical wards exist and forecast_3h > 30 mm

No weather source configured → the cycle is skipped and the store keeps
its last values.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from monsoon.app.core.cache import cache_set
from monsoon.app.core.config import settings
from monsoon.app.core.errors import PersistenceUnavailableError, SourceUnavailableError
from monsoon.app.ingestion.prediction_client import PredictionClient
from monsoon.app.ingestion.ward_aggregator import AGGREGATE_WEATHER_KEY, place
from monsoon.app.ingestion.weather_service import WeatherObservation, WeatherService
from monsoon.app.realtime.events import AlertNotice, DataRefresh, EventBus, Topic, WardDelta
from monsoon.app.risk.classifier import classify, classify_by_ratio
from monsoon.app.spatial.coordinates import grid_cell, name_hash, unit_jitter
from monsoon.app.wards.models import RiskAssessment, RiskLevel, Ward
from monsoon.app.wards.repository import WardRepository

logger = logging.getLogger(__name__)

PREDICT_RAIN_MM = 1.0
PREDICT_FORECAST_MM = 5.0
HEAVY_FORECAST_MM = 30.0
VARIATION = 0.10

Cell = Tuple[float, float]


def ward_variation(ward_id: str) -> float:
    """Stable multiplier in [0.9, 1.1) for one ward."""
    return 1.0 - VARIATION + unit_jitter(ward_id, "rain") * 2 * VARIATION


def prediction_features(ward: Ward, rainfall: float) -> Dict[str, Any]:
    """Body for single-ward POST /predict."""
    h = abs(name_hash(ward.name))
    return {
        "rainfall": round(rainfall, 2),
        "water_logging_reports": ward.drainage_stress_index or h % 15,
        "pothole_count": ward.pothole_density or h % 10,
    }


def group_by_cell(wards: List[Ward]) -> Dict[Optional[Cell], List[Ward]]:
    cells: Dict[Optional[Cell], List[Ward]] = defaultdict(list)
    for ward in wards:
        located = place(ward)
        key = grid_cell(located.latitude, located.longitude) if located.has_location else None
        cells[key].append(ward)
    return cells


class WeatherIngestionJob:
    """
    Usage:
        job = WeatherIngestionJob(weather, repository, client, bus)
        await job.start()          # loop every WEATHER_INGESTION_SECONDS
        summary = await job.run_once()
        await job.stop()
    """

    def __init__(
        self,
        weather: WeatherService,
        repository: WardRepository,
        client: PredictionClient,
        bus: EventBus,
        interval: Optional[float] = None,
    ):
        self.weather = weather
        self.repository = repository
        self.client = client
        self.bus = bus
        self.interval = interval or settings.WEATHER_INGESTION_SECONDS
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.last_run: Optional[Dict[str, Any]] = None

    # ── Lifecycle ──

    async def start(self):
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Weather ingestion started (every %ss)", self.interval)

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Weather ingestion stopped")

    async def _run_loop(self):
        while self._running:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("Weather ingestion cycle failed: %s", e)
                await asyncio.sleep(60)

    # ── One cycle ──

    async def run_once(self) -> Optional[Dict[str, Any]]:
        started = time.perf_counter()
        city = await self.weather.fetch_city()
        if city is None:
            logger.info("No weather source available, skipping ingestion cycle")
            return None
        await cache_set(AGGREGATE_WEATHER_KEY, city.to_dict(), ttl=int(self.interval) * 2)

        stored = await self.repository.list_wards()
        if not stored.success or not stored.data:
            logger.info("No stored wards to update")
            await self.bus.publish(
                Topic.DATA_REFRESH,
                DataRefresh("weather", city.source, 0, city.rainfall, city.forecast_3h),
            )
            return {"source": city.source, "updated": 0}

        cells = group_by_cell(stored.data)
        logger.debug("Grouped %d wards into %d grid cells", len(stored.data), len(cells))

        updated: List[Tuple[Ward, WeatherObservation]] = []
        for cell, wards in cells.items():
            obs = city
            if cell is not None:
                obs = await self.weather.fetch_for_location(cell) or city
            for ward in wards:
                updated.append((await self.update_ward(ward, obs), obs))

        written = 0
        try:
            written = await self.repository.bulk_update_conditions(w for w, _ in updated)
        except PersistenceUnavailableError as e:
            logger.warning("Could not write weather update: %s", e.message)

        for ward, obs in updated:
            await self.bus.publish(Topic.WARD_UPDATE, WardDelta(
                ward_id=ward.id,
                ward_name=ward.name,
                rainfall=ward.current_rainfall,
                forecast=ward.forecast_rainfall_3h,
                risk_level=ward.risk_level.value,
                preparedness_score=ward.preparedness_score,
                temperature=obs.temperature,
                humidity=obs.humidity,
            ))
        await self.bus.publish(
            Topic.DATA_REFRESH,
            DataRefresh("weather", city.source, written, city.rainfall, city.forecast_3h),
        )
        await self.check_alerts([w for w, _ in updated], city)

        self.last_run = {
            "source": city.source,
            "updated": written,
            "rainfall": city.rainfall,
            "forecast_3h": city.forecast_3h,
            "duration_ms": round((time.perf_counter() - started) * 1000, 1),
        }
        logger.info(
            "Weather data updated: %d/%d wards from %s",
            written, len(updated), city.source,
            extra={"source": city.source, "ward_count": written},
        )
        return self.last_run

    async def update_ward(self, ward: Ward, obs: WeatherObservation) -> Ward:
        variation = ward_variation(ward.id)
        rainfall = round(obs.rainfall * variation, 1)
        forecast = round(obs.forecast_3h * variation, 1)
        assessment = await self.assess(ward, rainfall, forecast)
        return ward.with_rainfall(rainfall, forecast).with_assessment(assessment)

    async def assess(self, ward: Ward, rainfall: float, forecast: float) -> RiskAssessment:
        if rainfall > PREDICT_RAIN_MM or forecast > PREDICT_FORECAST_MM:
            try:
                payload = await self.client.predict_ward(
                    prediction_features(ward, max(rainfall, forecast))
                )
            except SourceUnavailableError as e:
                logger.debug("Single-ward prediction for %s failed: %s", ward.id, e.message)
            else:
                # /predict reports mpi_score as a 0–1 flood risk
                probability = payload.get("probability")
                if probability is None:
                    probability = payload.get("mpi_score")
                return classify(
                    rainfall, forecast, ward.failure_threshold,
                    external={"probability": probability, "risk_level": payload.get("risk_level")},
                )
        return classify_by_ratio(rainfall, forecast, ward.failure_threshold)

    async def check_alerts(self, wards: List[Ward], city: WeatherObservation) -> Optional[AlertNotice]:
        critical = [w for w in wards if w.risk_level == RiskLevel.CRITICAL]
        if not critical or city.forecast_3h <= HEAVY_FORECAST_MM:
            return None
        notice = AlertNotice(
            severity="high",
            message="Heavy rainfall expected in: " + ", ".join(w.name for w in critical),
            affected_ward_ids=tuple(w.id for w in critical),
            expected_rainfall_mm=round(city.forecast_3h, 1),
        )
        await self.bus.publish(Topic.ALERT_NEW, notice)
        logger.warning(
            "Heavy rainfall alert: %.1fmm expected, %d critical wards",
            city.forecast_3h, len(critical),
        )
        return notice
