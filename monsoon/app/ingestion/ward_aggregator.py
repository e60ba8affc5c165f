"""
ward_aggregator.py — one canonical ward collection from three sources.

Priority chain
==============

    (a) EXTERNAL   POST /predict/all  + per-ward GET /wards/{id} details
          │  SourceUnavailableError / MalformedResponseError
          ▼
        ping GET /health, wait PREDICTION_RETRY_DELAY, retry (a) once
          │  still failing
          ▼
    (b) LOCAL      wards from the ward store, carrying the rainfall the
          │        weather ingestion job last wrote
          │  store unreachable or empty
          ▼
    (c) DEMO       fixed 8-ward dataset — never empty

Rainfall input for (a)
======================
The local weather cache (``weather:aggregate``, written by the ingestion
job) or, failing that, the stored wards' average ``current_rainfall`` is
scaled into the service's windows:

    rain_1h = avg   rain_3h = 2·avg   rain_6h = 3·avg
    rain_24h = 5·avg   rain_forecast_3h = 1.5·avg

Zeros are sent when neither is available.

Merge (a)
=========
External fields win.  Missing infrastructure fields are synthesised
(see ``wards.synthetic``).  Ward ids like ``12N`` are named
``North Delhi - Ward 12``.  Tier and score come from one call to the
classifier with the model output as the driving signal.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from monsoon.app.core.cache import cache_get
from monsoon.app.core.config import settings
from monsoon.app.core.errors import MalformedResponseError, SourceUnavailableError
from monsoon.app.ingestion.prediction_client import (
    SOURCE,
    PredictionClient,
    RainfallInput,
    WardDetails,
    WardPrediction,
)
from monsoon.app.risk.classifier import classify
from monsoon.app.spatial.coordinates import resolve
from monsoon.app.wards.demo import demo_wards
from monsoon.app.wards.models import DataSource, Ward, utc_now_iso
from monsoon.app.wards.repository import WardRepository
from monsoon.app.wards.synthetic import fill_infrastructure

logger = logging.getLogger(__name__)

AGGREGATE_WEATHER_KEY = "weather:aggregate"

ZONE_LETTERS = {
    "E": "East Delhi",
    "N": "North Delhi",
    "S": "South Delhi",
    "W": "West Delhi",
    "C": "Central Delhi",
}


@dataclass(frozen=True)
class AggregationResult:
    wards: Tuple[Ward, ...]
    source: DataSource
    errors: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def status(self) -> str:
        """live | degraded | demo, as shown by the dashboard status badge."""
        return {
            DataSource.EXTERNAL: "live",
            DataSource.LOCAL: "degraded",
            DataSource.DEMO: "demo",
        }[self.source]


def ward_name_for(ward_id: str) -> Tuple[str, str]:
    """'12N' → ('North Delhi - Ward 12', 'North Delhi')."""
    zone = ZONE_LETTERS.get(ward_id[-1:].upper(), "Delhi") if ward_id else "Delhi"
    number = re.sub(r"[A-Za-z]", "", ward_id) or ward_id
    return f"{zone} - Ward {number}", zone


def place(ward: Ward) -> Ward:
    """Attach resolved coordinates if the ward has none."""
    if ward.has_location:
        return ward
    coords = resolve(ward.name, ward.zone)
    return ward.with_location(*coords) if coords else ward.with_location(None, None)


class WardAggregator:
    def __init__(
        self,
        client: PredictionClient,
        repository: WardRepository,
        retry_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.repository = repository
        self.retry_delay = settings.PREDICTION_RETRY_DELAY if retry_delay is None else retry_delay
        self._sleep = sleep

    async def aggregate(self) -> AggregationResult:
        """Walk the chain. Never raises, never returns an empty collection."""
        errors: List[str] = []
        stored = await self.repository.list_wards()
        rainfall = await self.local_rainfall(stored.data)

        for attempt in (1, 2):
            try:
                wards = await self.from_external(rainfall)
                logger.info(
                    "Loaded %d wards from prediction service", len(wards),
                    extra={"source": "external", "ward_count": len(wards)},
                )
                return AggregationResult(tuple(wards), DataSource.EXTERNAL, tuple(errors))
            except SourceUnavailableError as e:
                errors.append(e.message)
                logger.warning("Prediction service attempt %d failed: %s", attempt, e.message)
                if attempt == 1:
                    await self.client.ping()
                    await self._sleep(self.retry_delay)

        if stored.success and stored.data:
            wards = tuple(place(w) for w in stored.data)
            logger.info(
                "Using %d wards from local store", len(wards),
                extra={"source": "local", "ward_count": len(wards)},
            )
            return AggregationResult(wards, DataSource.LOCAL, tuple(errors))

        errors.append("ward store unavailable" if not stored.success else "ward store empty")
        wards = tuple(demo_wards())
        logger.warning(
            "All sources failed, serving %d demo wards", len(wards),
            extra={"source": "demo", "ward_count": len(wards)},
        )
        return AggregationResult(wards, DataSource.DEMO, tuple(errors))

    async def local_rainfall(self, stored: List[Ward]) -> RainfallInput:
        cached = await cache_get(AGGREGATE_WEATHER_KEY)
        if isinstance(cached, dict) and cached.get("rainfall") is not None:
            try:
                return RainfallInput.from_average(float(cached["rainfall"]))
            except (TypeError, ValueError):
                pass
        if stored:
            avg = sum(w.current_rainfall for w in stored) / len(stored)
            return RainfallInput.from_average(avg)
        return RainfallInput()

    async def from_external(self, rainfall: RainfallInput) -> List[Ward]:
        batch = await self.client.predict_all(rainfall)
        ids = list(dict.fromkeys(p.ward_id for p in batch.wards))
        details = await self.client.fetch_details_batched(ids)
        stamp = batch.timestamp or utc_now_iso()

        wards: Dict[str, Ward] = {}
        for prediction in batch.wards:
            if prediction.ward_id in wards:
                logger.debug("Duplicate ward id %s in prediction batch", prediction.ward_id)
                continue
            try:
                wards[prediction.ward_id] = self._merge(
                    prediction, details.get(prediction.ward_id), rainfall, stamp,
                )
            except (TypeError, ValueError, AttributeError) as e:
                raise MalformedResponseError(
                    SOURCE, f"ward {prediction.ward_id}: {e}",
                ) from e
        return list(wards.values())

    def _merge(
        self,
        prediction: WardPrediction,
        details: Optional[WardDetails],
        rainfall: RainfallInput,
        stamp: str,
    ) -> Ward:
        details = details or WardDetails()
        name, zone = ward_name_for(prediction.ward_id)
        infra = fill_infrastructure(
            prediction.ward_id,
            prediction.probability,
            details.static_features,
            details.historical_features,
        )
        current = prediction.rain_1h if prediction.rain_1h is not None else rainfall.rain_1h
        forecast = prediction.rain_3h if prediction.rain_3h is not None else rainfall.rain_3h
        threshold = infra.pop("failure_threshold")

        assessment = classify(current, forecast, threshold, external=prediction.external_output())
        ward = Ward(
            id=prediction.ward_id,
            name=name,
            zone=zone,
            current_rainfall=max(0.0, current),
            forecast_rainfall_3h=max(0.0, forecast),
            failure_threshold=threshold,
            risk_level=assessment.risk_level,
            preparedness_score=assessment.preparedness_score,
            probability=prediction.probability,
            explanation=prediction.explanation,
            source=DataSource.EXTERNAL,
            last_updated=stamp,
            **infra,
        )
        return place(ward)
