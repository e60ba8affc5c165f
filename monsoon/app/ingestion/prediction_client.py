"""
prediction_client.py — async client for the external flood-prediction service.

Endpoints (relative to PREDICTION_API_URL):

    POST /predict/all   {rainfall: {rain_1h, rain_3h, rain_6h, rain_24h,
                         rain_forecast_3h}}
                        → {wards: [{ward_id, probability, risk_level, rain_1h,
                           rain_3h, explanation, mpi_score?}], timestamp}
    POST /predict       single-ward prediction (weather ingestion job)
    GET  /wards/{id}    → {static_features, historical_features}
    GET  /health        liveness; hosted instances sleep, this wakes them

Failures are normalised into two exceptions so callers only branch once:

    transport error / timeout / non-2xx    → SourceUnavailableError
    2xx without the required fields        → MalformedResponseError
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import httpx

from monsoon.app.core.config import settings
from monsoon.app.core.errors import MalformedResponseError, SourceUnavailableError

logger = logging.getLogger(__name__)

SOURCE = "prediction-service"


@dataclass
class RainfallInput:
    """Rainfall windows sent to /predict/all, in mm."""
    rain_1h: float = 0.0
    rain_3h: float = 0.0
    rain_6h: float = 0.0
    rain_24h: float = 0.0
    rain_forecast_3h: float = 0.0

    @classmethod
    def from_average(cls, avg: float) -> "RainfallInput":
        """Scale one averaged observation into the service's windows."""
        avg = max(0.0, avg)
        return cls(
            rain_1h=round(avg, 2),
            rain_3h=round(avg * 2, 2),
            rain_6h=round(avg * 3, 2),
            rain_24h=round(avg * 5, 2),
            rain_forecast_3h=round(avg * 1.5, 2),
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "rain_1h": self.rain_1h,
            "rain_3h": self.rain_3h,
            "rain_6h": self.rain_6h,
            "rain_24h": self.rain_24h,
            "rain_forecast_3h": self.rain_forecast_3h,
        }


@dataclass
class WardPrediction:
    ward_id: str
    probability: Optional[float] = None
    risk_level: Optional[str] = None
    mpi_score: Optional[float] = None
    rain_1h: Optional[float] = None
    rain_3h: Optional[float] = None
    explanation: str = ""

    @classmethod
    def from_payload(cls, item: Dict[str, Any]) -> "WardPrediction":
        if not isinstance(item, dict) or not item.get("ward_id"):
            raise MalformedResponseError(SOURCE, "ward entry without ward_id")
        return cls(
            ward_id=str(item["ward_id"]),
            probability=_opt_float(item.get("probability")),
            risk_level=_opt_str(item.get("risk_level")),
            mpi_score=_opt_float(item.get("mpi_score")),
            rain_1h=_opt_float(item.get("rain_1h")),
            rain_3h=_opt_float(item.get("rain_3h")),
            explanation=_opt_str(item.get("explanation")) or "",
        )

    def external_output(self) -> Dict[str, Any]:
        return {
            "probability": self.probability,
            "mpi_score": self.mpi_score,
            "risk_level": self.risk_level,
        }


@dataclass
class PredictionBatch:
    wards: List[WardPrediction]
    timestamp: Optional[str] = None


@dataclass
class WardDetails:
    static_features: Dict[str, Any] = field(default_factory=dict)
    historical_features: Dict[str, Any] = field(default_factory=dict)


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _opt_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _opt_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


class PredictionClient:
    """
    Thin async wrapper over the prediction service.

    Usage:
        client = PredictionClient()
        batch = await client.predict_all(RainfallInput.from_average(4.2))
        details = await client.fetch_details_batched([w.ward_id for w in batch.wards])
        await client.close()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.PREDICTION_API_URL).rstrip("/")
        self.timeout = timeout or settings.PREDICTION_TIMEOUT
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SourceUnavailableError(
                SOURCE, f"{method} {path} → {e.response.status_code}",
                status=e.response.status_code,
            )
        except httpx.HTTPError as e:
            raise SourceUnavailableError(SOURCE, f"{method} {path}: {type(e).__name__}: {e}")
        try:
            return response.json()
        except ValueError:
            raise MalformedResponseError(SOURCE, f"{method} {path} returned non-JSON body")

    # ── Endpoints ──

    async def ping(self) -> bool:
        """GET /health. Returns False instead of raising."""
        try:
            await self._request("GET", "/health")
            return True
        except SourceUnavailableError as e:
            logger.info("Prediction service health ping failed: %s", e.message)
            return False

    async def predict_all(self, rainfall: RainfallInput) -> PredictionBatch:
        payload = await self._request(
            "POST", "/predict/all", json={"rainfall": rainfall.to_dict()},
        )
        wards = payload.get("wards") if isinstance(payload, dict) else None
        if not isinstance(wards, list) or not wards:
            raise MalformedResponseError(SOURCE, "no wards in /predict/all response")
        return PredictionBatch(
            wards=[WardPrediction.from_payload(w) for w in wards],
            timestamp=payload.get("timestamp"),
        )

    async def predict_ward(self, features: Dict[str, Any]) -> Dict[str, Any]:
        """Single-ward prediction used by the weather ingestion job."""
        payload = await self._request(
            "POST", "/predict", json=features,
            timeout=settings.SINGLE_PREDICTION_TIMEOUT,
        )
        if not isinstance(payload, dict):
            raise MalformedResponseError(SOURCE, "/predict returned a non-object body")
        if payload.get("mpi_score") is None and payload.get("probability") is None:
            raise MalformedResponseError(SOURCE, "/predict returned no score")
        return payload

    async def ward_details(self, ward_id: str) -> WardDetails:
        payload = await self._request("GET", f"/wards/{ward_id}")
        if not isinstance(payload, dict):
            raise MalformedResponseError(SOURCE, f"/wards/{ward_id} returned a non-object body")
        return WardDetails(
            static_features=_opt_dict(payload.get("static_features")),
            historical_features=_opt_dict(payload.get("historical_features")),
        )

    async def fetch_details_batched(
        self,
        ward_ids: Iterable[str],
        batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
    ) -> Dict[str, WardDetails]:
        """
        Fetch per-ward details in fixed-size batches with bounded concurrency.

        A failed ward is skipped; the rest of the batch continues.
        """
        ids = list(ward_ids)
        batch_size = batch_size or settings.DETAIL_BATCH_SIZE
        semaphore = asyncio.Semaphore(concurrency or settings.DETAIL_CONCURRENCY)
        details: Dict[str, WardDetails] = {}
        failed = 0

        async def fetch_one(ward_id: str) -> None:
            nonlocal failed
            async with semaphore:
                try:
                    details[ward_id] = await self.ward_details(ward_id)
                except SourceUnavailableError as e:
                    failed += 1
                    logger.debug("Detail fetch for ward %s skipped: %s", ward_id, e.message)

        for start in range(0, len(ids), batch_size):
            await asyncio.gather(*(fetch_one(wid) for wid in ids[start:start + batch_size]))

        if failed:
            logger.info("Ward details: %d fetched, %d skipped", len(details), failed)
        return details
