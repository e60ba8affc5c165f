"""
Ward repository — the ward query surface over the relational store.

Read operations NEVER raise: when the store is unreachable they answer
``QueryResult(success=False, count=0, data=[])`` so the dashboard degrades
to "no data".  Write operations raise ``PersistenceUnavailableError``
(HTTP 503) because the caller must know the write did not happen.

Risk fields are written as a pair.  An update that changes rainfall or
threshold without supplying a new tier/score gets both recomputed by the
ratio heuristic; supplying only one of the pair is rejected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import Column, DateTime, Float, Integer, String, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from monsoon.app.core.database import Base, get_session_factory
from monsoon.app.core.errors import (
    ConflictError,
    NotFoundError,
    PersistenceUnavailableError,
    ValidationError,
)
from monsoon.app.risk.classifier import classify_by_ratio
from monsoon.app.wards.models import (
    DataSource,
    RiskLevel,
    Ward,
    normalise_zone,
)

logger = logging.getLogger(__name__)

_RISK_PAIR = ("risk_level", "preparedness_score")
_RATIO_INPUTS = ("current_rainfall", "forecast_rainfall_3h", "failure_threshold")
_WRITABLE = (
    "name", "zone", "latitude", "longitude",
    *_RATIO_INPUTS, *_RISK_PAIR,
    "drainage_stress_index", "pothole_density", "drain_density",
    "historical_flood_frequency", "low_lying_pct",
)


# ═══════════════════════════════════════════════════════════════════════════
# ORM
# ═══════════════════════════════════════════════════════════════════════════

class WardRecord(Base):
    __tablename__ = "wards"

    id = Column(String(32), primary_key=True)
    name = Column(String(200), nullable=False, index=True)
    zone = Column(String(64), nullable=False, index=True)
    latitude = Column(Float)
    longitude = Column(Float)
    current_rainfall = Column(Float, nullable=False, default=0.0)
    forecast_rainfall_3h = Column(Float, nullable=False, default=0.0)
    failure_threshold = Column(Float, nullable=False, default=60.0)
    risk_level = Column(String(16), nullable=False, default="safe", index=True)
    preparedness_score = Column(Integer, nullable=False, default=100)
    drainage_stress_index = Column(Float)
    pothole_density = Column(Float)
    drain_density = Column(Float)
    historical_flood_frequency = Column(Float)
    low_lying_pct = Column(Float)
    last_updated = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_ward(self) -> Ward:
        return Ward(
            id=self.id,
            name=self.name,
            zone=self.zone,
            latitude=self.latitude,
            longitude=self.longitude,
            current_rainfall=self.current_rainfall or 0.0,
            forecast_rainfall_3h=self.forecast_rainfall_3h or 0.0,
            failure_threshold=self.failure_threshold or 60.0,
            risk_level=RiskLevel(self.risk_level),
            preparedness_score=self.preparedness_score,
            drainage_stress_index=self.drainage_stress_index,
            pothole_density=self.pothole_density,
            drain_density=self.drain_density,
            historical_flood_frequency=self.historical_flood_frequency,
            low_lying_pct=self.low_lying_pct,
            source=DataSource.LOCAL,
            last_updated=self.last_updated.isoformat() if self.last_updated else "",
        )


# ═══════════════════════════════════════════════════════════════════════════
# Result shape
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class QueryResult:
    """``{success, count, data}`` — the shape every ward read answers with."""
    success: bool
    data: List[Ward] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.data)

    @classmethod
    def unavailable(cls) -> "QueryResult":
        return cls(success=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "count": self.count,
            "data": [w.to_dict() for w in self.data],
        }


def empty_statistics() -> Dict[str, Any]:
    return {
        "total": 0,
        "by_risk_level": {"critical": 0, "alert": 0, "safe": 0},
        "preparedness": {"average": 0, "min": 0, "max": 0},
    }


def compute_statistics(wards: Iterable[Ward]) -> Dict[str, Any]:
    wards = list(wards)
    if not wards:
        return empty_statistics()
    scores = [w.preparedness_score for w in wards]
    return {
        "total": len(wards),
        "by_risk_level": {
            level.value: sum(1 for w in wards if w.risk_level == level)
            for level in (RiskLevel.CRITICAL, RiskLevel.ALERT, RiskLevel.SAFE)
        },
        "preparedness": {
            "average": round(sum(scores) / len(scores)),
            "min": min(scores),
            "max": max(scores),
        },
    }


# ═══════════════════════════════════════════════════════════════════════════
# Validation helpers
# ═══════════════════════════════════════════════════════════════════════════

def _prepare_fields(values: Dict[str, Any], current: Optional[WardRecord] = None) -> Dict[str, Any]:
    """Whitelist, normalise, and keep the risk pair consistent."""
    out = {k: v for k, v in values.items() if k in _WRITABLE and v is not None}

    if "zone" in out:
        out["zone"] = normalise_zone(out["zone"])

    supplied = [k for k in _RISK_PAIR if k in out]
    if len(supplied) == 1:
        raise ValidationError(
            "risk_level and preparedness_score must be updated together",
            field=supplied[0],
        )
    if supplied:
        try:
            out["risk_level"] = RiskLevel(out["risk_level"]).value
        except ValueError:
            raise ValidationError(
                f"Unknown risk level '{out['risk_level']}'", field="risk_level",
            )
        out["preparedness_score"] = int(max(0, min(100, round(float(out["preparedness_score"])))))
    elif current is None or any(k in out for k in _RATIO_INPUTS):
        def pick(key: str, default: float) -> float:
            if key in out:
                return out[key]
            if current is not None and getattr(current, key) is not None:
                return getattr(current, key)
            return default

        assessed = classify_by_ratio(
            pick("current_rainfall", 0.0),
            pick("forecast_rainfall_3h", 0.0),
            pick("failure_threshold", 0.0),
        )
        out["risk_level"] = assessed.risk_level.value
        out["preparedness_score"] = assessed.preparedness_score

    out["last_updated"] = datetime.now(timezone.utc)
    return out


# ═══════════════════════════════════════════════════════════════════════════
# Repository
# ═══════════════════════════════════════════════════════════════════════════

class WardRepository:
    """Async CRUD + query surface for wards."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], async_sessionmaker[AsyncSession]]] = None,
    ):
        self._session_factory = session_factory or get_session_factory

    def _session(self) -> AsyncSession:
        return self._session_factory()()

    # ── Reads ──

    async def _query(self, stmt, operation: str) -> QueryResult:
        try:
            async with self._session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Ward store unavailable during %s: %s", operation, e)
            return QueryResult.unavailable()
        return QueryResult(success=True, data=[r.to_ward() for r in rows])

    async def list_wards(
        self,
        zone: Optional[str] = None,
        risk_level: Optional[str] = None,
        min_score: Optional[float] = None,
        max_score: Optional[float] = None,
    ) -> QueryResult:
        stmt = select(WardRecord)
        if zone:
            stmt = stmt.where(WardRecord.zone == zone)
        if risk_level:
            stmt = stmt.where(WardRecord.risk_level == risk_level)
        if min_score is not None:
            stmt = stmt.where(WardRecord.preparedness_score >= min_score)
        if max_score is not None:
            stmt = stmt.where(WardRecord.preparedness_score <= max_score)
        return await self._query(stmt.order_by(WardRecord.name), "list")

    async def get_ward(self, ward_id: str) -> QueryResult:
        stmt = select(WardRecord).where(WardRecord.id == str(ward_id))
        return await self._query(stmt, "get")

    async def high_risk(self) -> QueryResult:
        stmt = (
            select(WardRecord)
            .where(WardRecord.risk_level.in_([RiskLevel.CRITICAL.value, RiskLevel.ALERT.value]))
            .order_by(WardRecord.preparedness_score, WardRecord.name)
        )
        return await self._query(stmt, "high_risk")

    async def by_zone(self, zone: str) -> QueryResult:
        stmt = select(WardRecord).where(WardRecord.zone == zone).order_by(WardRecord.name)
        return await self._query(stmt, "by_zone")

    async def statistics(self) -> Dict[str, Any]:
        """``{success, data: {total, by_risk_level, preparedness}}``."""
        result = await self.list_wards()
        return {"success": result.success, "data": compute_statistics(result.data)}

    async def count(self) -> Optional[int]:
        """Row count, or None when the store is unreachable."""
        try:
            async with self._session() as session:
                return (await session.execute(select(func.count(WardRecord.id)))).scalar_one()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Ward store unavailable during count: %s", e)
            return None

    # ── Writes ──

    async def create(self, values: Dict[str, Any]) -> Ward:
        if not values.get("name"):
            raise ValidationError("Ward name is required", field="name")
        fields_ = _prepare_fields(values)
        fields_.setdefault("zone", normalise_zone(values.get("zone")))
        try:
            async with self._session() as session:
                if values.get("id") is not None:
                    ward_id = str(values["id"])
                    if await session.get(WardRecord, ward_id) is not None:
                        raise ConflictError("Ward", ward_id=ward_id)
                else:
                    highest = (await session.execute(select(func.count(WardRecord.id)))).scalar_one()
                    ward_id = str(highest + 1)
                    while await session.get(WardRecord, ward_id) is not None:
                        ward_id = str(int(ward_id) + 1)
                record = WardRecord(id=ward_id, **fields_)
                session.add(record)
                await session.commit()
                return record.to_ward()
        except IntegrityError:
            raise ConflictError("Ward", ward_id=ward_id)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceUnavailableError("create", str(e))

    async def update(self, ward_id: str, values: Dict[str, Any]) -> Ward:
        try:
            async with self._session() as session:
                record = await session.get(WardRecord, str(ward_id))
                if record is None:
                    raise NotFoundError("Ward", ward_id=str(ward_id))
                for key, value in _prepare_fields(values, current=record).items():
                    setattr(record, key, value)
                await session.commit()
                return record.to_ward()
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceUnavailableError("update", str(e))

    async def delete(self, ward_id: str) -> None:
        try:
            async with self._session() as session:
                result = await session.execute(
                    delete(WardRecord).where(WardRecord.id == str(ward_id))
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceUnavailableError("delete", str(e))
        if result.rowcount == 0:
            raise NotFoundError("Ward", ward_id=str(ward_id))

    async def upsert_many(self, wards: Iterable[Ward]) -> int:
        """Write full ward values (seed / external sync). Returns rows written."""
        written = 0
        try:
            async with self._session() as session:
                for ward in wards:
                    record = await session.get(WardRecord, ward.id) or WardRecord(id=ward.id)
                    for key in _WRITABLE:
                        setattr(record, key, getattr(ward, key))
                    record.risk_level = ward.risk_level.value
                    record.last_updated = datetime.now(timezone.utc)
                    session.add(record)
                    written += 1
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceUnavailableError("upsert", str(e))
        return written

    async def bulk_update_conditions(self, wards: Iterable[Ward]) -> int:
        """
        Write rainfall + risk pair for existing wards (weather ingestion).
        Unknown ids are skipped.
        """
        updated = 0
        try:
            async with self._session() as session:
                for ward in wards:
                    record = await session.get(WardRecord, ward.id)
                    if record is None:
                        continue
                    record.current_rainfall = ward.current_rainfall
                    record.forecast_rainfall_3h = ward.forecast_rainfall_3h
                    record.risk_level = ward.risk_level.value
                    record.preparedness_score = ward.preparedness_score
                    record.last_updated = datetime.now(timezone.utc)
                    updated += 1
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceUnavailableError("bulk_update", str(e))
        return updated
