"""
Ward data model — the one canonical shape every component consumes.

Only the aggregator produces ``Ward`` values; everything downstream
(selector, resolver, dispatcher, HTTP layer) reads these fields by name
and never falls back to alternative spellings.  Wards are frozen: a
refresh or a weather update creates a new value via ``dataclasses.replace``.

Field reference
===============

    id                       stable identity (str, e.g. "12N" or "3")
    name / zone              display name and one of ZONES
    latitude / longitude     resolved position; None when outside Delhi
    current_rainfall         mm, observed
    forecast_rainfall_3h     mm, next three hours
    failure_threshold        mm the ward's drains absorb before flooding
    risk_level               safe | alert | critical
    preparedness_score       0–100, higher is safer
    drainage_stress_index    0–100 (optional)
    pothole_density          0–100 (optional)
    drain_density            km of drain per km² proxy (optional)
    historical_flood_frequency   floods per decade proxy (optional)
    low_lying_pct            % of area below local grade (optional)
    probability              raw external-model flood probability
    explanation              external-model explanation text
    source                   external | local | demo
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class RiskLevel(str, Enum):
    SAFE = "safe"
    ALERT = "alert"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return RISK_WEIGHTS[self]


RISK_WEIGHTS = {
    RiskLevel.CRITICAL: 3,
    RiskLevel.ALERT: 2,
    RiskLevel.SAFE: 1,
}


class DataSource(str, Enum):
    """Where a ward collection came from, in fallback order."""
    EXTERNAL = "external"
    LOCAL = "local"
    DEMO = "demo"


ZONES = (
    "Central Delhi",
    "North Delhi",
    "North West Delhi",
    "South Delhi",
    "South West Delhi",
    "East Delhi",
    "West Delhi",
    "Delhi",
)

DEFAULT_ZONE = "Delhi"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalise_zone(zone: Optional[str]) -> str:
    """Map free-form zone strings ('South', 'West Zone West') onto ZONES."""
    if not zone:
        return DEFAULT_ZONE
    z = zone.strip()
    if z in ZONES:
        return z
    lowered = z.lower()
    for candidate in ("north west", "south west", "central", "north", "south", "east", "west"):
        if lowered.startswith(candidate):
            return f"{candidate.title()} Delhi"
    return DEFAULT_ZONE


@dataclass(frozen=True)
class RiskAssessment:
    """The output of one classification — level and score travel together."""
    risk_level: RiskLevel
    preparedness_score: int
    driver: str = "ratio"  # ratio | score | external

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_level": self.risk_level.value,
            "preparedness_score": self.preparedness_score,
            "driver": self.driver,
        }


@dataclass(frozen=True)
class Ward:
    id: str
    name: str
    zone: str
    current_rainfall: float
    forecast_rainfall_3h: float
    failure_threshold: float
    risk_level: RiskLevel
    preparedness_score: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    drainage_stress_index: Optional[float] = None
    pothole_density: Optional[float] = None
    drain_density: Optional[float] = None
    historical_flood_frequency: Optional[float] = None
    low_lying_pct: Optional[float] = None
    probability: Optional[float] = None
    explanation: Optional[str] = None
    source: DataSource = DataSource.DEMO
    last_updated: str = ""

    # ── Derived views ──

    @property
    def forecast_ratio(self) -> float:
        if self.failure_threshold <= 0:
            return 0.0
        return self.forecast_rainfall_3h / self.failure_threshold

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    # ── Immutable updates ──

    def with_assessment(self, assessment: RiskAssessment) -> "Ward":
        return replace(
            self,
            risk_level=assessment.risk_level,
            preparedness_score=assessment.preparedness_score,
        )

    def with_location(self, latitude: Optional[float], longitude: Optional[float]) -> "Ward":
        return replace(self, latitude=latitude, longitude=longitude)

    def with_rainfall(self, current: float, forecast: float) -> "Ward":
        return replace(
            self,
            current_rainfall=current,
            forecast_rainfall_3h=forecast,
            last_updated=utc_now_iso(),
        )

    # ── Serialisation ──

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["risk_level"] = self.risk_level.value
        d["source"] = self.source.value
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ward":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["id"] = str(kwargs["id"])
        kwargs["risk_level"] = RiskLevel(kwargs.get("risk_level", "safe"))
        kwargs["preparedness_score"] = int(kwargs.get("preparedness_score", 50))
        kwargs["source"] = DataSource(kwargs.get("source", "demo"))
        kwargs.setdefault("zone", DEFAULT_ZONE)
        kwargs.setdefault("current_rainfall", 0.0)
        kwargs.setdefault("forecast_rainfall_3h", 0.0)
        kwargs.setdefault("failure_threshold", 60.0)
        return cls(**kwargs)
