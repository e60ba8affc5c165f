"""
Dashboard view-model.

``build_view`` turns one aggregation result plus the incident feed into an
immutable ``DashboardView``: everything the dashboard renders, computed
once per refresh.

    ┌──────────────────┬───────────────────────────────────────────────┐
    │ Panel            │ Source                                        │
    ├──────────────────┼───────────────────────────────────────────────┤
    │ wards            │ aggregated collection                         │
    │ markers          │ wards with coordinates inside Delhi           │
    │ alerts           │ alert selector, capped at ALERT_FEED_LIMIT    │
    │ incidents        │ incident feed snapshot                        │
    │ statistics       │ tier counts + preparedness avg/min/max        │
    │ drainage_stress  │ top 8 by drainage_stress_index                │
    │ pothole_density  │ top 8 by pothole_density                      │
    │ status           │ live | degraded | demo                        │
    └──────────────────┴───────────────────────────────────────────────┘
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from monsoon.app.core.config import settings
from monsoon.app.incidents.models import Incident
from monsoon.app.risk.alert_selector import Alert, select_alerts
from monsoon.app.spatial.coordinates import in_delhi
from monsoon.app.wards.models import RiskLevel, Ward, utc_now_iso
from monsoon.app.wards.repository import compute_statistics

logger = logging.getLogger(__name__)

INFRA_PANEL_SIZE = 8
INFRA_HIGH = 70
INFRA_MEDIUM = 40

MARKER_COLORS = {
    RiskLevel.CRITICAL: ("#FF4757", "#FF4757"),
    RiskLevel.ALERT: ("#FFB800", "#FFD93D"),
    RiskLevel.SAFE: ("#00C896", "#6BCF7F"),
}


def infra_level(value: float) -> str:
    if value > INFRA_HIGH:
        return "high"
    if value > INFRA_MEDIUM:
        return "medium"
    return "low"


@dataclass(frozen=True)
class MapMarker:
    ward_id: str
    name: str
    latitude: float
    longitude: float
    risk_level: RiskLevel
    preparedness_score: int

    @property
    def colors(self) -> Tuple[str, str]:
        return MARKER_COLORS[self.risk_level]

    def to_dict(self) -> Dict[str, Any]:
        color, fill = self.colors
        return {
            "ward_id": self.ward_id,
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "risk_level": self.risk_level.value,
            "preparedness_score": self.preparedness_score,
            "color": color,
            "fill_color": fill,
        }


@dataclass(frozen=True)
class InfraEntry:
    ward_id: str
    name: str
    value: float
    level: str

    def to_dict(self) -> Dict[str, Any]:
        return {"ward_id": self.ward_id, "name": self.name, "value": self.value, "level": self.level}


@dataclass(frozen=True)
class DashboardView:
    wards: Tuple[Ward, ...]
    markers: Tuple[MapMarker, ...]
    alerts: Tuple[Alert, ...]
    incidents: Tuple[Incident, ...]
    statistics: Dict[str, Any]
    drainage_stress: Tuple[InfraEntry, ...]
    pothole_density: Tuple[InfraEntry, ...]
    status: str
    source: str
    errors: Tuple[str, ...] = ()
    generation: int = 0
    generated_at: str = field(default_factory=utc_now_iso)

    def ward(self, ward_id: str) -> Optional[Ward]:
        return next((w for w in self.wards if w.id == str(ward_id)), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "source": self.source,
            "generation": self.generation,
            "generated_at": self.generated_at,
            "statistics": self.statistics,
            "wards": [w.to_dict() for w in self.wards],
            "markers": [m.to_dict() for m in self.markers],
            "alerts": [a.to_dict() for a in self.alerts],
            "incidents": [i.to_dict() for i in self.incidents],
            "infrastructure": {
                "drainage_stress": [e.to_dict() for e in self.drainage_stress],
                "pothole_density": [e.to_dict() for e in self.pothole_density],
            },
            "errors": list(self.errors),
        }


def build_markers(wards: Iterable[Ward]) -> Tuple[MapMarker, ...]:
    markers = []
    for ward in wards:
        if not ward.has_location:
            continue
        if not in_delhi(ward.latitude, ward.longitude):
            logger.warning("Invalid coordinates for ward %s, not rendered", ward.name, extra={"ward_id": ward.id})
            continue
        markers.append(MapMarker(
            ward.id, ward.name, ward.latitude, ward.longitude,
            ward.risk_level, ward.preparedness_score,
        ))
    return tuple(markers)


def top_infrastructure(wards: Iterable[Ward], attribute: str) -> Tuple[InfraEntry, ...]:
    scored = [(w, float(getattr(w, attribute) or 0)) for w in wards]
    scored = [(w, v) for w, v in scored if v > 0]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return tuple(
        InfraEntry(w.id, w.name, round(v, 1), infra_level(v))
        for w, v in scored[:INFRA_PANEL_SIZE]
    )


def build_view(
    wards: Sequence[Ward],
    incidents: Sequence[Incident],
    status: str,
    source: str,
    errors: Sequence[str] = (),
    generation: int = 0,
    alert_limit: Optional[int] = None,
) -> DashboardView:
    wards = tuple(wards)
    return DashboardView(
        wards=wards,
        markers=build_markers(wards),
        alerts=tuple(select_alerts(wards, limit=alert_limit or settings.ALERT_FEED_LIMIT)),
        incidents=tuple(incidents),
        statistics=compute_statistics(wards),
        drainage_stress=top_infrastructure(wards, "drainage_stress_index"),
        pothole_density=top_infrastructure(wards, "pothole_density"),
        status=status,
        source=source,
        errors=tuple(errors),
        generation=generation,
    )
