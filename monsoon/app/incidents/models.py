"""
Incident data structures.

An incident is a field report of waterlogging, a pothole or a blocked
drain.  IDs are timestamp-derived (``INC-<epoch ms>``) and stay unique
within the process even for same-millisecond submissions.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class IncidentType(str, Enum):
    WATERLOGGING = "waterlogging"
    POTHOLE = "pothole"
    DRAINAGE = "drainage"


class IncidentStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    DISMISSED = "dismissed"


# Remote rows may carry word severities
SEVERITY_WORDS = {"low": 1, "medium": 2, "high": 3, "critical": 3}

_last_ms = 0


def new_incident_id(now_ms: Optional[int] = None) -> str:
    global _last_ms
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    if ms <= _last_ms:
        ms = _last_ms + 1
    _last_ms = ms
    return f"INC-{ms}"


def relative_time(occurred_at: datetime, now: Optional[datetime] = None) -> str:
    """'Just now', '12 min ago', '1h 5m ago', or the date."""
    now = now or datetime.now(timezone.utc)
    if occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=timezone.utc)
    minutes = int((now - occurred_at).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes} min ago"
    if minutes < 24 * 60:
        return f"{minutes // 60}h {minutes % 60}m ago"
    return occurred_at.date().isoformat()


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IncidentLocation:
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    source: str = "ward"  # gps | ward

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Incident:
    id: str
    type: IncidentType
    ward_id: str
    ward_name: str
    status: IncidentStatus = IncidentStatus.PENDING
    severity: int = 2  # 1–3
    description: str = "User-reported incident"
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    location: Optional[IncidentLocation] = None
    image_ref: Optional[str] = None
    validation_score: Optional[int] = None

    def time_display(self, now: Optional[datetime] = None) -> str:
        return relative_time(self.occurred_at, now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "severity": self.severity,
            "ward_id": self.ward_id,
            "ward_name": self.ward_name,
            "description": self.description,
            "occurred_at": self.occurred_at.isoformat(),
            "time_display": self.time_display(),
            "location": self.location.to_dict() if self.location else None,
            "image_ref": self.image_ref,
            "validation_score": self.validation_score,
        }

    def to_remote_payload(self) -> Dict[str, Any]:
        """Body for the remote ``POST /incidents`` collaborator."""
        loc = self.location or IncidentLocation()
        image = None
        if self.image_ref:
            image = self.image_ref[:100] + ("..." if len(self.image_ref) > 100 else "")
        return {
            "type": self.type.value,
            "ward_id": self.ward_id,
            "description": self.description,
            "latitude": loc.latitude,
            "longitude": loc.longitude,
            "accuracy": loc.accuracy,
            "severity": self.severity,
            "validation_score": self.validation_score,
            "image_data": image,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Incident":
        """Accepts both stored records and the remote endpoint's rows."""
        loc = data.get("location")
        location = None
        if isinstance(loc, dict):
            location = IncidentLocation(
                latitude=loc.get("latitude"),
                longitude=loc.get("longitude"),
                accuracy=loc.get("accuracy"),
                source=loc.get("source", "ward"),
            )
        elif data.get("latitude") is not None and data.get("longitude") is not None:
            location = IncidentLocation(
                latitude=data["latitude"], longitude=data["longitude"],
                accuracy=data.get("accuracy"), source="gps",
            )

        raw_severity = data.get("severity") or 2
        if isinstance(raw_severity, str) and raw_severity.lower() in SEVERITY_WORDS:
            severity = SEVERITY_WORDS[raw_severity.lower()]
        else:
            try:
                severity = int(raw_severity)
            except (TypeError, ValueError):
                severity = 2

        ward_id = str(data.get("ward_id") or "")
        return cls(
            id=str(data.get("id") or new_incident_id()),
            type=IncidentType(data.get("type") or "waterlogging"),
            status=IncidentStatus(data.get("status") or "pending"),
            severity=max(1, min(3, severity)),
            ward_id=ward_id,
            ward_name=data.get("ward_name") or ward_id or "Unknown",
            description=data.get("description") or "Reported incident",
            occurred_at=parse_timestamp(data.get("occurred_at") or data.get("created_at")),
            location=location,
            image_ref=data.get("image_ref"),
            validation_score=data.get("validation_score"),
        )
