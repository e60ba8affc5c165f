"""
Alert selector — which wards surface in the alert feed, in what order.

A ward qualifies when ANY of these hold:

    • risk_level is alert or critical
    • forecast_rainfall_3h / failure_threshold  > 0.30
    • preparedness_score                         < 50
    • current_rainfall > failure_threshold × 0.5

Ordering is risk weight (critical 3 > alert 2 > safe 1) descending, then
preparedness score ascending so the least-prepared ward leads its tier.
The cap is a display limit only; the full ward set stays queryable.
All cutoffs come from the ``ALERT_*`` settings unless an ``AlertCutoffs``
is passed in.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from monsoon.app.core.config import settings
from monsoon.app.wards.models import RiskLevel, Ward


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    MEDIUM = "medium"
    LOW = "low"


URGENCY_MESSAGES = {
    AlertSeverity.CRITICAL: "Immediate action required: drainage capacity exceeded or imminent",
    AlertSeverity.MEDIUM: "Monitor closely: rainfall approaching drainage capacity",
    AlertSeverity.LOW: "Under observation: elevated rainfall relative to capacity",
}

@dataclass(frozen=True)
class AlertCutoffs:
    forecast_ratio: float = 0.30
    score: float = 50.0
    current_share: float = 0.5
    critical_percent: float = 100.0
    critical_score: float = 30.0
    medium_percent: float = 70.0
    medium_score: float = 50.0

    @classmethod
    def from_settings(cls) -> "AlertCutoffs":
        return cls(
            forecast_ratio=settings.ALERT_FORECAST_RATIO,
            score=settings.ALERT_SCORE,
            current_share=settings.ALERT_CURRENT_SHARE,
            critical_percent=settings.ALERT_CRITICAL_PERCENT,
            critical_score=settings.ALERT_CRITICAL_SCORE,
            medium_percent=settings.ALERT_MEDIUM_PERCENT,
            medium_score=settings.ALERT_MEDIUM_SCORE,
        )


@dataclass(frozen=True)
class Alert:
    """A ward plus its derived alert view. Never stored."""
    ward: Ward
    severity: AlertSeverity
    threshold_percentage: int
    current_percentage: int
    time_window: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ward_id": self.ward.id,
            "ward_name": self.ward.name,
            "zone": self.ward.zone,
            "risk_level": self.ward.risk_level.value,
            "preparedness_score": self.ward.preparedness_score,
            "current_rainfall": self.ward.current_rainfall,
            "forecast_rainfall_3h": self.ward.forecast_rainfall_3h,
            "failure_threshold": self.ward.failure_threshold,
            "severity": self.severity.value,
            "threshold_percentage": self.threshold_percentage,
            "current_percentage": self.current_percentage,
            "time_window": self.time_window,
            "message": self.message,
        }


def _threshold(ward: Ward) -> float:
    return ward.failure_threshold if ward.failure_threshold > 0 else settings.RISK_DEFAULT_THRESHOLD_MM


def is_alert_worthy(ward: Ward, cutoffs: Optional[AlertCutoffs] = None) -> bool:
    cutoffs = cutoffs or AlertCutoffs.from_settings()
    threshold = _threshold(ward)
    return (
        ward.risk_level in (RiskLevel.ALERT, RiskLevel.CRITICAL)
        or ward.forecast_rainfall_3h / threshold > cutoffs.forecast_ratio
        or ward.preparedness_score < cutoffs.score
        or ward.current_rainfall > threshold * cutoffs.current_share
    )


def severity_for(ward: Ward, cutoffs: Optional[AlertCutoffs] = None) -> AlertSeverity:
    cutoffs = cutoffs or AlertCutoffs.from_settings()
    pct = ward.forecast_rainfall_3h / _threshold(ward) * 100
    if (
        ward.risk_level == RiskLevel.CRITICAL
        or pct >= cutoffs.critical_percent
        or ward.preparedness_score < cutoffs.critical_score
    ):
        return AlertSeverity.CRITICAL
    if (
        ward.risk_level == RiskLevel.ALERT
        or pct >= cutoffs.medium_percent
        or ward.preparedness_score < cutoffs.medium_score
    ):
        return AlertSeverity.MEDIUM
    return AlertSeverity.LOW


def sort_key(ward: Ward):
    return (-ward.risk_level.weight, ward.preparedness_score)


def build_alert(ward: Ward, cutoffs: Optional[AlertCutoffs] = None) -> Alert:
    threshold = _threshold(ward)
    severity = severity_for(ward, cutoffs)
    return Alert(
        ward=ward,
        severity=severity,
        threshold_percentage=round(ward.forecast_rainfall_3h / threshold * 100),
        current_percentage=round(ward.current_rainfall / threshold * 100),
        time_window="1-3 hours" if ward.forecast_rainfall_3h > ward.current_rainfall else "Active now",
        message=URGENCY_MESSAGES[severity],
    )


def select_alerts(
    wards: Iterable[Ward],
    limit: Optional[int] = None,
    cutoffs: Optional[AlertCutoffs] = None,
) -> List[Alert]:
    """Filter, rank and cap. Ties keep input order (sorted() is stable)."""
    limit = settings.ALERT_FEED_LIMIT if limit is None else limit
    cutoffs = cutoffs or AlertCutoffs.from_settings()
    ranked = sorted((w for w in wards if is_alert_worthy(w, cutoffs)), key=sort_key)
    return [build_alert(w, cutoffs) for w in ranked[:max(0, limit)]]
