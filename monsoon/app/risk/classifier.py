"""
Risk classifier — rainfall/threshold ratio or external score → tier + score.

Three driving signals, exactly one per data source:

    ┌────────────┬──────────────────────────────────┬───────────────────────────┐
    │ Driver     │ Input                            │ Tier rule                 │
    ├────────────┼──────────────────────────────────┼───────────────────────────┤
    │ ratio      │ max(current, forecast)/threshold │ >0.70 critical, >0.30     │
    │            │                                  │ alert, else safe          │
    │ score      │ 0–100 preparedness (MPI)         │ <40 critical, <70 alert,  │
    │            │                                  │ else safe                 │
    │ external   │ flood probability p and/or label │ label if known, else the  │
    │            │                                  │ score rule on (1-p)·100   │
    └────────────┴──────────────────────────────────┴───────────────────────────┘

Sign convention
===============
An external ``probability`` is always a probability OF FLOODING, so the
preparedness score is ``round((1 - p) * 100)``.  An explicit ``mpi_score``
is already a preparedness score (higher is safer) and is used as given.

Ratio-driven scores sit inside the tier's band so the score agrees with the
tier under the score rule as well:

    critical:  max(10, 30 - round(r * 20))     → 10..16
    alert:     max(30, 70 - round(r * 30))     → 49..61
    safe:      max(70, 100 - round(r * 30))    → 91..100

All cutoffs come from ``RiskCutoffs`` (settings ``RISK_*``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from monsoon.app.core.config import settings
from monsoon.app.wards.models import RiskAssessment, RiskLevel

logger = logging.getLogger(__name__)


LABEL_MAP = {
    "critical": RiskLevel.CRITICAL,
    "high": RiskLevel.CRITICAL,
    "severe": RiskLevel.CRITICAL,
    "moderate": RiskLevel.ALERT,
    "medium": RiskLevel.ALERT,
    "alert": RiskLevel.ALERT,
    "low": RiskLevel.SAFE,
    "safe": RiskLevel.SAFE,
}


@dataclass(frozen=True)
class RiskCutoffs:
    alert_ratio: float = 0.30
    critical_ratio: float = 0.70
    critical_score: float = 40.0
    alert_score: float = 70.0
    default_threshold: float = 60.0

    @classmethod
    def from_settings(cls) -> "RiskCutoffs":
        return cls(
            alert_ratio=settings.RISK_ALERT_RATIO,
            critical_ratio=settings.RISK_CRITICAL_RATIO,
            critical_score=settings.RISK_CRITICAL_SCORE,
            alert_score=settings.RISK_ALERT_SCORE,
            default_threshold=settings.RISK_DEFAULT_THRESHOLD_MM,
        )


def clamp_score(value: float) -> int:
    """Round and clamp to [0, 100]."""
    return int(max(0, min(100, round(value))))


def _non_negative(value: Optional[float]) -> float:
    if value is None:
        return 0.0
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    return v if v > 0 else 0.0


def effective_threshold(threshold: Optional[float], cutoffs: RiskCutoffs) -> float:
    t = _non_negative(threshold)
    return t if t > 0 else cutoffs.default_threshold


def rainfall_ratio(
    current_rainfall: Optional[float],
    forecast_rainfall_3h: Optional[float],
    failure_threshold: Optional[float],
    cutoffs: Optional[RiskCutoffs] = None,
) -> float:
    """Driving ratio: the worse of observed and forecast rain over capacity."""
    cutoffs = cutoffs or RiskCutoffs.from_settings()
    worst = max(_non_negative(current_rainfall), _non_negative(forecast_rainfall_3h))
    return worst / effective_threshold(failure_threshold, cutoffs)


def classify_by_ratio(
    current_rainfall: Optional[float],
    forecast_rainfall_3h: Optional[float],
    failure_threshold: Optional[float],
    cutoffs: Optional[RiskCutoffs] = None,
) -> RiskAssessment:
    """Local heuristic path."""
    cutoffs = cutoffs or RiskCutoffs.from_settings()
    r = rainfall_ratio(current_rainfall, forecast_rainfall_3h, failure_threshold, cutoffs)

    if r > cutoffs.critical_ratio:
        return RiskAssessment(RiskLevel.CRITICAL, clamp_score(max(10, 30 - round(r * 20))))
    if r > cutoffs.alert_ratio:
        return RiskAssessment(RiskLevel.ALERT, clamp_score(max(30, 70 - round(r * 30))))
    return RiskAssessment(RiskLevel.SAFE, clamp_score(max(70, 100 - round(r * 30))))


def classify_by_score(
    preparedness_score: float,
    cutoffs: Optional[RiskCutoffs] = None,
    driver: str = "score",
) -> RiskAssessment:
    """MPI-driven path: the score decides the tier."""
    cutoffs = cutoffs or RiskCutoffs.from_settings()
    score = clamp_score(preparedness_score)
    if score < cutoffs.critical_score:
        level = RiskLevel.CRITICAL
    elif score < cutoffs.alert_score:
        level = RiskLevel.ALERT
    else:
        level = RiskLevel.SAFE
    return RiskAssessment(level, score, driver)


def classify_external(
    probability: Optional[float] = None,
    mpi_score: Optional[float] = None,
    risk_label: Optional[str] = None,
    cutoffs: Optional[RiskCutoffs] = None,
) -> Optional[RiskAssessment]:
    """
    External-model path. Returns None when the output carries no usable
    signal, so the caller can fall back to the ratio heuristic.
    """
    cutoffs = cutoffs or RiskCutoffs.from_settings()

    if mpi_score is not None:
        score = clamp_score(float(mpi_score))
    elif probability is not None:
        p = min(1.0, max(0.0, float(probability)))
        score = clamp_score((1.0 - p) * 100)
    else:
        score = None

    label = risk_label if isinstance(risk_label, str) else ""
    level = LABEL_MAP.get(label.strip().lower())

    if level is None and score is None:
        return None
    if level is None:
        return classify_by_score(score, cutoffs, driver="external")
    if score is None:
        # Label only: place the score at the middle of the tier's band
        score = {
            RiskLevel.CRITICAL: int(cutoffs.critical_score // 2),
            RiskLevel.ALERT: int((cutoffs.critical_score + cutoffs.alert_score) // 2),
            RiskLevel.SAFE: int((cutoffs.alert_score + 100) // 2),
        }[level]
    return RiskAssessment(level, score, "external")


def classify(
    current_rainfall: Optional[float],
    forecast_rainfall_3h: Optional[float],
    failure_threshold: Optional[float],
    external: Optional[Dict[str, Any]] = None,
    cutoffs: Optional[RiskCutoffs] = None,
) -> RiskAssessment:
    """
    Classify one ward.

    ``external`` is the raw model output (keys ``probability``,
    ``mpi_score``, ``risk_level``); when absent or unusable the ratio
    heuristic decides.
    """
    cutoffs = cutoffs or RiskCutoffs.from_settings()
    if external:
        assessed = classify_external(
            probability=external.get("probability"),
            mpi_score=external.get("mpi_score"),
            risk_label=external.get("risk_level"),
            cutoffs=cutoffs,
        )
        if assessed is not None:
            return assessed
        logger.debug("External output had no usable signal, using ratio heuristic")
    return classify_by_ratio(current_rainfall, forecast_rainfall_3h, failure_threshold, cutoffs)
