"""
Synthetic fills for infrastructure fields the prediction service omits.

These are APPROXIMATIONS, not measurements.  They exist so every ward
carries a full record and downstream panels never branch on missing data.
Each formula ties the filled value to a related field; the jitter term
``u`` comes from a hash of the ward id, so a ward's fill is identical
on every refresh.

    drain_density         = 0.3 + 0.5·u
    low_lying_pct         = 50·p + 20·u
    drainage_stress_index = clamp((1 − drain_density)·60 + 40·p + (10·u − 5))
    historical_flood_freq = 10·p
    pothole_density       = clamp(complaint_baseline
                                  or 8·flood_freq + 30·p + 15·u, 5, 100)
    failure_threshold     = max(30, round(50 − low_lying/4))  if low_lying > 30
                            max(40, round(70 − low_lying/3))  otherwise

where p is the external flood probability (0 when absent).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from monsoon.app.spatial.coordinates import unit_jitter


def _clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, value))


def _num(value: Any) -> Optional[float]:
    try:
        return None if value is None else float(value)
    except (TypeError, ValueError):
        return None


def threshold_from_low_lying(low_lying_pct: float) -> float:
    if low_lying_pct > 30:
        return float(max(30, round(50 - low_lying_pct / 4)))
    return float(max(40, round(70 - low_lying_pct / 3)))


def fill_infrastructure(
    ward_id: str,
    probability: Optional[float],
    static_features: Optional[Dict[str, Any]] = None,
    historical_features: Optional[Dict[str, Any]] = None,
) -> Dict[str, float]:
    """
    Merge detail-endpoint features with synthetic fills.

    Known values always win; only missing keys are synthesised.
    """
    static_features = static_features or {}
    historical_features = historical_features or {}
    p = _clamp(_num(probability) or 0.0, 0.0, 1.0)
    u = unit_jitter(str(ward_id), salt="infra:")

    drain_density = _num(static_features.get("drain_density"))
    if drain_density is None:
        drain_density = 0.3 + u * 0.5

    low_lying = _num(static_features.get("low_lying_pct"))
    if low_lying is None:
        low_lying = p * 50 + u * 20

    flood_freq = _num(historical_features.get("hist_flood_freq"))
    if flood_freq is None:
        flood_freq = _num(historical_features.get("historical_flood_frequency"))
    if flood_freq is None:
        flood_freq = p * 10

    stress = _num(static_features.get("drainage_stress_index"))
    if stress is None:
        stress = _clamp((1 - drain_density) * 60 + p * 40 + (u * 10 - 5))

    potholes = _num(historical_features.get("pothole_density"))
    if potholes is None:
        baseline = _num(historical_features.get("complaint_baseline"))
        potholes = baseline if baseline else flood_freq * 8 + p * 30 + u * 15
    potholes = _clamp(potholes, 5, 100)

    threshold = _num(static_features.get("failure_threshold"))
    if threshold is None or threshold <= 0:
        threshold = threshold_from_low_lying(low_lying)

    return {
        "drain_density": round(drain_density, 3),
        "low_lying_pct": round(low_lying, 1),
        "historical_flood_frequency": round(flood_freq, 2),
        "drainage_stress_index": round(stress, 1),
        "pothole_density": round(potholes, 1),
        "failure_threshold": threshold,
    }
