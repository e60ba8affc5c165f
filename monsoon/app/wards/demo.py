"""
Fixed demo dataset — the last link in the source fallback chain.

Eight representative wards, two per major zone, with hand-picked rainfall
and infrastructure values.  Risk fields are recomputed through the ratio
heuristic on load so the demo set obeys the same tier rule as live data.
"""

from __future__ import annotations

from typing import List

from monsoon.app.risk.classifier import classify_by_ratio
from monsoon.app.spatial.coordinates import resolve
from monsoon.app.wards.models import DataSource, RiskLevel, Ward, utc_now_iso

# id, name, zone, current, forecast_3h, threshold, drainage_stress, pothole_density
_DEMO_ROWS = (
    ("1", "Connaught Place", "Central Delhi", 0, 25, 60, 35, 20),
    ("2", "Sadar Bazar", "North Delhi", 22, 68, 45, 78, 72),
    ("3", "Greater Kailash", "South Delhi", 0, 18, 70, 22, 12),
    ("4", "Laxmi Nagar", "East Delhi", 14, 52, 52, 66, 58),
    ("5", "Dwarka", "West Delhi", 2, 20, 68, 30, 18),
    ("6", "Sangam Vihar", "South Delhi", 25, 72, 42, 82, 78),
    ("7", "Rohini", "North Delhi", 5, 30, 65, 42, 28),
    ("8", "Shahdara", "East Delhi", 16, 58, 50, 70, 62),
)

DEMO_WARD_COUNT = len(_DEMO_ROWS)


def demo_wards() -> List[Ward]:
    """Build the demo set. Always returns DEMO_WARD_COUNT wards."""
    now = utc_now_iso()
    wards = []
    for wid, name, zone, current, forecast, threshold, stress, potholes in _DEMO_ROWS:
        ward = Ward(
            id=wid,
            name=name,
            zone=zone,
            current_rainfall=float(current),
            forecast_rainfall_3h=float(forecast),
            failure_threshold=float(threshold),
            risk_level=RiskLevel.SAFE,
            preparedness_score=100,
            drainage_stress_index=float(stress),
            pothole_density=float(potholes),
            source=DataSource.DEMO,
            last_updated=now,
        )
        ward = ward.with_assessment(classify_by_ratio(current, forecast, threshold))
        coords = resolve(name, zone)
        if coords:
            ward = ward.with_location(*coords)
        wards.append(ward)
    return wards
