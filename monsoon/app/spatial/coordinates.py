"""
coordinates.py — Ward name/zone → (lat, lon), grid cells.

Resolution order
================
    1. EXACT      upper-cased, trimmed name found in KNOWN_WARDS
    2. SUBSTRING  name contains a known key, or a known key contains the name
    3. ZONE BOX   deterministic point inside the zone's bounding box, offset
                  by a 32-bit string hash of the ward name

Step 3 keeps unknown wards spread out and stable across refreshes: the same
``(name, zone)`` always lands on the same point, so markers never jitter.

Every result is validated against Delhi's bounding box

    28.0 ≤ lat ≤ 29.0,   76.5 ≤ lon ≤ 77.5

and rejected (logged, returns None) otherwise.

Grid cells
==========
Weather lookups are batched by rounding coordinates to 0.1° (≈ 11 km):

    grid_cell(28.6315, 77.2167)  →  (28.6, 77.2)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DELHI_CENTER = (28.6139, 77.2090)
DELHI_BOUNDS = {"lat_min": 28.0, "lat_max": 29.0, "lon_min": 76.5, "lon_max": 77.5}

GRID_CELL_DEGREES = 0.1

# Shorter names would match half the table ("E", "NAGAR")
MIN_PARTIAL_NAME = 6


@dataclass(frozen=True)
class ZoneBox:
    """Centre plus half-extent, in degrees."""
    lat: float
    lon: float
    lat_spread: float
    lon_spread: float


ZONE_BOXES: Dict[str, ZoneBox] = {
    "East Delhi":       ZoneBox(28.6300, 77.3000, 0.08, 0.06),
    "North Delhi":      ZoneBox(28.7200, 77.1500, 0.10, 0.08),
    "North West Delhi": ZoneBox(28.7041, 77.0800, 0.06, 0.06),
    "South Delhi":      ZoneBox(28.5200, 77.2200, 0.08, 0.08),
    "South West Delhi": ZoneBox(28.5800, 77.0300, 0.06, 0.06),
    "West Delhi":       ZoneBox(28.6200, 77.0400, 0.08, 0.08),
    "Central Delhi":    ZoneBox(28.6400, 77.2100, 0.04, 0.04),
    "Delhi":            ZoneBox(28.6139, 77.2090, 0.12, 0.12),
}

# Verified positions of well-known wards and localities
KNOWN_WARDS: Dict[str, Tuple[float, float]] = {
    # Central
    "CONNAUGHT PLACE": (28.6315, 77.2167),
    "KAROL BAGH": (28.6514, 77.1907),
    "RAJINDER NAGAR": (28.6425, 77.1803),
    "PAHAR GANJ": (28.6444, 77.2125),
    "DEV NAGAR": (28.6520, 77.1850),
    "EAST PATEL NAGAR": (28.6453, 77.1714),
    "WEST PATEL NAGAR": (28.6453, 77.1650),
    "MOTI NAGAR": (28.6555, 77.1487),
    "RAMESH NAGAR": (28.6519, 77.1386),
    "NARAINA": (28.6268, 77.1378),
    "INDER PURI": (28.6170, 77.1694),
    "KARAM PURA": (28.6583, 77.1325),
    # South
    "GREATER KAILASH": (28.5482, 77.2400),
    "HAUZ KHAS": (28.5494, 77.2001),
    "GREEN PARK": (28.5605, 77.2068),
    "MALVIYA NAGAR": (28.5323, 77.2120),
    "SAKET": (28.5245, 77.2066),
    "MEHRAULI": (28.5181, 77.1794),
    "CHHATARPUR": (28.5078, 77.1740),
    "VASANT KUNJ": (28.5197, 77.1573),
    "VASANT VIHAR": (28.5621, 77.1589),
    "MUNIRKA": (28.5580, 77.1727),
    "R.K. PURAM": (28.5694, 77.1879),
    "KHANPUR": (28.5089, 77.2453),
    "SANGAM VIHAR": (28.5010, 77.2472),
    "TIGRI": (28.5109, 77.2503),
    "LADO SARAI": (28.5241, 77.1876),
    "CHIRAG DELHI": (28.5408, 77.2256),
    "CHITARANJAN PARK": (28.5398, 77.2494),
    "PUSHP VIHAR": (28.5211, 77.2287),
    "LAJPAT NAGAR": (28.5700, 77.2373),
    "DEFENCE COLONY": (28.5743, 77.2333),
    "OKHLA": (28.5295, 77.2686),
    "BADARPUR": (28.5104, 77.3008),
    "TUGHLAKABAD": (28.5161, 77.2538),
    "KALKAJI": (28.5453, 77.2562),
    "NEHRU PLACE": (28.5491, 77.2511),
    # North
    "ROHINI": (28.7495, 77.0565),
    "PITAM PURA": (28.7055, 77.1287),
    "SHALIMAR BAGH": (28.7185, 77.1570),
    "MODEL TOWN": (28.7178, 77.1891),
    "AZADPUR": (28.7052, 77.1802),
    "ADARSH NAGAR": (28.7135, 77.1712),
    "ASHOK VIHAR": (28.6935, 77.1775),
    "NARELA": (28.8528, 77.0926),
    "ALIPUR": (28.7965, 77.1353),
    "BURARI": (28.7614, 77.1919),
    "BAWANA": (28.8000, 77.0500),
    "MUKHERJEE NAGAR": (28.7007, 77.2107),
    "KAMLA NAGAR": (28.6806, 77.2107),
    "TIMARPUR": (28.6950, 77.2200),
    "JAHANGIR PURI": (28.7300, 77.1700),
    # North West
    "MANGOLPURI": (28.6972, 77.0778),
    "SULTANPURI": (28.6947, 77.0667),
    "NANGLOI": (28.6803, 77.0667),
    "KIRARI": (28.6867, 77.0533),
    "MUNDKA": (28.6838, 77.0244),
    "RITHALA": (28.7200, 77.1100),
    "BUDH VIHAR": (28.6950, 77.1000),
    "TRI NAGAR": (28.6806, 77.1530),
    "SHAKUR PUR": (28.6900, 77.1250),
    "KESHAV PURAM": (28.6860, 77.1650),
    # West
    "DWARKA": (28.5921, 77.0460),
    "JANAKPURI": (28.6245, 77.0827),
    "RAJOURI GARDEN": (28.6495, 77.1213),
    "PUNJABI BAGH": (28.6685, 77.1282),
    "PASCHIM VIHAR": (28.6679, 77.0979),
    "UTTAM NAGAR": (28.6205, 77.0614),
    "VIKAS PURI": (28.6390, 77.0700),
    "TILAK NAGAR": (28.6421, 77.0924),
    "HARI NAGAR": (28.6312, 77.1120),
    "NAJAFGARH": (28.6100, 76.9800),
    "PALAM": (28.5880, 77.0861),
    "BIJWASAN": (28.5240, 77.0640),
    "MAHIPALPUR": (28.5380, 77.1140),
    "SAGARPUR": (28.6080, 77.1030),
    # Old Delhi
    "CHANDNI CHOWK": (28.6562, 77.2310),
    "JAMA MASJID": (28.6507, 77.2334),
    "DELHI GATE": (28.6407, 77.2417),
    "SADAR BAZAR": (28.6619, 77.2090),
    "CIVIL LINES": (28.6805, 77.2263),
    # East
    "LAXMI NAGAR": (28.6304, 77.2773),
    "PREET VIHAR": (28.6406, 77.2948),
    "MAYUR VIHAR": (28.6092, 77.2975),
    "PATPARGANJ": (28.6138, 77.2887),
    "PANDAV NAGAR": (28.6235, 77.2859),
    "SHAHDARA": (28.6764, 77.2886),
    "TRILOKPURI": (28.5949, 77.3122),
    "GANDHI NAGAR": (28.6585, 77.2524),
}


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def name_hash(text: str) -> int:
    """
    Stable signed 32-bit hash: h = h·31 + ord(c), wrapped each step.

    Python's built-in ``hash`` is salted per process, so it cannot be used
    for positions that must survive restarts.
    """
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def unit_jitter(key: str, salt: str = "") -> float:
    """Deterministic value in [0, 1) derived from ``key``."""
    return (name_hash(salt + key) & 0xFFFF) / 0x10000


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def in_delhi(lat: float, lon: float) -> bool:
    return (
        DELHI_BOUNDS["lat_min"] <= lat <= DELHI_BOUNDS["lat_max"]
        and DELHI_BOUNDS["lon_min"] <= lon <= DELHI_BOUNDS["lon_max"]
    )


def _lookup(name: str) -> Optional[Tuple[float, float]]:
    key = name.strip().upper()
    if not key:
        return None
    if key in KNOWN_WARDS:
        return KNOWN_WARDS[key]
    for known, coords in KNOWN_WARDS.items():
        if known in key or (len(key) >= MIN_PARTIAL_NAME and key in known):
            return coords
    return None


def _zone_point(name: str, zone: str) -> Tuple[float, float]:
    box = ZONE_BOXES.get(zone, ZONE_BOXES["Delhi"])
    h = name_hash(name.strip())
    u = (h & 0xFFFF) / 0xFFFF
    v = ((h >> 16) & 0xFFFF) / 0xFFFF
    lat = box.lat + (u - 0.5) * 2 * box.lat_spread
    lon = box.lon + (v - 0.5) * 2 * box.lon_spread
    return round(lat, 6), round(lon, 6)


def resolve(name: str, zone: str) -> Optional[Tuple[float, float]]:
    """
    Resolve a ward to (lat, lon). Pure function of ``(name, zone)``.

    Returns None, and logs, when the point falls outside Delhi.
    """
    coords = _lookup(name or "") or _zone_point(name or "", zone)
    if not in_delhi(*coords):
        logger.warning(
            "Resolved point %s for ward '%s' (%s) is outside Delhi, not rendering",
            coords, name, zone,
        )
        return None
    return coords


def grid_cell(lat: float, lon: float, size: float = GRID_CELL_DEGREES) -> Tuple[float, float]:
    """Bucket a point into a coarse grid cell for batched weather lookups."""
    return (round(round(lat / size) * size, 4), round(round(lon / size) * size, 4))


def grid_key(cell: Tuple[float, float]) -> str:
    return f"{cell[0]:.1f}:{cell[1]:.1f}"
