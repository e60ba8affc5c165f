"""
weather_service.py — Delhi rainfall from OpenWeather (primary) or IMD (secondary).

Source selection
================
    1. OpenWeather  when OPENWEATHER_API_KEY is set
                    GET /weather  (rain.1h)   + GET /forecast (list[0].rain.3h)
    2. IMD          when IMD_API_KEY is set, or OpenWeather failed
                    GET /rainfall/current?region=Delhi
    3. Simulation   ONLY when WEATHER_SIMULATION=true

With no source configured and simulation off, ``fetch_city`` returns None
and the ingestion job skips the cycle: the dashboard keeps its last data
rather than showing invented rain.

Per-location lookups (one per 0.1° grid cell) are cached for
REDIS_WEATHER_TTL seconds (10 min) through ``core.cache``.

Error handling
==============
Every transport error, timeout or non-2xx is logged and turned into
``None``; a 2xx body missing ``main`` is treated the same.  Nothing here
raises into the job loop.
"""

from __future__ import annotations

import logging
import random
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import httpx

from monsoon.app.core.cache import cache_get, cache_set
from monsoon.app.core.config import settings
from monsoon.app.spatial.coordinates import grid_key

logger = logging.getLogger(__name__)


@dataclass
class WeatherObservation:
    """One rainfall reading, city-wide or for a grid cell."""
    source: str
    rainfall: float = 0.0  # mm in the last hour
    forecast_3h: float = 0.0  # mm expected in the next 3 hours
    humidity: Optional[float] = None
    temperature: Optional[float] = None
    clouds: Optional[float] = None
    description: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeatherObservation":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def _number(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _get(block: Any, key: str) -> Any:
    return block.get(key) if isinstance(block, dict) else None


def _rain(block: Any, key: str) -> float:
    return _number(_get(block, key)) or 0.0


def _description(weather: Any) -> str:
    first = weather[0] if isinstance(weather, list) and weather else None
    text = _get(first, "description")
    return text if isinstance(text, str) else ""


class WeatherService:
    """
    Usage:
        service = WeatherService()
        city = await service.fetch_city()
        cell = await service.fetch_for_location(28.6, 77.2)
        await service.close()
    """

    def __init__(
        self,
        openweather_key: Optional[str] = None,
        imd_key: Optional[str] = None,
        simulation: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rng: Optional[random.Random] = None,
    ):
        self.openweather_key = openweather_key if openweather_key is not None else settings.OPENWEATHER_API_KEY
        self.imd_key = imd_key if imd_key is not None else settings.IMD_API_KEY
        self.simulation = settings.WEATHER_SIMULATION if simulation is None else simulation
        self._transport = transport
        self._rng = rng or random.Random()
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=settings.WEATHER_TIMEOUT, transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    # ── Status ──

    @property
    def configured(self) -> bool:
        return bool(self.openweather_key or self.imd_key)

    def status(self) -> Dict[str, Any]:
        if self.openweather_key:
            primary = "OpenWeather"
        elif self.imd_key:
            primary = "IMD"
        else:
            primary = "Simulation" if self.simulation else "none"
        return {
            "configured": self.configured,
            "primary": primary,
            "fallback": "IMD" if self.imd_key and self.openweather_key else None,
            "simulation": self.simulation,
            "update_interval_seconds": settings.WEATHER_INGESTION_SECONDS,
        }

    # ── City-wide ──

    async def fetch_city(self) -> Optional[WeatherObservation]:
        """Best available Delhi-wide observation, or None."""
        if self.openweather_key:
            obs = await self.fetch_openweather()
            if obs:
                return obs
        if self.imd_key:
            obs = await self.fetch_imd()
            if obs:
                return obs
        if self.simulation:
            return self.simulated()
        if not self.configured:
            logger.warning("No weather source configured and simulation disabled")
        return None

    async def fetch_openweather(self) -> Optional[WeatherObservation]:
        client = await self._get_client()
        params = {"q": "Delhi,IN", "appid": self.openweather_key, "units": "metric"}
        try:
            current = await client.get(f"{settings.OPENWEATHER_BASE_URL}/weather", params=params)
            current.raise_for_status()
            forecast = await client.get(f"{settings.OPENWEATHER_BASE_URL}/forecast", params=params)
            forecast.raise_for_status()
            cur, fc = current.json(), forecast.json()
            main = cur["main"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning("OpenWeather fetch failed: %s", e)
            return None

        slots = _get(fc, "list")
        first_slot = slots[0] if isinstance(slots, list) and slots else None
        return WeatherObservation(
            source="OpenWeather",
            rainfall=_rain(_get(cur, "rain"), "1h"),
            forecast_3h=_rain(_get(first_slot, "rain"), "3h"),
            humidity=_number(_get(main, "humidity")),
            temperature=_number(_get(main, "temp")),
            clouds=_number(_get(_get(cur, "clouds"), "all")),
            description=_description(_get(cur, "weather")),
        )

    async def fetch_imd(self) -> Optional[WeatherObservation]:
        client = await self._get_client()
        try:
            response = await client.get(
                f"{settings.IMD_API_URL}/rainfall/current",
                headers={"Authorization": f"Bearer {self.imd_key}"},
                params={"region": "Delhi", "city": "New Delhi"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("IMD fetch failed: %s", e)
            return None
        if not isinstance(data, dict):
            logger.warning("IMD returned a non-object body")
            return None
        return WeatherObservation(
            source="IMD",
            rainfall=_rain(data, "rainfall_mm"),
            forecast_3h=_rain(data, "forecast_3h"),
            humidity=_number(data.get("humidity")),
            temperature=_number(data.get("temperature")),
        )

    def simulated(self) -> WeatherObservation:
        base = self._rng.random() * 10
        return WeatherObservation(
            source="Simulation",
            rainfall=round(base, 2),
            forecast_3h=round(base + self._rng.random() * 20, 2),
            humidity=round(60 + self._rng.random() * 30, 1),
            temperature=round(25 + self._rng.random() * 10, 1),
        )

    # ── Per grid cell ──

    async def fetch_for_location(self, cell: Tuple[float, float]) -> Optional[WeatherObservation]:
        """OpenWeather reading for a grid cell, cached for 10 minutes."""
        if not self.openweather_key:
            return None

        key = f"weather:{grid_key(cell)}"
        cached = await cache_get(key)
        if cached:
            return WeatherObservation.from_dict(cached)

        client = await self._get_client()
        try:
            response = await client.get(
                f"{settings.OPENWEATHER_BASE_URL}/weather",
                params={
                    "lat": cell[0], "lon": cell[1],
                    "appid": self.openweather_key, "units": "metric",
                },
            )
            response.raise_for_status()
            data = response.json()
            main = data["main"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.debug("Cell weather for %s unavailable: %s", grid_key(cell), e)
            return None

        rain = _get(data, "rain")
        obs = WeatherObservation(
            source="OpenWeather",
            rainfall=_rain(rain, "1h"),
            forecast_3h=_rain(rain, "3h") or _rain(rain, "1h"),
            humidity=_number(_get(main, "humidity")),
            temperature=_number(_get(main, "temp")),
            clouds=_number(_get(_get(data, "clouds"), "all")),
            description=_description(_get(data, "weather")),
        )
        await cache_set(key, obs.to_dict(), ttl=settings.REDIS_WEATHER_TTL)
        return obs
