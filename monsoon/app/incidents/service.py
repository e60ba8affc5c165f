"""
Incident service — submission, remote sync and the demo generator.

Submission path:

    build Incident ─► feed.push ─► local JSON store ─► POST {remote}/incidents
                                                   └─► publish incident-new

Forwarding is best-effort: a failure is logged and the incident stays in
the feed and the local store.  ``refresh_from_remote`` replaces the feed
with the remote list, or leaves it untouched when the remote is down.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

import httpx

from monsoon.app.core.config import settings
from monsoon.app.core.errors import ValidationError
from monsoon.app.incidents.feed import IncidentFeed, LocalIncidentStore
from monsoon.app.incidents.models import (
    Incident,
    IncidentLocation,
    IncidentStatus,
    IncidentType,
    new_incident_id,
)
from monsoon.app.realtime.events import EventBus, Topic
from monsoon.app.wards.models import Ward

logger = logging.getLogger(__name__)


class IncidentService:
    def __init__(
        self,
        feed: IncidentFeed,
        store: LocalIncidentStore,
        bus: EventBus,
        remote_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.feed = feed
        self.store = store
        self.bus = bus
        self.remote_url = (remote_url if remote_url is not None else settings.INCIDENT_API_URL) or None
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=settings.INCIDENT_TIMEOUT, transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def load_stored(self) -> int:
        """Merge locally stored incidents into the feed (start-up)."""
        stored = self.store.load()
        self.feed.merge(stored)
        return len(stored)

    # ── Submission ──

    async def submit(
        self,
        *,
        type: str,
        ward_id: str,
        ward_name: Optional[str] = None,
        description: Optional[str] = None,
        severity: int = 2,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        accuracy: Optional[float] = None,
        ward_location: Optional[tuple] = None,
        image_data: Optional[str] = None,
        validation_score: Optional[int] = None,
    ) -> Incident:
        try:
            incident_type = IncidentType(type)
        except ValueError:
            raise ValidationError(f"Unknown incident type '{type}'", field="type")
        if not ward_id:
            raise ValidationError("ward_id is required", field="ward_id")

        if latitude is not None and longitude is not None:
            location = IncidentLocation(latitude, longitude, accuracy, source="gps")
        elif ward_location:
            location = IncidentLocation(ward_location[0], ward_location[1], source="ward")
        else:
            location = None

        incident = Incident(
            id=new_incident_id(),
            type=incident_type,
            ward_id=str(ward_id),
            ward_name=ward_name or str(ward_id),
            severity=max(1, min(3, int(severity))),
            description=description or "User-reported incident",
            location=location,
            image_ref=image_data,
            validation_score=validation_score,
        )

        self.feed.push(incident)
        await asyncio.to_thread(self.store.save, incident)
        await self.forward(incident)
        await self.bus.publish(Topic.INCIDENT_NEW, incident)
        logger.info("Incident %s (%s) reported in ward %s", incident.id, incident.type.value, incident.ward_id)
        return incident

    async def forward(self, incident: Incident) -> bool:
        if not self.remote_url:
            return False
        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.remote_url.rstrip('/')}/incidents",
                json=incident.to_remote_payload(),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Could not forward incident %s: %s", incident.id, e)
            return False
        return True

    # ── Remote refresh ──

    async def refresh_from_remote(self) -> bool:
        """Replace the feed with the remote list. Keeps the feed on failure."""
        if not self.remote_url:
            return False
        client = await self._get_client()
        try:
            response = await client.get(f"{self.remote_url.rstrip('/')}/incidents")
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.info("Incident refresh failed, keeping current feed: %s", e)
            return False
        if not isinstance(rows, list) or not rows:
            return False

        incidents: List[Incident] = []
        for row in rows:
            try:
                incidents.append(Incident.from_dict(row))
            except (ValueError, TypeError, AttributeError) as e:
                logger.debug("Skipping malformed remote incident: %s", e)
        if not incidents:
            return False
        self.feed.replace(incidents)
        return True


# ═══════════════════════════════════════════════════════════════════════════
# Demo generator
# ═══════════════════════════════════════════════════════════════════════════

_DEMO_STATUSES = (
    IncidentStatus.VERIFIED, IncidentStatus.PENDING,
    IncidentStatus.VERIFIED, IncidentStatus.VERIFIED,
)


def generate_demo_incidents(
    wards: Sequence[Ward],
    count: int = 12,
    seed: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Incident]:
    """Plausible field reports spread over the last three hours."""
    if not wards:
        return []
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)
    incidents = []
    for i in range(count):
        ward = rng.choice(list(wards))
        occurred = now - timedelta(hours=rng.randrange(3), minutes=rng.randrange(60))
        location = None
        if ward.has_location:
            location = IncidentLocation(ward.latitude, ward.longitude, source="ward")
        incidents.append(Incident(
            id=f"DEMO-{i + 1}",
            type=rng.choice(list(IncidentType)),
            status=rng.choice(_DEMO_STATUSES),
            ward_id=ward.id,
            ward_name=ward.name,
            severity=rng.randint(1, 3),
            description="Field-reported incident",
            occurred_at=occurred,
            location=location,
        ))
    incidents.sort(key=lambda inc: inc.occurred_at, reverse=True)
    return incidents
