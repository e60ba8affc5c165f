"""
Typed publish/subscribe channel.

Topics and their payloads:

    ┌───────────────┬───────────────┬─────────────────────────────────────┐
    │ Topic         │ Payload       │ Published by                        │
    ├───────────────┼───────────────┼─────────────────────────────────────┤
    │ ward-update   │ WardDelta     │ weather ingestion, per ward         │
    │ data-refresh  │ DataRefresh   │ weather ingestion, once per cycle   │
    │ incident-new  │ Incident      │ incident submission                 │
    │ alert-new     │ AlertNotice   │ weather ingestion, manual notices   │
    │ disconnect    │ ChannelState  │ WebSocket route, on socket close    │
    │ reconnect     │ ChannelState  │ WebSocket route, connect or request │
    └───────────────┴───────────────┴─────────────────────────────────────┘

``publish`` checks the payload type against the topic, then awaits each
handler in subscription order.  A failing handler is logged and does not
stop delivery to the rest.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from monsoon.app.incidents.models import Incident

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _notice_id() -> str:
    return f"ALT-{uuid.uuid4().hex[:12].upper()}"


class Topic(str, Enum):
    WARD_UPDATE = "ward-update"
    DATA_REFRESH = "data-refresh"
    INCIDENT_NEW = "incident-new"
    ALERT_NEW = "alert-new"
    DISCONNECT = "disconnect"
    RECONNECT = "reconnect"


@dataclass(frozen=True)
class WardDelta:
    ward_id: str
    ward_name: str
    rainfall: float
    forecast: float
    risk_level: str
    preparedness_score: int
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DataRefresh:
    kind: str  # weather | wards
    source: str
    count: int
    rainfall: Optional[float] = None
    forecast: Optional[float] = None
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AlertNotice:
    severity: str
    message: str
    affected_ward_ids: Tuple[str, ...] = ()
    timestamp: str = field(default_factory=_now)
    expected_rainfall_mm: Optional[float] = None
    notice_id: str = field(default_factory=_notice_id)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["affected_ward_ids"] = list(self.affected_ward_ids)
        return d


@dataclass(frozen=True)
class ChannelState:
    reason: str = ""
    client_id: Optional[str] = None
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


TOPIC_PAYLOADS = {
    Topic.WARD_UPDATE: WardDelta,
    Topic.DATA_REFRESH: DataRefresh,
    Topic.INCIDENT_NEW: Incident,
    Topic.ALERT_NEW: AlertNotice,
    Topic.DISCONNECT: ChannelState,
    Topic.RECONNECT: ChannelState,
}


@dataclass(frozen=True)
class Event:
    topic: Topic
    payload: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.topic.value, "data": self.payload.to_dict()}


Handler = Callable[[Event], Awaitable[None]]


class EventBus:
    """
    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(handler)                  # every topic
        bus.subscribe(on_incident, Topic.INCIDENT_NEW)        # one topic
        await bus.publish(Topic.ALERT_NEW, AlertNotice("high", "..."))
    """

    def __init__(self) -> None:
        self._handlers: List[Tuple[Optional[Topic], Handler]] = []
        self.published: Dict[Topic, int] = {t: 0 for t in Topic}

    def subscribe(self, handler: Handler, topic: Optional[Topic] = None) -> Callable[[], None]:
        entry = (topic, handler)
        self._handlers.append(entry)

        def unsubscribe() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return unsubscribe

    async def publish(self, topic: Topic, payload: Any) -> Event:
        expected = TOPIC_PAYLOADS[topic]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{topic.value} expects {expected.__name__}, got {type(payload).__name__}"
            )
        event = Event(topic, payload)
        self.published[topic] += 1
        for wanted, handler in list(self._handlers):
            if wanted is not None and wanted != topic:
                continue
            try:
                await handler(event)
            except Exception:
                logger.exception("Handler %r failed on %s", handler, topic.value)
        return event
