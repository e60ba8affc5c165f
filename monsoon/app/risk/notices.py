"""
notices.py — issued alert notices with an expiry window.

Separate from the ranked ``Alert`` feed, which is derived from wards on
every refresh.  A notice is a message somebody issued: the weather job's
heavy-rainfall warning, or an operator's manual notice.  It stays active
until it expires (3 hours by default) or is dismissed.

    ┌──────────┐  expires_at passes  ┌─────────┐
    │  active  │ ──────────────────→ │ expired │
    └──────────┘                     └─────────┘
         │ dismiss()
         ↓
    ┌───────────┐
    │ dismissed │
    └───────────┘

The board subscribes to ``alert-new`` on the event bus, so every notice
published there is recorded exactly once (keyed by ``notice_id``).
Storage is in-process and bounded; the oldest notices drop off first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from monsoon.app.core.config import settings
from monsoon.app.core.errors import NotFoundError
from monsoon.app.realtime.events import AlertNotice, Event

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class NoticeStatus(str, Enum):
    ACTIVE = "active"
    DISMISSED = "dismissed"
    EXPIRED = "expired"


@dataclass
class Notice:
    id: str
    severity: str
    message: str
    affected_ward_ids: Tuple[str, ...] = ()
    expected_rainfall_mm: Optional[float] = None
    type: str = "rainfall"
    issued_at: datetime = field(default_factory=_now)
    expires_at: Optional[datetime] = None
    status: NoticeStatus = NoticeStatus.ACTIVE
    dismissed_at: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        if self.status != NoticeStatus.ACTIVE:
            return False
        return self.expires_at is None or self.expires_at > now

    def affects(self, ward_id: str) -> bool:
        return ward_id in self.affected_ward_ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "affected_ward_ids": list(self.affected_ward_ids),
            "expected_rainfall_mm": self.expected_rainfall_mm,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "status": self.status.value,
            "dismissed_at": self.dismissed_at.isoformat() if self.dismissed_at else None,
        }


class NoticeBoard:
    """
    Usage:
        board = NoticeBoard()
        bus.subscribe(board.on_event, Topic.ALERT_NEW)

        board.active()              # newest first
        board.active(ward_id="6")   # only notices naming ward 6
        board.dismiss("ALT-…")
    """

    def __init__(
        self,
        ttl_hours: Optional[float] = None,
        limit: Optional[int] = None,
        clock: Callable[[], datetime] = _now,
    ):
        self.ttl = timedelta(hours=settings.NOTICE_TTL_HOURS if ttl_hours is None else ttl_hours)
        self.limit = limit or settings.NOTICE_LIMIT
        self._clock = clock
        self._notices: Dict[str, Notice] = {}

    def __len__(self) -> int:
        return len(self._notices)

    async def on_event(self, event: Event) -> None:
        if isinstance(event.payload, AlertNotice):
            self.record(event.payload)

    def record(self, alert: AlertNotice, ttl: Optional[timedelta] = None) -> Notice:
        """Store a published notice. Re-recording the same id is a no-op."""
        existing = self._notices.get(alert.notice_id)
        if existing is not None:
            return existing

        issued = _parse_time(alert.timestamp) or self._clock()
        notice = Notice(
            id=alert.notice_id,
            severity=alert.severity,
            message=alert.message,
            affected_ward_ids=tuple(alert.affected_ward_ids),
            expected_rainfall_mm=alert.expected_rainfall_mm,
            issued_at=issued,
            expires_at=issued + (ttl or self.ttl),
        )
        self._notices[notice.id] = notice
        while len(self._notices) > self.limit:
            oldest = next(iter(self._notices))
            del self._notices[oldest]
        logger.info(
            "Notice %s (%s) recorded for %d wards",
            notice.id, notice.severity, len(notice.affected_ward_ids),
        )
        return notice

    def _expire(self, now: datetime) -> None:
        for notice in self._notices.values():
            if notice.status == NoticeStatus.ACTIVE and not notice.is_active(now):
                notice.status = NoticeStatus.EXPIRED

    def active(self, ward_id: Optional[str] = None) -> List[Notice]:
        now = self._clock()
        self._expire(now)
        notices = [
            n for n in self._notices.values()
            if n.status == NoticeStatus.ACTIVE and (ward_id is None or n.affects(ward_id))
        ]
        return sorted(notices, key=lambda n: n.issued_at, reverse=True)

    def get(self, notice_id: str) -> Notice:
        notice = self._notices.get(notice_id)
        if notice is None:
            raise NotFoundError("Notice", notice_id=notice_id)
        self._expire(self._clock())
        return notice

    def dismiss(self, notice_id: str) -> Notice:
        notice = self.get(notice_id)
        if notice.status != NoticeStatus.DISMISSED:
            notice.status = NoticeStatus.DISMISSED
            notice.dismissed_at = self._clock()
            logger.info("Notice %s dismissed", notice_id)
        return notice
