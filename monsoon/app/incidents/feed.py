"""
Incident feed and local store.

``IncidentFeed``       in-memory, most-recent-first, capped (default 20),
                       de-duplicated by id; readers get a tuple snapshot
``LocalIncidentStore`` JSON file, most-recent-first, capped (default 100)

The two are written independently and never reconciled with the remote
incident endpoint.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from monsoon.app.core.config import settings
from monsoon.app.incidents.models import Incident

logger = logging.getLogger(__name__)


class IncidentFeed:
    def __init__(self, limit: Optional[int] = None):
        self.limit = limit or settings.INCIDENT_FEED_LIMIT
        self._items: List[Incident] = []

    def __len__(self) -> int:
        return len(self._items)

    def push(self, incident: Incident) -> None:
        """Put ``incident`` at the head; evict the oldest past the cap."""
        self._items = [i for i in self._items if i.id != incident.id]
        self._items.insert(0, incident)
        del self._items[self.limit:]

    def replace(self, incidents: Iterable[Incident]) -> None:
        """Swap the whole feed (remote refresh), newest first."""
        seen = set()
        ordered = []
        for inc in sorted(incidents, key=lambda i: i.occurred_at, reverse=True):
            if inc.id not in seen:
                seen.add(inc.id)
                ordered.append(inc)
        self._items = ordered[:self.limit]

    def merge(self, incidents: Iterable[Incident]) -> None:
        known = {i.id for i in self._items}
        self.replace([*self._items, *(i for i in incidents if i.id not in known)])

    def snapshot(self) -> Tuple[Incident, ...]:
        return tuple(self._items)


class LocalIncidentStore:
    def __init__(self, path: Optional[str] = None, limit: Optional[int] = None):
        self.path = Path(path or settings.INCIDENT_STORE_PATH)
        self.limit = limit or settings.INCIDENT_STORE_LIMIT

    def load(self) -> List[Incident]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Incident store %s unreadable: %s", self.path, e)
            return []
        incidents = []
        for row in raw if isinstance(raw, list) else []:
            if not isinstance(row, dict):
                logger.debug("Skipping stored incident that is not an object: %r", row)
                continue
            try:
                incidents.append(Incident.from_dict(row))
            except (ValueError, TypeError, AttributeError) as e:
                logger.debug("Skipping stored incident: %s", e)
        return incidents

    def save(self, incident: Incident) -> bool:
        stored = [i for i in self.load() if i.id != incident.id]
        stored.insert(0, incident)
        stored = stored[:self.limit]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps([i.to_dict() for i in stored], indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning("Could not write incident store %s: %s", self.path, e)
            return False
        return True
