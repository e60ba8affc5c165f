"""
Latest dashboard view, guarded by a generation counter.

Every refresh takes a generation number before it starts.  A finished
refresh is committed only if no newer generation has been committed in
the meantime; an older result arriving late is discarded.
"""

from __future__ import annotations

import logging
from typing import Optional

from monsoon.app.dashboard.view_model import DashboardView

logger = logging.getLogger(__name__)


class WardStore:
    def __init__(self) -> None:
        self._issued = 0
        self._committed = 0
        self._view: Optional[DashboardView] = None

    @property
    def view(self) -> Optional[DashboardView]:
        return self._view

    @property
    def generation(self) -> int:
        """Generation of the committed view (0 before the first commit)."""
        return self._committed

    def next_generation(self) -> int:
        self._issued += 1
        return self._issued

    def commit(self, view: DashboardView) -> bool:
        if view.generation < self._committed:
            logger.info(
                "Discarding stale view generation %d (current %d)",
                view.generation, self._committed,
                extra={"generation": view.generation},
            )
            return False
        self._committed = view.generation
        self._view = view
        return True
