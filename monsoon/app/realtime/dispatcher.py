"""
Update dispatcher — keeps the dashboard view fresh.

═══════════════════════════════════════════════════════════════════════════
TRIGGERS
═══════════════════════════════════════════════════════════════════════════

    ward timer       every WARD_REFRESH_SECONDS (30 s)     full refresh
    incident timer   every INCIDENT_REFRESH_SECONDS (15 s) incident-only
    ward-update      bus push                              full refresh
    data-refresh     bus push                              full refresh
    alert-new        bus push                              full refresh
    incident-new     bus push                              incident-only
    reconnect        bus push                              forced full refresh
    disconnect       bus push                              logged only

═══════════════════════════════════════════════════════════════════════════
CONCURRENCY
═══════════════════════════════════════════════════════════════════════════

At most one full refresh runs at a time.  A request arriving while one is
in flight marks ONE pending refresh; any further requests fold into it.
When the in-flight refresh finishes the pending one runs, so bursts of
ward-update events cost at most two aggregations.

Each full refresh takes a generation number up front and commits through
``WardStore.commit``, which drops a result older than the committed view.
Incident-only rebuilds reuse the committed wards and generation.

Listeners are awaited with the committed ``DashboardView`` (frozen).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from monsoon.app.core.config import settings
from monsoon.app.dashboard.view_model import DashboardView, build_view
from monsoon.app.incidents.models import Incident
from monsoon.app.incidents.service import IncidentService, generate_demo_incidents
from monsoon.app.ingestion.ward_aggregator import AggregationResult, WardAggregator
from monsoon.app.realtime.events import Event, EventBus, Topic
from monsoon.app.realtime.store import WardStore
from monsoon.app.wards.models import DataSource, utc_now_iso

logger = logging.getLogger(__name__)

Listener = Callable[[DashboardView], Awaitable[None]]

_FULL_REFRESH_TOPICS = (Topic.WARD_UPDATE, Topic.DATA_REFRESH, Topic.ALERT_NEW)


class UpdateDispatcher:
    """
    Usage:
        dispatcher = UpdateDispatcher(aggregator, incident_service, bus)
        dispatcher.subscribe(on_view)
        await dispatcher.start()
        view = await dispatcher.refresh_now()
        await dispatcher.stop()
    """

    def __init__(
        self,
        aggregator: WardAggregator,
        incidents: IncidentService,
        bus: EventBus,
        store: Optional[WardStore] = None,
        ward_interval: Optional[float] = None,
        incident_interval: Optional[float] = None,
        start_delay: Optional[float] = None,
    ):
        self.aggregator = aggregator
        self.incidents = incidents
        self.bus = bus
        self.store = store or WardStore()
        self.ward_interval = ward_interval or settings.WARD_REFRESH_SECONDS
        self.incident_interval = incident_interval or settings.INCIDENT_REFRESH_SECONDS
        self.start_delay = settings.DISPATCHER_START_DELAY if start_delay is None else start_delay

        self._listeners: List[Listener] = []
        self._unsubscribe: List[Callable[[], None]] = []
        self._refresh_task: Optional[asyncio.Task] = None
        self._pending = False
        self._running = False
        self._timers: List[asyncio.Task] = []
        self._demo_incidents: Tuple[Incident, ...] = ()
        self._last_refresh: Optional[str] = None
        self.refresh_count = 0
        self.coalesced_count = 0

    # ── Listeners ──

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, view: DashboardView) -> None:
        for listener in list(self._listeners):
            try:
                await listener(view)
            except Exception:
                logger.exception("Dashboard listener %r failed", listener)

    # ── Lifecycle ──

    async def start(self):
        if self._running:
            return
        self._running = True
        self._unsubscribe.append(self.bus.subscribe(self._on_event))
        self._timers = [
            asyncio.create_task(self._timer(self.ward_interval, self._ward_tick, 0)),
            asyncio.create_task(self._timer(self.incident_interval, self.refresh_incidents, self.start_delay)),
        ]
        logger.info(
            "Update dispatcher started (wards every %ss, incidents every %ss)",
            self.ward_interval, self.incident_interval,
        )

    async def stop(self):
        self._running = False
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        tasks = [*self._timers]
        if self._refresh_task and not self._refresh_task.done():
            tasks.append(self._refresh_task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._timers = []
        logger.info("Update dispatcher stopped")

    async def _timer(self, interval: float, tick: Callable[[], Awaitable[Any]], delay: float):
        if delay:
            await asyncio.sleep(delay)
        while self._running:
            try:
                await tick()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("Dispatcher timer error: %s", e)
                await asyncio.sleep(interval)

    async def _ward_tick(self):
        await self.request_refresh("timer")

    async def _on_event(self, event: Event) -> None:
        if event.topic in _FULL_REFRESH_TOPICS:
            self.request_refresh(event.topic.value)
        elif event.topic == Topic.INCIDENT_NEW:
            await self.rebuild_incidents()
        elif event.topic == Topic.RECONNECT:
            logger.info("Client reconnected, forcing full refresh")
            self.request_refresh("reconnect")
        elif event.topic == Topic.DISCONNECT:
            logger.info("Client disconnected: %s", event.payload.reason or "closed")

    # ── Full refresh ──

    def request_refresh(self, reason: str = "manual") -> asyncio.Task:
        """Start a refresh, or fold into the pending one if one is running."""
        if self._refresh_task is not None and not self._refresh_task.done():
            if self._pending:
                self.coalesced_count += 1
            self._pending = True
            return self._refresh_task
        self._refresh_task = asyncio.create_task(self._drain(reason))
        return self._refresh_task

    async def refresh_now(self) -> Optional[DashboardView]:
        """Request a refresh and wait until it (and any pending one) lands."""
        await self.request_refresh("manual")
        return self.store.view

    async def wait_idle(self) -> None:
        """Wait for the in-flight refresh and any pending one."""
        while self._refresh_task is not None and not self._refresh_task.done():
            await self._refresh_task

    async def _drain(self, reason: str) -> None:
        await self._refresh(reason)
        while self._pending:
            self._pending = False
            await self._refresh("coalesced")

    async def _refresh(self, reason: str) -> bool:
        generation = self.store.next_generation()
        started = time.perf_counter()
        try:
            result = await self.aggregator.aggregate()
            view = self._build(result, generation)
        except Exception:
            logger.exception("Dashboard refresh %d failed", generation)
            return False

        self.refresh_count += 1
        if not self.store.commit(view):
            return False
        self._last_refresh = view.generated_at
        logger.info(
            "Dashboard refreshed (%s): %d wards, status %s",
            reason, len(view.wards), view.status,
            extra={
                "generation": generation,
                "ward_count": len(view.wards),
                "source": view.source,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
        await self._notify(view)
        return True

    def _build(self, result: AggregationResult, generation: int) -> DashboardView:
        return build_view(
            result.wards,
            self._incidents_for(result.source, result.wards),
            status=result.status,
            source=result.source.value,
            errors=result.errors,
            generation=generation,
        )

    def _incidents_for(self, source: DataSource, wards) -> Tuple[Incident, ...]:
        feed = self.incidents.feed.snapshot()
        if feed or source != DataSource.DEMO:
            return feed
        if not self._demo_incidents:
            self._demo_incidents = tuple(generate_demo_incidents(wards))
        return self._demo_incidents

    # ── Incident-only refresh ──

    async def refresh_incidents(self) -> bool:
        await self.incidents.refresh_from_remote()
        return await self.rebuild_incidents()

    async def rebuild_incidents(self) -> bool:
        current = self.store.view
        if current is None:
            return False
        source = DataSource(current.source)
        incidents = self._incidents_for(source, current.wards)
        if incidents == current.incidents:
            return False
        view = replace(current, incidents=incidents, generated_at=utc_now_iso())
        if not self.store.commit(view):
            return False
        await self._notify(view)
        return True

    # ── Status ──

    def status(self) -> Dict[str, Any]:
        view = self.store.view
        return {
            "running": self._running,
            "generation": self.store.generation,
            "in_flight": self._refresh_task is not None and not self._refresh_task.done(),
            "pending": self._pending,
            "refresh_count": self.refresh_count,
            "coalesced_count": self.coalesced_count,
            "last_refresh": self._last_refresh,
            "status": view.status if view else None,
        }
