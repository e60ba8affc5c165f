"""
WebSocket push channel.

Server → client messages:

    {"event": "<topic>", "data": {...}}      every bus event
    {"event": "dashboard", "data": {...}}    every committed DashboardView

Client → server messages:

    "ping"                        → {"event": "pong"}
    "reconnect" / {"event": "reconnect"}   → publishes ``reconnect``

A new connection receives the latest dashboard at once and, when one
exists, publishes ``reconnect`` so the dispatcher refreshes it.  Closing
the socket publishes ``disconnect``.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect

from monsoon.app.dashboard.view_model import DashboardView
from monsoon.app.realtime.events import ChannelState, Event, EventBus, Topic

logger = logging.getLogger(__name__)


class WSManager:
    """WebSocket connection manager for dashboard pushes."""

    def __init__(self):
        self.active: Set[WebSocket] = set()

    def __len__(self) -> int:
        return len(self.active)

    async def connect(self, ws: WebSocket):
        await ws.accept()
        self.active.add(ws)

    def disconnect(self, ws: WebSocket):
        self.active.discard(ws)

    async def broadcast(self, payload: Dict[str, Any]):
        dead: Set[WebSocket] = set()
        for ws in list(self.active):
            try:
                await ws.send_json(payload)
            except Exception:
                dead.add(ws)
        self.active -= dead

    # ── Bridges ──

    async def on_event(self, event: Event) -> None:
        if event.topic in (Topic.DISCONNECT, Topic.RECONNECT):
            return
        await self.broadcast(event.to_dict())

    async def on_view(self, view: DashboardView) -> None:
        await self.broadcast({"event": "dashboard", "data": view.to_dict()})


def _client_event(message: str) -> str:
    text = message.strip()
    if text.startswith("{"):
        try:
            return str(json.loads(text).get("event", ""))
        except (ValueError, AttributeError):
            return ""
    return text


async def serve_socket(
    ws: WebSocket,
    manager: WSManager,
    bus: EventBus,
    view: Optional[DashboardView] = None,
) -> None:
    client_id = uuid.uuid4().hex[:8]
    await manager.connect(ws)
    logger.info("WebSocket client %s connected (%d active)", client_id, len(manager))
    reason = "closed"
    try:
        if view is not None:
            await ws.send_json({"event": "dashboard", "data": view.to_dict()})
            await bus.publish(Topic.RECONNECT, ChannelState("client connected", client_id))
        while True:
            event = _client_event(await ws.receive_text())
            if event == "ping":
                await ws.send_json({"event": "pong"})
            elif event == Topic.RECONNECT.value:
                await bus.publish(Topic.RECONNECT, ChannelState("client request", client_id))
    except WebSocketDisconnect as e:
        reason = f"code {e.code}"
    finally:
        manager.disconnect(ws)
        await bus.publish(Topic.DISCONNECT, ChannelState(reason, client_id))
