"""
Service wiring.

One ``Services`` instance per application, built in the lifespan and
stored on ``app.state.services``.  Routes receive it through the
``get_services`` dependency; tests build their own with fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from monsoon.app.incidents.feed import IncidentFeed, LocalIncidentStore
from monsoon.app.incidents.service import IncidentService
from monsoon.app.ingestion.prediction_client import PredictionClient
from monsoon.app.ingestion.ward_aggregator import WardAggregator
from monsoon.app.ingestion.weather_ingestion import WeatherIngestionJob
from monsoon.app.ingestion.weather_service import WeatherService
from monsoon.app.realtime.dispatcher import UpdateDispatcher
from monsoon.app.realtime.events import EventBus, Topic
from monsoon.app.realtime.websocket import WSManager
from monsoon.app.risk.notices import NoticeBoard
from monsoon.app.wards.repository import WardRepository


@dataclass
class Services:
    bus: EventBus
    repository: WardRepository
    prediction: PredictionClient
    weather: WeatherService
    incidents: IncidentService
    aggregator: WardAggregator
    dispatcher: UpdateDispatcher
    ingestion: WeatherIngestionJob
    sockets: WSManager
    notices: NoticeBoard

    async def close(self) -> None:
        await self.ingestion.stop()
        await self.dispatcher.stop()
        await self.prediction.close()
        await self.weather.close()
        await self.incidents.close()


def build_services(
    repository: Optional[WardRepository] = None,
    prediction: Optional[PredictionClient] = None,
    weather: Optional[WeatherService] = None,
    incident_store: Optional[LocalIncidentStore] = None,
    incident_url: Optional[str] = None,
    retry_delay: Optional[float] = None,
) -> Services:
    bus = EventBus()
    repository = repository or WardRepository()
    prediction = prediction or PredictionClient()
    weather = weather or WeatherService()
    incidents = IncidentService(
        IncidentFeed(), incident_store or LocalIncidentStore(), bus, remote_url=incident_url,
    )
    aggregator = WardAggregator(prediction, repository, retry_delay=retry_delay)
    dispatcher = UpdateDispatcher(aggregator, incidents, bus)
    sockets = WSManager()
    notices = NoticeBoard()

    bus.subscribe(notices.on_event, Topic.ALERT_NEW)
    bus.subscribe(sockets.on_event)
    dispatcher.subscribe(sockets.on_view)

    return Services(
        bus=bus,
        repository=repository,
        prediction=prediction,
        weather=weather,
        incidents=incidents,
        aggregator=aggregator,
        dispatcher=dispatcher,
        ingestion=WeatherIngestionJob(weather, repository, prediction, bus),
        sockets=sockets,
        notices=notices,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
