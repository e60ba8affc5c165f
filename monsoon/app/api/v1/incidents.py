"""
FastAPI routes: incident reports.

    GET  /api/v1/incidents          — current feed, newest first
    POST /api/v1/incidents          — submit a field report
    GET  /api/v1/incidents/export   — dashboard export (wards + incidents)
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from monsoon.app.api.schemas import IncidentCreate
from monsoon.app.dashboard.export import build_export, export_filename
from monsoon.app.incidents.models import Incident
from monsoon.app.services import Services, get_services

router = APIRouter(prefix="/api/v1/incidents", tags=["incidents"])


def _current_incidents(services: Services, view) -> Tuple[Incident, ...]:
    """Live feed; the view's demo set only while the feed is empty."""
    feed = services.incidents.feed.snapshot()
    if feed or view is None:
        return feed
    return view.incidents


@router.get("")
async def list_incidents(services: Services = Depends(get_services)) -> Dict[str, Any]:
    incidents = _current_incidents(services, services.dispatcher.store.view)
    return {
        "success": True,
        "count": len(incidents),
        "data": [i.to_dict() for i in incidents],
    }


@router.post("", status_code=201)
async def submit_incident(
    body: IncidentCreate,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    ward_location = None
    view = services.dispatcher.store.view
    ward = view.ward(body.ward_id) if view else None
    if ward is not None and ward.has_location:
        ward_location = (ward.latitude, ward.longitude)

    incident = await services.incidents.submit(
        type=body.type.value,
        ward_id=body.ward_id,
        ward_name=body.ward_name or (ward.name if ward else None),
        description=body.description,
        severity=body.severity,
        latitude=body.latitude,
        longitude=body.longitude,
        accuracy=body.accuracy,
        ward_location=ward_location,
        image_data=body.image_data,
        validation_score=body.validation_score,
    )
    return {"success": True, "data": incident.to_dict()}


@router.get("/export")
async def export_incidents(services: Services = Depends(get_services)):
    view = services.dispatcher.store.view or await services.dispatcher.refresh_now()
    wards = view.wards if view else ()
    return JSONResponse(
        content=build_export(wards, _current_incidents(services, view)),
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )
