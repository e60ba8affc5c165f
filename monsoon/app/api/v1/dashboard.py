"""
FastAPI routes: dashboard view-model.

    GET  /api/v1/dashboard           — latest DashboardView (refreshes once if none yet)
    POST /api/v1/dashboard/refresh   — force a full refresh and return the result
    GET  /api/v1/dashboard/export    — JSON export of wards + incidents
    GET  /api/v1/dashboard/weather   — weather source status + last ingestion
    GET  /api/v1/dashboard/dispatcher — refresh loop status
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from monsoon.app.core.errors import SourceUnavailableError
from monsoon.app.dashboard.export import build_export, export_filename
from monsoon.app.services import Services, get_services

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


async def _current_view(services: Services):
    view = services.dispatcher.store.view or await services.dispatcher.refresh_now()
    if view is None:
        raise SourceUnavailableError("dashboard", "No dashboard view could be built")
    return view


@router.get("")
async def get_dashboard(services: Services = Depends(get_services)) -> Dict[str, Any]:
    view = await _current_view(services)
    return {"success": True, "data": view.to_dict()}


@router.post("/refresh")
async def refresh_dashboard(services: Services = Depends(get_services)) -> Dict[str, Any]:
    view = await services.dispatcher.refresh_now()
    if view is None:
        raise SourceUnavailableError("dashboard", "Refresh produced no view")
    return {"success": True, "data": view.to_dict()}


@router.get("/export")
async def export_dashboard(services: Services = Depends(get_services)):
    view = await _current_view(services)
    return JSONResponse(
        content=build_export(view.wards, view.incidents),
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@router.get("/weather")
async def weather_status(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return {
        "success": True,
        "data": {**services.weather.status(), "last_run": services.ingestion.last_run},
    }


@router.get("/dispatcher")
async def dispatcher_status(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return {"success": True, "data": services.dispatcher.status()}
