"""
FastAPI routes: ward query surface.

    GET    /api/v1/wards               — list (zone, risk_level, min_score, max_score)
    GET    /api/v1/wards/statistics    — tier counts + preparedness avg/min/max
    GET    /api/v1/wards/high-risk     — alert + critical, lowest score first
    GET    /api/v1/wards/zone/{zone}   — wards in one zone
    GET    /api/v1/wards/{id}          — one ward
    POST   /api/v1/wards               — create
    PUT    /api/v1/wards/{id}          — update
    DELETE /api/v1/wards/{id}          — delete

Reads answer ``{success, count, data}`` and report ``success: false``
instead of failing when the store is down.  Writes fail with 503.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from monsoon.app.api.schemas import RiskLevelInput, WardCreate, WardUpdate
from monsoon.app.core.errors import NotFoundError
from monsoon.app.services import Services, get_services

router = APIRouter(prefix="/api/v1/wards", tags=["wards"])


@router.get("")
async def list_wards(
    zone: Optional[str] = Query(None, examples=["South Delhi"]),
    risk_level: Optional[RiskLevelInput] = Query(None),
    min_score: Optional[float] = Query(None, ge=0, le=100),
    max_score: Optional[float] = Query(None, ge=0, le=100),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    result = await services.repository.list_wards(
        zone=zone,
        risk_level=risk_level.value if risk_level else None,
        min_score=min_score,
        max_score=max_score,
    )
    return result.to_dict()


@router.get("/statistics")
async def ward_statistics(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return await services.repository.statistics()


@router.get("/high-risk")
async def high_risk_wards(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return (await services.repository.high_risk()).to_dict()


@router.get("/zone/{zone}")
async def wards_by_zone(zone: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return (await services.repository.by_zone(zone)).to_dict()


@router.get("/{ward_id}")
async def get_ward(ward_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    result = await services.repository.get_ward(ward_id)
    if result.success and not result.data:
        raise NotFoundError("Ward", ward_id=ward_id)
    return {
        "success": result.success,
        "data": result.data[0].to_dict() if result.data else None,
    }


@router.post("", status_code=201)
async def create_ward(body: WardCreate, services: Services = Depends(get_services)) -> Dict[str, Any]:
    values = body.values()
    ward = await services.repository.create(values)
    services.dispatcher.request_refresh("ward-created")
    return {"success": True, "data": ward.to_dict()}


@router.put("/{ward_id}")
async def update_ward(
    ward_id: str,
    body: WardUpdate,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    ward = await services.repository.update(ward_id, body.values())
    services.dispatcher.request_refresh("ward-updated")
    return {"success": True, "data": ward.to_dict()}


@router.delete("/{ward_id}")
async def delete_ward(ward_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    await services.repository.delete(ward_id)
    services.dispatcher.request_refresh("ward-deleted")
    return {"success": True, "message": f"Ward {ward_id} deleted"}
