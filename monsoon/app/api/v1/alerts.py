"""
FastAPI routes: ranked alert feed and issued notices.

    GET    /api/v1/alerts                   — alert-worthy wards from the latest view
    GET    /api/v1/alerts/ward/{ward_id}    — one ward's alert + its active notices
    GET    /api/v1/alerts/notices           — active notices, newest first
    POST   /api/v1/alerts/notices           — issue a notice (published as alert-new)
    DELETE /api/v1/alerts/notices/{id}      — dismiss a notice

Ranked alerts are derived on every refresh and never stored.  Notices
are held by the ``NoticeBoard`` until they expire or are dismissed.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from monsoon.app.api.schemas import NoticeCreate
from monsoon.app.core.config import settings
from monsoon.app.core.errors import NotFoundError
from monsoon.app.realtime.events import AlertNotice, Topic
from monsoon.app.risk.alert_selector import build_alert, is_alert_worthy, select_alerts
from monsoon.app.services import Services, get_services

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


@router.get("")
async def list_alerts(
    limit: Optional[int] = Query(None, ge=1, le=100),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    view = services.dispatcher.store.view or await services.dispatcher.refresh_now()
    limit = limit or settings.ALERT_FEED_LIMIT
    alerts = select_alerts(view.wards, limit=limit) if view else []
    return {
        "success": True,
        "count": len(alerts),
        "status": view.status if view else None,
        "generated_at": view.generated_at if view else None,
        "data": [a.to_dict() for a in alerts],
    }


@router.get("/ward/{ward_id}")
async def ward_alerts(ward_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    view = services.dispatcher.store.view or await services.dispatcher.refresh_now()
    ward = view.ward(ward_id) if view else None
    if ward is None:
        raise NotFoundError("Ward", ward_id=ward_id)
    alerts = [build_alert(ward)] if is_alert_worthy(ward) else []
    return {
        "success": True,
        "count": len(alerts),
        "data": [a.to_dict() for a in alerts],
        "notices": [n.to_dict() for n in services.notices.active(ward_id=ward_id)],
    }


@router.get("/notices")
async def list_notices(
    ward_id: Optional[str] = Query(None),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    notices = services.notices.active(ward_id=ward_id)
    return {
        "success": True,
        "count": len(notices),
        "data": [n.to_dict() for n in notices],
    }


@router.post("/notices", status_code=201)
async def issue_notice(body: NoticeCreate, services: Services = Depends(get_services)) -> Dict[str, Any]:
    alert = AlertNotice(
        severity=body.severity.value,
        message=body.message,
        affected_ward_ids=tuple(body.ward_ids),
        expected_rainfall_mm=body.expected_rainfall_mm,
    )
    ttl = timedelta(hours=body.valid_hours) if body.valid_hours else None
    notice = services.notices.record(alert, ttl=ttl)
    await services.bus.publish(Topic.ALERT_NEW, alert)
    return {"success": True, "data": notice.to_dict()}


@router.delete("/notices/{notice_id}")
async def dismiss_notice(notice_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    notice = services.notices.dismiss(notice_id)
    return {"success": True, "data": notice.to_dict()}
