"""
Pydantic request schemas shared by the v1 routers.

Responses are plain dicts built by the domain ``to_dict`` methods; only
request bodies are validated here.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RiskLevelInput(str, Enum):
    SAFE = "safe"
    ALERT = "alert"
    CRITICAL = "critical"


class IncidentTypeInput(str, Enum):
    WATERLOGGING = "waterlogging"
    POTHOLE = "pothole"
    DRAINAGE = "drainage"


class NoticeSeverityInput(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ---------------------------------------------------------------------------
# Wards
# ---------------------------------------------------------------------------

class WardFields(BaseModel):
    zone: Optional[str] = Field(None, examples=["South Delhi"])
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    current_rainfall: Optional[float] = Field(None, ge=0, description="mm in the last hour")
    forecast_rainfall_3h: Optional[float] = Field(None, ge=0, description="mm expected in 3 hours")
    failure_threshold: Optional[float] = Field(None, ge=0, description="mm the drains can take")
    risk_level: Optional[RiskLevelInput] = None
    preparedness_score: Optional[int] = Field(None, ge=0, le=100)
    drainage_stress_index: Optional[float] = Field(None, ge=0, le=100)
    pothole_density: Optional[float] = Field(None, ge=0, le=100)
    drain_density: Optional[float] = Field(None, ge=0)
    historical_flood_frequency: Optional[float] = Field(None, ge=0)
    low_lying_pct: Optional[float] = Field(None, ge=0, le=100)

    def values(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        if "risk_level" in data:
            data["risk_level"] = data["risk_level"].value
        return data


class WardCreate(WardFields):
    """New ward. Risk tier and score are computed when not both supplied."""
    id: Optional[str] = Field(None, max_length=32, examples=["142S"])
    name: str = Field(..., min_length=1, max_length=200, examples=["Sangam Vihar"])


class WardUpdate(WardFields):
    name: Optional[str] = Field(None, min_length=1, max_length=200)


# ---------------------------------------------------------------------------
# Incidents
# ---------------------------------------------------------------------------

class IncidentCreate(BaseModel):
    """A field report from the dashboard."""
    type: IncidentTypeInput = Field(..., examples=["waterlogging"])
    ward_id: str = Field(..., min_length=1, examples=["6"])
    ward_name: Optional[str] = Field(None, examples=["Sangam Vihar"])
    description: Optional[str] = Field(None, max_length=1000)
    severity: int = Field(2, ge=1, le=3)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0, description="GPS accuracy in metres")
    image_data: Optional[str] = Field(None, description="Data URL of the attached photo")
    validation_score: Optional[int] = Field(None, ge=0, le=100)


# ---------------------------------------------------------------------------
# Notices
# ---------------------------------------------------------------------------

class NoticeCreate(BaseModel):
    """A manually issued notice, e.g. an IMD warning relayed by an operator."""
    severity: NoticeSeverityInput = Field(NoticeSeverityInput.MEDIUM)
    message: str = Field(..., min_length=1, max_length=500)
    ward_ids: List[str] = Field(default_factory=list, examples=[["2", "6"]])
    expected_rainfall_mm: Optional[float] = Field(None, ge=0)
    valid_hours: Optional[float] = Field(None, gt=0, le=72, description="Defaults to NOTICE_TTL_HOURS")
