"""Dashboard JSON export and re-import."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from monsoon.app.core.errors import ValidationError
from monsoon.app.incidents.models import Incident
from monsoon.app.wards.models import RiskLevel, Ward


def build_export(
    wards: Sequence[Ward],
    incidents: Sequence[Incident],
    timestamp: Optional[datetime] = None,
) -> Dict[str, Any]:
    counts = {level.value: 0 for level in RiskLevel}
    for ward in wards:
        counts[ward.risk_level.value] += 1
    return {
        "timestamp": (timestamp or datetime.now(timezone.utc)).isoformat(),
        "summary": {
            "total": len(wards),
            "critical": counts["critical"],
            "alert": counts["alert"],
            "safe": counts["safe"],
        },
        "wards": [w.to_dict() for w in wards],
        "incidents": [i.to_dict() for i in incidents],
    }


def export_filename(timestamp: Optional[datetime] = None) -> str:
    stamp = (timestamp or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    return f"delhi-flood-report-{stamp}.json"


def parse_export(document: Union[str, bytes, Dict[str, Any]]) -> Tuple[List[Ward], List[Incident]]:
    """Read an export back into wards and incidents."""
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except ValueError as e:
            raise ValidationError(f"Export is not valid JSON: {e}")
    if not isinstance(document, dict) or not isinstance(document.get("wards"), list):
        raise ValidationError("Export has no wards list", field="wards")
    try:
        wards = [Ward.from_dict(row) for row in document["wards"]]
        incidents = [Incident.from_dict(row) for row in document.get("incidents") or []]
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Malformed export entry: {e}")
    return wards, incidents
