"""
test_repository.py — ward repository against an in-memory SQLite store.

Covers:
    • Reads: list/filter/order, get, high-risk, by-zone, statistics
    • Writes: create, update (risk pair rules), delete, bulk updates
    • Unreachable store: reads degrade, writes raise

Run with:
    pytest tests/test_repository.py -v
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from monsoon.app.core.errors import (
    ConflictError,
    NotFoundError,
    PersistenceUnavailableError,
    ValidationError,
)
from monsoon.app.wards.models import RiskLevel
from monsoon.app.wards.repository import compute_statistics


NAME_ORDER = [
    "Connaught Place",
    "Dwarka",
    "Greater Kailash",
    "Laxmi Nagar",
    "Rohini",
    "Sadar Bazar",
    "Sangam Vihar",
    "Shahdara",
]


# ═══════════════════════════════════════════════════════════════════════════
# Reads
# ═══════════════════════════════════════════════════════════════════════════

class TestReads:

    async def test_empty_store(self, repository):
        result = await repository.list_wards()
        assert result.success is True
        assert result.count == 0
        assert result.to_dict() == {"success": True, "count": 0, "data": []}

    async def test_list_ordered_by_name(self, seeded):
        result = await seeded.list_wards()
        assert [w.name for w in result.data] == NAME_ORDER

    async def test_filter_by_risk_level(self, seeded):
        result = await seeded.list_wards(risk_level="critical")
        assert {w.id for w in result.data} == {"2", "4", "6", "8"}

    async def test_filter_by_score_range(self, seeded):
        result = await seeded.list_wards(min_score=90)
        assert [w.name for w in result.data] == ["Dwarka", "Greater Kailash"]
        result = await seeded.list_wards(min_score=50, max_score=60)
        assert [w.name for w in result.data] == ["Connaught Place", "Rohini"]

    async def test_filter_by_zone(self, seeded):
        result = await seeded.list_wards(zone="East Delhi")
        assert [w.name for w in result.data] == ["Laxmi Nagar", "Shahdara"]

    async def test_get_ward(self, seeded):
        result = await seeded.get_ward("3")
        assert result.count == 1
        ward = result.data[0]
        assert ward.name == "Greater Kailash"
        assert ward.risk_level == RiskLevel.SAFE
        assert ward.has_location

    async def test_get_missing_ward_is_empty_not_error(self, seeded):
        result = await seeded.get_ward("404")
        assert result.success is True
        assert result.count == 0

    async def test_high_risk_ordered_by_score_then_name(self, seeded):
        result = await seeded.high_risk()
        assert [w.id for w in result.data] == ["4", "2", "6", "8", "7", "1"]

    async def test_by_zone(self, seeded):
        result = await seeded.by_zone("South Delhi")
        assert [w.name for w in result.data] == ["Greater Kailash", "Sangam Vihar"]

    async def test_statistics(self, seeded):
        stats = await seeded.statistics()
        assert stats["success"] is True
        assert stats["data"] == {
            "total": 8,
            "by_risk_level": {"critical": 4, "alert": 2, "safe": 2},
            "preparedness": {"average": 42, "min": 10, "max": 92},
        }

    async def test_statistics_empty(self, repository):
        stats = await repository.statistics()
        assert stats["data"]["total"] == 0
        assert stats["data"]["preparedness"] == {"average": 0, "min": 0, "max": 0}

    async def test_count(self, seeded):
        assert await seeded.count() == 8


def test_compute_statistics_without_store():
    assert compute_statistics([])["by_risk_level"] == {"critical": 0, "alert": 0, "safe": 0}


# ═══════════════════════════════════════════════════════════════════════════
# Writes
# ═══════════════════════════════════════════════════════════════════════════

class TestCreate:

    async def test_create_computes_risk_pair(self, seeded):
        ward = await seeded.create({
            "id": "9",
            "name": "Okhla",
            "zone": "South",
            "current_rainfall": 10,
            "forecast_rainfall_3h": 80,
            "failure_threshold": 40,
        })
        assert ward.id == "9"
        assert ward.zone == "South Delhi"
        assert ward.risk_level == RiskLevel.CRITICAL
        assert ward.preparedness_score == 10
        assert (await seeded.get_ward("9")).count == 1

    async def test_create_assigns_next_id(self, seeded):
        ward = await seeded.create({"name": "Okhla"})
        assert ward.id == "9"
        assert ward.zone == "Delhi"
        assert ward.risk_level == RiskLevel.SAFE
        assert ward.preparedness_score == 100

    async def test_create_duplicate_id_conflicts(self, seeded):
        with pytest.raises(ConflictError) as exc:
            await seeded.create({"id": "1", "name": "Dup"})
        assert exc.value.status_code == 409
        assert exc.value.details["ward_id"] == "1"
        assert (await seeded.get_ward("1")).data[0].name == "Connaught Place"

    async def test_create_requires_name(self, repository):
        with pytest.raises(ValidationError):
            await repository.create({"zone": "South Delhi"})

    async def test_create_with_explicit_pair(self, repository):
        ward = await repository.create({
            "name": "Okhla", "risk_level": "alert", "preparedness_score": 61,
        })
        assert (ward.risk_level, ward.preparedness_score) == (RiskLevel.ALERT, 61)


class TestUpdate:

    async def test_rainfall_change_recomputes_pair(self, seeded):
        ward = await seeded.update("5", {"forecast_rainfall_3h": 60})
        assert ward.forecast_rainfall_3h == 60
        assert ward.risk_level == RiskLevel.CRITICAL
        assert ward.preparedness_score == 12

    async def test_name_change_keeps_pair(self, seeded):
        ward = await seeded.update("1", {"name": "CP Inner Circle"})
        assert ward.name == "CP Inner Circle"
        assert (ward.risk_level, ward.preparedness_score) == (RiskLevel.ALERT, 58)

    async def test_half_pair_rejected(self, seeded):
        with pytest.raises(ValidationError):
            await seeded.update("1", {"risk_level": "critical"})
        with pytest.raises(ValidationError):
            await seeded.update("1", {"preparedness_score": 5})

    async def test_unknown_level_rejected(self, seeded):
        with pytest.raises(ValidationError):
            await seeded.update("1", {"risk_level": "purple", "preparedness_score": 5})

    async def test_explicit_pair_clamped(self, seeded):
        ward = await seeded.update("1", {"risk_level": "safe", "preparedness_score": 140})
        assert ward.preparedness_score == 100

    async def test_missing_ward(self, seeded):
        with pytest.raises(NotFoundError):
            await seeded.update("404", {"name": "Nowhere"})


class TestDelete:

    async def test_delete(self, seeded):
        await seeded.delete("1")
        assert (await seeded.get_ward("1")).count == 0
        assert await seeded.count() == 7

    async def test_delete_missing(self, seeded):
        with pytest.raises(NotFoundError):
            await seeded.delete("404")


class TestBulkWrites:

    async def test_upsert_overwrites(self, seeded):
        result = await seeded.get_ward("3")
        changed = replace(result.data[0], name="GK-I")
        assert await seeded.upsert_many([changed]) == 1
        assert (await seeded.get_ward("3")).data[0].name == "GK-I"

    async def test_bulk_conditions_skip_unknown(self, seeded):
        ward = (await seeded.get_ward("3")).data[0]
        wet = replace(
            ward,
            current_rainfall=40.0,
            forecast_rainfall_3h=90.0,
            risk_level=RiskLevel.CRITICAL,
            preparedness_score=10,
        )
        ghost = replace(ward, id="404")
        assert await seeded.bulk_update_conditions([wet, ghost]) == 1
        stored = (await seeded.get_ward("3")).data[0]
        assert stored.forecast_rainfall_3h == 90.0
        assert stored.risk_level == RiskLevel.CRITICAL
        assert await seeded.count() == 8


# ═══════════════════════════════════════════════════════════════════════════
# Unreachable store
# ═══════════════════════════════════════════════════════════════════════════

class TestUnavailableStore:

    async def test_reads_degrade(self, broken_repo):
        result = await broken_repo.list_wards()
        assert result.success is False
        assert result.count == 0
        assert (await broken_repo.high_risk()).success is False
        assert (await broken_repo.get_ward("1")).success is False

    async def test_statistics_degrade(self, broken_repo):
        stats = await broken_repo.statistics()
        assert stats["success"] is False
        assert stats["data"]["total"] == 0

    async def test_count_is_none(self, broken_repo):
        assert await broken_repo.count() is None

    async def test_writes_raise(self, broken_repo):
        with pytest.raises(PersistenceUnavailableError):
            await broken_repo.create({"name": "Okhla"})
        with pytest.raises(PersistenceUnavailableError):
            await broken_repo.update("1", {"name": "x"})
        with pytest.raises(PersistenceUnavailableError):
            await broken_repo.delete("1")
