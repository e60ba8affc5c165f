"""
test_wards.py — ward model, demo dataset and synthetic infrastructure fills.

Run with:
    pytest tests/test_wards.py -v
"""

from __future__ import annotations

import pytest

from monsoon.app.wards.demo import DEMO_WARD_COUNT, demo_wards
from monsoon.app.wards.models import (
    DataSource,
    RiskAssessment,
    RiskLevel,
    Ward,
    normalise_zone,
)
from monsoon.app.wards.synthetic import fill_infrastructure, threshold_from_low_lying


class TestWardModel:

    def test_from_dict_defaults(self):
        ward = Ward.from_dict({"id": 3, "name": "Okhla"})
        assert ward.id == "3"
        assert ward.zone == "Delhi"
        assert ward.risk_level == RiskLevel.SAFE
        assert ward.preparedness_score == 50
        assert ward.failure_threshold == 60.0
        assert ward.source == DataSource.DEMO

    def test_from_dict_ignores_unknown_keys(self):
        ward = Ward.from_dict({"id": "7", "name": "Rohini", "colour": "red"})
        assert ward.name == "Rohini"

    def test_to_dict_round_trip(self):
        original = demo_wards()[1]
        assert Ward.from_dict(original.to_dict()) == original

    def test_to_dict_uses_plain_values(self):
        d = demo_wards()[0].to_dict()
        assert d["risk_level"] == "alert"
        assert d["source"] == "demo"

    def test_with_assessment_moves_pair_together(self):
        ward = demo_wards()[2].with_assessment(RiskAssessment(RiskLevel.CRITICAL, 15))
        assert (ward.risk_level, ward.preparedness_score) == (RiskLevel.CRITICAL, 15)

    def test_wards_are_frozen(self):
        ward = demo_wards()[0]
        with pytest.raises(Exception):
            ward.preparedness_score = 1

    def test_forecast_ratio(self):
        ward = Ward.from_dict({"id": "1", "name": "x", "forecast_rainfall_3h": 30, "failure_threshold": 60})
        assert ward.forecast_ratio == pytest.approx(0.5)
        assert ward.with_rainfall(0, 0).forecast_ratio == 0.0


class TestNormaliseZone:

    @pytest.mark.parametrize("raw,zone", [
        ("West Delhi", "West Delhi"),
        ("South", "South Delhi"),
        ("north west zone", "North West Delhi"),
        ("Central", "Central Delhi"),
        ("Outer Ring", "Delhi"),
        ("", "Delhi"),
        (None, "Delhi"),
    ])
    def test_mapping(self, raw, zone):
        assert normalise_zone(raw) == zone


class TestDemoWards:

    def test_count_and_ids(self):
        wards = demo_wards()
        assert len(wards) == DEMO_WARD_COUNT == 8
        assert [w.id for w in wards] == [str(i) for i in range(1, 9)]

    def test_tiers_follow_ratio_rule(self):
        by_id = {w.id: w for w in demo_wards()}
        assert (by_id["1"].risk_level, by_id["1"].preparedness_score) == (RiskLevel.ALERT, 58)
        assert (by_id["2"].risk_level, by_id["2"].preparedness_score) == (RiskLevel.CRITICAL, 10)
        assert (by_id["3"].risk_level, by_id["3"].preparedness_score) == (RiskLevel.SAFE, 92)
        assert (by_id["5"].risk_level, by_id["5"].preparedness_score) == (RiskLevel.SAFE, 91)
        assert (by_id["7"].risk_level, by_id["7"].preparedness_score) == (RiskLevel.ALERT, 56)

    def test_every_demo_ward_is_located(self):
        assert all(w.has_location for w in demo_wards())

    def test_every_demo_ward_has_infrastructure(self):
        for ward in demo_wards():
            assert ward.drainage_stress_index is not None
            assert ward.pothole_density is not None


class TestSyntheticFills:

    @pytest.mark.parametrize("low_lying,threshold", [
        (40, 40.0),
        (10, 67.0),
        (100, 30.0),
        (0, 70.0),
    ])
    def test_threshold_from_low_lying(self, low_lying, threshold):
        assert threshold_from_low_lying(low_lying) == threshold

    def test_known_values_win(self):
        filled = fill_infrastructure(
            "12N",
            0.5,
            static_features={
                "drain_density": 0.5,
                "low_lying_pct": 40,
                "drainage_stress_index": 70,
                "failure_threshold": 55,
            },
            historical_features={"hist_flood_freq": 3, "pothole_density": 2},
        )
        assert filled["drain_density"] == 0.5
        assert filled["low_lying_pct"] == 40.0
        assert filled["drainage_stress_index"] == 70.0
        assert filled["historical_flood_frequency"] == 3.0
        assert filled["pothole_density"] == 5.0
        assert filled["failure_threshold"] == 55.0

    def test_missing_values_synthesised_in_range(self):
        filled = fill_infrastructure("31E", 0.5)
        assert 0.3 <= filled["drain_density"] <= 0.8
        assert 25.0 <= filled["low_lying_pct"] <= 45.0
        assert filled["historical_flood_frequency"] == 5.0
        assert 0.0 <= filled["drainage_stress_index"] <= 100.0
        assert 5.0 <= filled["pothole_density"] <= 100.0
        assert 30.0 <= filled["failure_threshold"] <= 70.0

    def test_fills_are_stable_per_ward(self):
        assert fill_infrastructure("31E", 0.2) == fill_infrastructure("31E", 0.2)

    def test_complaint_baseline_used_for_potholes(self):
        filled = fill_infrastructure("4W", None, historical_features={"complaint_baseline": 42})
        assert filled["pothole_density"] == 42.0

    def test_zero_threshold_replaced(self):
        filled = fill_infrastructure("4W", 0.1, static_features={"failure_threshold": 0, "low_lying_pct": 10})
        assert filled["failure_threshold"] == 67.0
