"""
test_risk.py — risk classifier and alert selector.

Covers:
    • Ratio heuristic tiers, band scores and boundaries
    • Score rule and external-model path (probability, label, mpi_score)
    • Tier/score agreement across the ratio range
    • Alert eligibility, severity, ordering and cap

Run with:
    pytest tests/test_risk.py -v
"""

from __future__ import annotations

import pytest

from monsoon.app.core.config import settings
from monsoon.app.risk.alert_selector import (
    AlertCutoffs,
    AlertSeverity,
    build_alert,
    is_alert_worthy,
    select_alerts,
    severity_for,
)
from monsoon.app.risk.classifier import (
    RiskCutoffs,
    classify,
    classify_by_ratio,
    classify_by_score,
    classify_external,
    rainfall_ratio,
)
from monsoon.app.wards.models import RiskLevel, Ward


def _ward(
    wid: str = "1",
    current: float = 0.0,
    forecast: float = 0.0,
    threshold: float = 60.0,
    level: RiskLevel = RiskLevel.SAFE,
    score: int = 100,
) -> Ward:
    return Ward(
        id=wid,
        name=f"Ward {wid}",
        zone="Delhi",
        current_rainfall=current,
        forecast_rainfall_3h=forecast,
        failure_threshold=threshold,
        risk_level=level,
        preparedness_score=score,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Ratio heuristic
# ═══════════════════════════════════════════════════════════════════════════

class TestRainfallRatio:

    def test_worse_of_current_and_forecast(self):
        assert rainfall_ratio(30, 12, 60) == pytest.approx(0.5)
        assert rainfall_ratio(6, 45, 60) == pytest.approx(0.75)

    def test_missing_threshold_uses_default(self):
        assert rainfall_ratio(0, 30, 0) == pytest.approx(0.5)
        assert rainfall_ratio(0, 30, None) == pytest.approx(0.5)

    def test_negative_rainfall_clamped(self):
        assert rainfall_ratio(-10, -5, 60) == 0.0


class TestClassifyByRatio:

    def test_boundary_030_is_safe(self):
        result = classify_by_ratio(0, 18, 60)
        assert result.risk_level == RiskLevel.SAFE
        assert result.preparedness_score == 91

    def test_just_above_030_is_alert(self):
        assert classify_by_ratio(0, 18.1, 60).risk_level == RiskLevel.ALERT

    def test_boundary_070_is_alert(self):
        result = classify_by_ratio(0, 42, 60)
        assert result.risk_level == RiskLevel.ALERT
        assert result.preparedness_score == 49

    def test_above_070_is_critical(self):
        result = classify_by_ratio(0, 43, 60)
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.preparedness_score == 16

    def test_critical_floor(self):
        assert classify_by_ratio(200, 200, 40).preparedness_score == 10

    def test_dry_ward_is_fully_prepared(self):
        result = classify_by_ratio(0, 0, 60)
        assert result.risk_level == RiskLevel.SAFE
        assert result.preparedness_score == 100
        assert result.driver == "ratio"

    def test_score_agrees_with_tier_across_range(self):
        for forecast in range(0, 240, 3):
            assessed = classify_by_ratio(0, forecast, 60)
            assert classify_by_score(assessed.preparedness_score).risk_level == assessed.risk_level

    def test_custom_cutoffs(self):
        cutoffs = RiskCutoffs(alert_ratio=0.5, critical_ratio=0.9)
        assert classify_by_ratio(0, 24, 60, cutoffs).risk_level == RiskLevel.SAFE


# ═══════════════════════════════════════════════════════════════════════════
# Score and external paths
# ═══════════════════════════════════════════════════════════════════════════

class TestClassifyByScore:

    @pytest.mark.parametrize("score,level", [
        (0, RiskLevel.CRITICAL),
        (39, RiskLevel.CRITICAL),
        (40, RiskLevel.ALERT),
        (69, RiskLevel.ALERT),
        (70, RiskLevel.SAFE),
        (100, RiskLevel.SAFE),
    ])
    def test_bands(self, score, level):
        assert classify_by_score(score).risk_level == level

    def test_out_of_range_clamped(self):
        assert classify_by_score(140).preparedness_score == 100
        assert classify_by_score(-3).preparedness_score == 0


class TestClassifyExternal:

    def test_probability_is_flood_risk(self):
        result = classify_external(probability=0.8)
        assert result.preparedness_score == 20
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.driver == "external"

    def test_low_probability_is_safe(self):
        result = classify_external(probability=0.1)
        assert result.preparedness_score == 90
        assert result.risk_level == RiskLevel.SAFE

    def test_label_decides_tier(self):
        result = classify_external(probability=0.5, risk_label="High")
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.preparedness_score == 50

    def test_moderate_label_maps_to_alert(self):
        assert classify_external(probability=0.4, risk_label="moderate").risk_level == RiskLevel.ALERT

    def test_unknown_label_falls_back_to_score(self):
        result = classify_external(probability=0.7, risk_label="unusual")
        assert result.risk_level == RiskLevel.CRITICAL

    def test_label_only_uses_mid_band(self):
        assert classify_external(risk_label="critical").preparedness_score == 20
        assert classify_external(risk_label="medium").preparedness_score == 55
        assert classify_external(risk_label="low").preparedness_score == 85

    def test_mpi_score_used_as_preparedness(self):
        result = classify_external(mpi_score=64, probability=0.99)
        assert result.preparedness_score == 64
        assert result.risk_level == RiskLevel.ALERT

    def test_no_signal_returns_none(self):
        assert classify_external() is None
        assert classify_external(risk_label="") is None

    def test_non_string_label_ignored(self):
        result = classify_external(probability=0.8, risk_label=3)
        assert (result.risk_level, result.preparedness_score) == (RiskLevel.CRITICAL, 20)
        assert classify_external(risk_label=["high"]) is None


class TestClassify:

    def test_external_wins_over_ratio(self):
        result = classify(0, 0, 60, external={"probability": 0.9, "risk_level": "high"})
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.driver == "external"

    def test_unusable_external_falls_back_to_ratio(self):
        result = classify(0, 50, 60, external={"probability": None, "risk_level": None})
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.driver == "ratio"

    def test_without_external(self):
        assert classify(10, 20, 60).risk_level == RiskLevel.ALERT


# ═══════════════════════════════════════════════════════════════════════════
# Alert selector
# ═══════════════════════════════════════════════════════════════════════════

class TestAlertEligibility:

    def test_quiet_safe_ward_excluded(self):
        assert not is_alert_worthy(_ward(forecast=10, score=95))

    def test_alert_tier_included(self):
        assert is_alert_worthy(_ward(level=RiskLevel.ALERT, score=60))

    def test_forecast_ratio_included(self):
        assert is_alert_worthy(_ward(forecast=19, score=91))

    def test_low_score_included(self):
        assert is_alert_worthy(_ward(score=49))

    def test_current_over_half_threshold_included(self):
        assert is_alert_worthy(_ward(current=31, score=95))

    def test_custom_cutoffs(self):
        ward = _ward(forecast=19, score=91)
        assert not is_alert_worthy(ward, AlertCutoffs(forecast_ratio=0.5))
        assert is_alert_worthy(_ward(score=60), AlertCutoffs(score=65))

    def test_cutoffs_read_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "ALERT_CURRENT_SHARE", 0.8)
        assert not is_alert_worthy(_ward(current=31, score=95))
        assert is_alert_worthy(_ward(current=49, score=95))


class TestAlertSeverity:

    def test_critical_tier(self):
        assert severity_for(_ward(level=RiskLevel.CRITICAL, score=15)) == AlertSeverity.CRITICAL

    def test_forecast_at_capacity(self):
        assert severity_for(_ward(forecast=60, score=80)) == AlertSeverity.CRITICAL

    def test_alert_tier_is_medium(self):
        assert severity_for(_ward(level=RiskLevel.ALERT, score=55)) == AlertSeverity.MEDIUM

    def test_otherwise_low(self):
        assert severity_for(_ward(forecast=20, score=90)) == AlertSeverity.LOW

    def test_severity_cutoffs_from_settings(self, monkeypatch):
        ward = _ward(forecast=45, score=80)
        assert severity_for(ward) == AlertSeverity.MEDIUM
        monkeypatch.setattr(settings, "ALERT_CRITICAL_PERCENT", 75.0)
        assert severity_for(ward) == AlertSeverity.CRITICAL
        assert severity_for(ward, AlertCutoffs(medium_percent=90.0)) == AlertSeverity.LOW

    def test_percentages_and_window(self):
        alert = build_alert(_ward(current=15, forecast=45, level=RiskLevel.CRITICAL, score=12))
        assert alert.threshold_percentage == 75
        assert alert.current_percentage == 25
        assert alert.time_window == "1-3 hours"
        assert alert.to_dict()["severity"] == "critical"


class TestSelectAlerts:

    def test_ordering_by_weight_then_score(self):
        wards = [
            _ward("a", level=RiskLevel.ALERT, score=55),
            _ward("b", level=RiskLevel.CRITICAL, score=20),
            _ward("c", level=RiskLevel.CRITICAL, score=12),
            _ward("d", score=45),
            _ward("e", forecast=5, score=99),
        ]
        ids = [a.ward.id for a in select_alerts(wards, limit=10)]
        assert ids == ["c", "b", "a", "d"]

    def test_cap(self):
        wards = [_ward(str(i), level=RiskLevel.CRITICAL, score=10 + i) for i in range(20)]
        alerts = select_alerts(wards, limit=12)
        assert len(alerts) == 12
        assert alerts[0].ward.id == "0"

    def test_empty(self):
        assert select_alerts([]) == []
