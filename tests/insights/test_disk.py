"""
Tests for SMART-based disk failure prediction.
"""

import json
from datetime import timedelta

import pandas as pd
import pytest

from src.insights.config import DiskRiskPolicy
from src.insights.disk import (
    INSUFFICIENT_DATA,
    NO_INDICATORS,
    AttributeTrend,
    DiskFailurePredictor,
)

HOURS_PER_YEAR = 8760


def predict(store, rows, disk_name="sda", policy=None):
    store.load("smart_metrics", rows)
    return DiskFailurePredictor(store, policy).predict_failure(disk_name)


class TestAttributeTrend:
    """Tests for per-attribute summaries."""

    def test_summary(self):
        trend = AttributeTrend.from_series(pd.Series([1.0, 3.0, 5.0, None]))

        assert trend.current == 5.0
        assert trend.average == pytest.approx(3.0)
        assert trend.minimum == 1.0
        assert trend.maximum == 5.0
        assert trend.rate == pytest.approx(2.0)

    def test_empty_series(self):
        trend = AttributeTrend.from_series(pd.Series([], dtype=float))

        assert trend.current == 0.0
        assert trend.rate == 0.0


class TestInsufficientData:
    """Tests for disks without enough history."""

    def test_single_sample(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 1))

        assert prediction.failure_probability == 0.0
        assert prediction.confidence == 0.0
        assert prediction.days_until_failure is None
        assert prediction.contributing_factors == [INSUFFICIENT_DATA]
        assert "need more data points" in prediction.recommended_action

    def test_unknown_disk(self, store):
        prediction = DiskFailurePredictor(store).predict_failure("sdz")

        assert prediction.contributing_factors == [INSUFFICIENT_DATA]

    def test_insufficient_prediction_is_recorded(self, store, smart_rows):
        predict(store, smart_rows("sda", 1))

        assert len(store.predictions) == 1
        assert store.predictions[0]["contributing_factors"] == [INSUFFICIENT_DATA]

    def test_history_outside_window_is_ignored(self, store, smart_rows):
        """Test samples older than the history window do not count."""
        rows = smart_rows("sda", 40, reallocated_sectors=50)[:5]

        prediction = predict(store, rows)

        assert prediction.contributing_factors == [INSUFFICIENT_DATA]


class TestHealthyDisk:
    """Tests for disks without risk indicators."""

    def test_no_indicators(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 10))

        assert prediction.failure_probability == 0.0
        assert prediction.days_until_failure is None
        assert prediction.contributing_factors == [NO_INDICATORS]
        assert prediction.recommended_action == "Continue regular monitoring"
        assert prediction.confidence == pytest.approx(100 / 3)

    def test_confidence_is_capped(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 35))

        assert prediction.confidence == 100.0


class TestReallocatedSectors:
    """Tests for the reallocated sector rule."""

    def test_increasing_reallocations(self, store, smart_rows):
        """Test 2 new reallocated sectors per day."""
        rows = smart_rows("sda", 10, reallocated_sectors=[2 * i for i in range(10)])

        prediction = predict(store, rows)

        # 40 base + 18/10 magnitude + 2 sectors/sample * 2 slope
        assert prediction.failure_probability == pytest.approx(45.8)
        # (100 - 18) / 2 per day
        assert prediction.days_until_failure == 41
        assert prediction.contributing_factors == [
            "18 reallocated sectors detected (INCREASING)"
        ]
        assert prediction.recommended_action.startswith("Order replacement drive")

    def test_stable_reallocations(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 10, reallocated_sectors=5))

        assert prediction.failure_probability == pytest.approx(40.5)
        assert prediction.days_until_failure is None
        assert prediction.contributing_factors == ["5 reallocated sectors detected (stable)"]

    def test_magnitude_is_capped(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 10, reallocated_sectors=400))

        assert prediction.failure_probability == pytest.approx(50.0)

    def test_past_critical_count_fails_soon(self, store, smart_rows):
        """Test a disk already beyond the critical count gets the minimum horizon."""
        rows = smart_rows("sda", 10, reallocated_sectors=[20 * i for i in range(10)])

        prediction = predict(store, rows)

        assert prediction.days_until_failure == 1

    def test_rate_is_per_day(self, store, now):
        """Test the projection uses the real sample spacing."""
        rows = [
            {
                "timestamp": now - timedelta(days=2 * (4 - i)),
                "disk_name": "sda",
                "temperature": 35.0,
                "power_on_hours": 1000,
                "reallocated_sectors": 10 + 4 * i,
                "pending_sectors": 0,
                "health_status": "PASSED",
            }
            for i in range(5)
        ]

        prediction = predict(store, rows)

        # 4 sectors per sample, one sample every 2 days: (100 - 26) / 2
        assert prediction.days_until_failure == 37


class TestOtherRules:
    """Tests for the pending, temperature and age rules."""

    def test_pending_sectors(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 10, pending_sectors=3))

        assert prediction.failure_probability == pytest.approx(33.0)
        assert prediction.contributing_factors == ["3 pending sectors"]
        assert prediction.recommended_action.startswith("Monitor closely")

    def test_hot_disk(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 10, temperature=58.0))

        assert prediction.failure_probability == pytest.approx(15.0)
        assert prediction.contributing_factors == ["High average temperature: 58.0°C"]

    def test_rising_temperature(self, store, smart_rows):
        rows = smart_rows("sda", 10, temperature=[40.0 + i for i in range(10)])

        prediction = predict(store, rows)

        assert prediction.failure_probability == pytest.approx(10.0)
        assert prediction.contributing_factors == ["Temperature rising over time"]

    def test_hot_and_rising(self, store, smart_rows):
        rows = smart_rows("sda", 10, temperature=[55.0 + i for i in range(10)])

        prediction = predict(store, rows)

        assert prediction.failure_probability == pytest.approx(25.0)
        assert prediction.contributing_factors == [
            "High average temperature: 59.5°C; Temperature rising over time"
        ]

    def test_drive_age(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 10, power_on_hours=6 * HOURS_PER_YEAR))

        assert prediction.failure_probability == pytest.approx(10.0)
        assert prediction.contributing_factors == ["Drive age: 6.0 years"]

    def test_drive_age_is_capped(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 10, power_on_hours=20 * HOURS_PER_YEAR))

        assert prediction.failure_probability == pytest.approx(15.0)

    def test_young_drive(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 10, power_on_hours=3 * HOURS_PER_YEAR))

        assert prediction.failure_probability == 0.0


class TestFailedHealthStatus:
    """Tests for a FAILED SMART self-assessment."""

    def test_failed_has_probability_floor(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 10, health_status="FAILED"))

        assert prediction.failure_probability == pytest.approx(70.0)
        assert prediction.days_until_failure == 30
        assert prediction.contributing_factors == ["SMART health status: FAILED"]
        assert prediction.recommended_action.startswith("URGENT")

    def test_failed_caps_days(self, store, smart_rows):
        rows = smart_rows(
            "sda",
            10,
            reallocated_sectors=[2 * i for i in range(10)],
            health_status="FAILED",
        )

        prediction = predict(store, rows)

        assert prediction.failure_probability == pytest.approx(95.8)
        assert prediction.days_until_failure == 30

    def test_failed_with_imminent_trend(self, store, smart_rows):
        rows = smart_rows(
            "sda",
            10,
            reallocated_sectors=[20 * i for i in range(10)],
            health_status="failed",
        )

        prediction = predict(store, rows)

        assert prediction.days_until_failure == 1

    def test_latest_status_wins(self, store, smart_rows):
        rows = smart_rows("sda", 10, health_status=["FAILED"] * 9 + ["PASSED"])

        prediction = predict(store, rows)

        assert prediction.failure_probability == 0.0


class TestScoring:
    """Tests for the combined score."""

    def test_probability_is_clamped(self, store, smart_rows):
        rows = smart_rows(
            "sda",
            10,
            reallocated_sectors=[100 * i for i in range(10)],
            pending_sectors=50,
            temperature=[60.0 + i for i in range(10)],
            power_on_hours=20 * HOURS_PER_YEAR,
            health_status="FAILED",
        )

        prediction = predict(store, rows)

        assert prediction.failure_probability == 100.0
        assert len(prediction.contributing_factors) == 5

    def test_rule_ordering(self, store, smart_rows):
        """Test a single indicator of each kind ranks FAILED > reallocated > pending > temperature > age."""
        scenarios = {
            "failed": {"health_status": "FAILED"},
            "reallocated": {"reallocated_sectors": 1},
            "pending": {"pending_sectors": 1},
            "temperature": {"temperature": 56.0},
            "age": {"power_on_hours": 5 * HOURS_PER_YEAR},
        }
        for disk_name, attributes in scenarios.items():
            store.load("smart_metrics", smart_rows(disk_name, 10, **attributes))

        predictor = DiskFailurePredictor(store)
        scores = [predictor.predict_failure(name).failure_probability for name in scenarios]

        assert scores == sorted(scores, reverse=True)
        assert len(set(scores)) == len(scores)

    def test_monotonic_in_reallocated_sectors(self, store, smart_rows):
        counts = [1, 5, 20, 80, 150, 400]
        for count in counts:
            store.load("smart_metrics", smart_rows(f"disk-{count}", 10, reallocated_sectors=count))

        predictor = DiskFailurePredictor(store)
        scores = [predictor.predict_failure(f"disk-{count}").failure_probability for count in counts]

        assert scores == sorted(scores)

    def test_monotonic_in_reallocation_rate(self, store, smart_rows):
        rates = [0, 1, 3, 10]
        for rate in rates:
            store.load(
                "smart_metrics",
                smart_rows(f"disk-{rate}", 10, reallocated_sectors=[10 + rate * i for i in range(10)]),
            )

        predictor = DiskFailurePredictor(store)
        scores = [predictor.predict_failure(f"disk-{rate}").failure_probability for rate in rates]

        assert scores == sorted(scores)

    def test_custom_policy(self, store, smart_rows):
        policy = DiskRiskPolicy(pending_base=10.0)

        prediction = predict(store, smart_rows("sda", 10, pending_sectors=3), policy=policy)

        assert prediction.failure_probability == pytest.approx(13.0)


class TestPredictAll:
    """Tests for batch prediction and the audit log."""

    def test_every_disk_is_predicted(self, store, smart_rows):
        store.load(
            "smart_metrics",
            smart_rows("sdb", 10, pending_sectors=3) + smart_rows("sda", 10),
        )

        predictions = DiskFailurePredictor(store).predict_all()

        assert [p.disk_name for p in predictions] == ["sda", "sdb"]
        assert len(store.predictions) == 2

    def test_no_disks(self, store):
        assert DiskFailurePredictor(store).predict_all() == []

    def test_latest_predictions(self, store, smart_rows):
        store.load(
            "smart_metrics",
            smart_rows("sda", 10) + smart_rows("sdb", 10, reallocated_sectors=5),
        )
        predictor = DiskFailurePredictor(store)
        predictor.predict_all()
        predictor.predict_failure("sda")

        latest = predictor.latest_predictions()

        assert len(store.predictions) == 3
        assert [p.disk_name for p in latest] == ["sdb", "sda"]

    def test_audit_round_trip(self, store, smart_rows):
        """Test the logged prediction reads back unchanged."""
        prediction = predict(
            store, smart_rows("sda", 10, reallocated_sectors=[2 * i for i in range(10)])
        )

        assert store.latest_disk_predictions() == [prediction]

    def test_prediction_is_json_ready(self, store, smart_rows):
        prediction = predict(store, smart_rows("sda", 10, reallocated_sectors=5))

        data = json.loads(json.dumps(prediction.to_dict()))
        assert data["disk_name"] == "sda"
        assert data["contributing_factors"] == ["5 reallocated sectors detected (stable)"]
