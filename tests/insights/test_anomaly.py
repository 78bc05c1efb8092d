"""
Tests for point-in-time anomaly detection.
"""

from datetime import timedelta

import pytest

from src.insights.anomaly import AnomalyDetector
from src.insights.config import AnomalyPolicy
from src.insights.models import AnomalyKind, Severity


def by_metric(anomalies):
    return {anomaly.metric: anomaly for anomaly in anomalies}


class TestCpuAnomalies:
    """Tests for the CPU z-score check."""

    def test_spike_is_high(self, store, hourly_system_rows):
        store.load("system_metrics", hourly_system_rows("cpu_percent", [20.0] * 23 + [95.0]))

        anomalies = AnomalyDetector(store).detect_anomalies(24)

        assert len(anomalies) == 1
        cpu = anomalies[0]
        assert cpu.metric == "CPU Usage"
        assert cpu.kind == AnomalyKind.SPIKE
        assert cpu.severity == Severity.HIGH
        assert cpu.current_value == 95.0
        assert cpu.expected_value == pytest.approx(23.125)
        assert cpu.deviation_percent == pytest.approx((95.0 - 23.125) / 23.125 * 100)
        assert "htop" in cpu.recommendation

    def test_moderate_deviation_is_medium(self, store, hourly_system_rows):
        """Test a z-score between 2 and 3 yields a medium severity."""
        values = [18.0] * 12 + [22.0] * 11 + [26.0]
        store.load("system_metrics", hourly_system_rows("cpu_percent", values))

        cpu = by_metric(AnomalyDetector(store).detect_anomalies(24))["CPU Usage"]

        assert cpu.severity == Severity.MEDIUM
        assert cpu.kind == AnomalyKind.SPIKE

    def test_drop(self, store, hourly_system_rows):
        store.load("system_metrics", hourly_system_rows("cpu_percent", [50.0] * 23 + [5.0]))

        cpu = by_metric(AnomalyDetector(store).detect_anomalies(24))["CPU Usage"]

        assert cpu.kind == AnomalyKind.DROP
        assert cpu.severity == Severity.HIGH
        assert cpu.deviation_percent > 0
        assert "system logs" in cpu.recommendation

    def test_within_band(self, store, hourly_system_rows):
        store.load("system_metrics", hourly_system_rows("cpu_percent", [20.0, 22.0, 18.0, 21.0]))

        assert AnomalyDetector(store).detect_anomalies(24) == []

    def test_constant_series_has_no_baseline(self, store, hourly_system_rows):
        """Test zero variance never produces an anomaly."""
        store.load("system_metrics", hourly_system_rows("cpu_percent", [30.0] * 10))

        assert AnomalyDetector(store).detect_anomalies(24) == []

    def test_no_samples_in_window(self, store, now):
        store.load(
            "system_metrics",
            [
                {"timestamp": now - timedelta(hours=48 + i), "cpu_percent": value}
                for i, value in enumerate([10.0, 90.0, 10.0])
            ],
        )

        assert AnomalyDetector(store).detect_anomalies(24) == []

    def test_custom_threshold(self, store, hourly_system_rows):
        values = [18.0] * 12 + [22.0] * 11 + [26.0]
        store.load("system_metrics", hourly_system_rows("cpu_percent", values))

        detector = AnomalyDetector(store, AnomalyPolicy(z_score_threshold=3.0))

        assert detector.detect_anomalies(24) == []


class TestMemoryAnomalies:
    """Tests for the memory saturation check."""

    def test_critical(self, store, hourly_system_rows):
        store.load("system_metrics", hourly_system_rows("memory_percent", [70.0, 80.0, 96.0]))
        store.load("system_metrics", hourly_system_rows("memory_used_gb", [22.4, 25.6, 30.7]))

        memory = by_metric(AnomalyDetector(store).detect_anomalies(24))["Memory Usage"]

        assert memory.severity == Severity.CRITICAL
        assert memory.kind == AnomalyKind.SPIKE
        assert memory.current_value == 96.0
        assert memory.expected_value == pytest.approx(82.0)
        assert "96.0%" in memory.description
        assert "(30.7GB)" in memory.description

    def test_high(self, store, hourly_system_rows):
        store.load("system_metrics", hourly_system_rows("memory_percent", [92.0]))

        memory = by_metric(AnomalyDetector(store).detect_anomalies(24))["Memory Usage"]

        assert memory.severity == Severity.HIGH
        assert "GB" not in memory.description

    def test_baseline_is_independent_of_threshold(self, store, hourly_system_rows):
        """Test a 92% reading is high even when the window average is only 60%."""
        store.load("system_metrics", hourly_system_rows("memory_percent", [52.0] * 4 + [92.0]))

        memory = by_metric(AnomalyDetector(store).detect_anomalies(24))["Memory Usage"]

        assert memory.severity == Severity.HIGH
        assert memory.current_value == 92.0
        assert memory.expected_value == pytest.approx(60.0)
        assert memory.deviation_percent == pytest.approx(53.333, rel=1e-3)

    def test_stale_used_gb_is_not_quoted(self, store, now):
        """Test a GB reading from an older sample is left out of the description."""
        store.load(
            "system_metrics",
            [
                {"timestamp": now - timedelta(hours=2), "memory_percent": 70.0, "memory_used_gb": 22.4},
                {"timestamp": now, "memory_percent": 96.0},
            ],
        )

        memory = by_metric(AnomalyDetector(store).detect_anomalies(24))["Memory Usage"]

        assert memory.severity == Severity.CRITICAL
        assert "GB" not in memory.description

    def test_threshold_is_exclusive(self, store, hourly_system_rows):
        store.load("system_metrics", hourly_system_rows("memory_percent", [90.0]))

        assert AnomalyDetector(store).detect_anomalies(24) == []


class TestPoolAnomalies:
    """Tests for the pool capacity check."""

    def test_high(self, store, now):
        store.load(
            "pool_metrics",
            [
                {"timestamp": now, "pool_name": "tank", "percent_used": 60.0},
                {"timestamp": now, "pool_name": "backup", "percent_used": 88.0},
            ],
        )

        pool = by_metric(AnomalyDetector(store).detect_anomalies(24))["Pool Capacity"]

        assert pool.kind == AnomalyKind.TREND
        assert pool.severity == Severity.HIGH
        assert pool.current_value == 88.0
        assert pool.expected_value == 75.0
        assert pool.deviation_percent == pytest.approx(13.0 / 75.0 * 100)
        assert '"backup"' in pool.description

    def test_critical(self, store, now):
        store.load(
            "pool_metrics",
            [{"timestamp": now, "pool_name": "tank", "percent_used": 97.0}],
        )

        pool = by_metric(AnomalyDetector(store).detect_anomalies(24))["Pool Capacity"]

        assert pool.severity == Severity.CRITICAL

    def test_healthy_pools(self, store, now):
        store.load(
            "pool_metrics",
            [{"timestamp": now, "pool_name": "tank", "percent_used": 85.0}],
        )

        assert AnomalyDetector(store).detect_anomalies(24) == []


class TestDiskAnomalies:
    """Tests for the SMART health check."""

    def test_reallocated_sectors(self, store, smart_rows):
        store.load("smart_metrics", smart_rows("sda", 1, reallocated_sectors=12))

        disk = by_metric(AnomalyDetector(store).detect_anomalies(24))["Disk Health"]

        assert disk.kind == AnomalyKind.PATTERN
        assert disk.severity == Severity.HIGH
        assert disk.current_value == 12.0
        assert disk.expected_value == 0.0
        assert disk.deviation_percent == 100.0
        assert '"sda"' in disk.description

    def test_critical_reallocated(self, store, smart_rows):
        store.load("smart_metrics", smart_rows("sda", 1, reallocated_sectors=60))

        disk = by_metric(AnomalyDetector(store).detect_anomalies(24))["Disk Health"]

        assert disk.severity == Severity.CRITICAL

    def test_critical_pending(self, store, smart_rows):
        store.load("smart_metrics", smart_rows("sda", 1, pending_sectors=25))

        disk = by_metric(AnomalyDetector(store).detect_anomalies(24))["Disk Health"]

        assert disk.severity == Severity.CRITICAL
        assert "25 pending sectors" in disk.description

    def test_hot_disk(self, store, smart_rows):
        store.load("smart_metrics", smart_rows("sda", 1, temperature=60.0))

        disk = by_metric(AnomalyDetector(store).detect_anomalies(24))["Disk Health"]

        assert disk.severity == Severity.HIGH
        assert disk.current_value == 0.0

    def test_worst_disk_is_reported(self, store, smart_rows):
        """Test the disk with the most reallocated sectors is chosen."""
        store.load(
            "smart_metrics",
            smart_rows("sda", 1, reallocated_sectors=12) + smart_rows("sdb", 1, reallocated_sectors=30),
        )

        disk = by_metric(AnomalyDetector(store).detect_anomalies(24))["Disk Health"]

        assert '"sdb"' in disk.description
        assert disk.current_value == 30.0

    def test_healthy_disks(self, store, smart_rows):
        store.load("smart_metrics", smart_rows("sda", 1, reallocated_sectors=10, pending_sectors=5))

        assert AnomalyDetector(store).detect_anomalies(24) == []


class TestDetectAnomalies:
    """Tests for the combined detection run."""

    def test_empty_store(self, store):
        assert AnomalyDetector(store).detect_anomalies() == []

    def test_one_anomaly_per_family(self, store, hourly_system_rows, smart_rows, now):
        store.load("system_metrics", hourly_system_rows("cpu_percent", [20.0] * 23 + [95.0]))
        store.load("system_metrics", hourly_system_rows("memory_percent", [96.0]))
        store.load(
            "pool_metrics",
            [
                {"timestamp": now, "pool_name": "tank", "percent_used": 90.0},
                {"timestamp": now, "pool_name": "backup", "percent_used": 97.0},
            ],
        )
        store.load(
            "smart_metrics",
            smart_rows("sda", 1, reallocated_sectors=12) + smart_rows("sdb", 1, pending_sectors=8),
        )

        anomalies = AnomalyDetector(store).detect_anomalies(24)

        assert [a.metric for a in anomalies] == [
            "CPU Usage",
            "Memory Usage",
            "Pool Capacity",
            "Disk Health",
        ]

    def test_lookback_window(self, store, now):
        """Test samples older than the lookback do not form the baseline."""
        rows = [
            {"timestamp": now - timedelta(hours=10 + i), "cpu_percent": 20.0} for i in range(10)
        ]
        rows.append({"timestamp": now, "cpu_percent": 95.0})
        store.load("system_metrics", rows)

        assert AnomalyDetector(store).detect_anomalies(lookback_hours=2) == []
        assert len(AnomalyDetector(store).detect_anomalies(lookback_hours=24)) == 1
