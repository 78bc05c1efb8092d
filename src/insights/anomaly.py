"""
Point-in-time anomaly detection over the most recent telemetry.

Each metric family is checked independently and yields at most one anomaly
per call:
- CPU: z-score of the latest reading against the lookback window
- Memory: absolute saturation threshold (OOM risk is binary, not statistical)
- Pool capacity: most-full pool against a fixed design target
- Disk health: disk with the most reallocated sectors past SMART thresholds
"""

from datetime import datetime, timedelta, timezone

import structlog

from .config import AnomalyPolicy
from .models import Anomaly, AnomalyKind, Severity
from .statistics import mean, stddev
from .store import SampleStore

logger = structlog.get_logger(__name__)


class AnomalyDetector:
    """Flags out-of-band readings relative to a rolling baseline"""

    def __init__(self, store: SampleStore, policy: AnomalyPolicy | None = None):
        self.store = store
        self.policy = policy or AnomalyPolicy()

    def detect_anomalies(self, lookback_hours: float = 24) -> list[Anomaly]:
        """Detect anomalies in the last ``lookback_hours`` of samples

        Returns:
            Zero or more anomalies, never more than one per metric family
        """
        since = datetime.now(timezone.utc) - timedelta(hours=lookback_hours)

        checks = [
            self._analyze_cpu,
            self._analyze_memory,
            self._analyze_pools,
            self._analyze_disks,
        ]
        anomalies = []
        for check in checks:
            anomaly = check(since)
            if anomaly is not None:
                anomalies.append(anomaly)

        logger.info(
            "Anomaly detection completed",
            lookback_hours=lookback_hours,
            anomalies=len(anomalies),
        )
        return anomalies

    def _analyze_cpu(self, since: datetime) -> Anomaly | None:
        window = self.store.query("cpu_percent", since=since)
        if window.empty:
            return None

        baseline = mean(window["value"])
        std = stddev(window["value"])
        latest = self.store.query_latest("cpu_percent")

        # A zero stddev means there is no usable baseline
        if latest is None or std == 0 or baseline is None:
            return None

        z_score = (latest.value - baseline) / std
        if abs(z_score) <= self.policy.z_score_threshold:
            return None

        is_spike = latest.value > baseline
        logger.debug("CPU anomaly", z_score=round(z_score, 3), latest=latest.value)
        return Anomaly(
            metric="CPU Usage",
            kind=AnomalyKind.SPIKE if is_spike else AnomalyKind.DROP,
            severity=Severity.HIGH if abs(z_score) > self.policy.z_score_high else Severity.MEDIUM,
            current_value=latest.value,
            expected_value=baseline,
            deviation_percent=abs(_deviation(latest.value, baseline)),
            description=f"CPU usage is {latest.value:.1f}% (expected ~{baseline:.1f}%)",
            recommendation=(
                "Investigate high CPU processes with htop or docker stats"
                if is_spike
                else "Review system logs for unexpected shutdowns or service failures"
            ),
        )

    def _analyze_memory(self, since: datetime) -> Anomaly | None:
        window = self.store.query("memory_percent", since=since)
        if window.empty:
            return None

        latest = self.store.query_latest("memory_percent")
        if latest is None or latest.value <= self.policy.memory_high_percent:
            return None

        baseline = mean(window["value"])
        used = self.store.query_latest("memory_used_gb")
        # Only quote GB when it was collected alongside the reported percentage
        same_sample = used is not None and used.timestamp == latest.timestamp
        used_text = f" ({used.value:.1f}GB)" if same_sample else ""

        return Anomaly(
            metric="Memory Usage",
            kind=AnomalyKind.SPIKE,
            severity=(
                Severity.CRITICAL
                if latest.value > self.policy.memory_critical_percent
                else Severity.HIGH
            ),
            current_value=latest.value,
            expected_value=baseline,
            deviation_percent=_deviation(latest.value, baseline),
            description=f"Memory usage is critically high at {latest.value:.1f}%{used_text}",
            recommendation=(
                "Review container memory limits, consider stopping unused containers, "
                "or add more RAM"
            ),
        )

    def _analyze_pools(self, since: datetime) -> Anomaly | None:
        window = self.store.query("pool_percent_used", since=since)
        if window.empty:
            return None

        fullest = window.loc[window["value"].idxmax()]
        percent_used = float(fullest["value"])
        if percent_used <= self.policy.pool_high_percent:
            return None

        target = self.policy.pool_target_percent
        return Anomaly(
            metric="Pool Capacity",
            kind=AnomalyKind.TREND,
            severity=(
                Severity.CRITICAL
                if percent_used > self.policy.pool_critical_percent
                else Severity.HIGH
            ),
            current_value=percent_used,
            expected_value=target,
            deviation_percent=_deviation(percent_used, target),
            description=f'Pool "{fullest["entity_key"]}" is {percent_used:.1f}% full',
            recommendation=(
                "Delete old snapshots, move data to another pool, or add more storage capacity"
            ),
        )

    def _analyze_disks(self, since: datetime) -> Anomaly | None:
        history = self.store.query_smart_history(since=since)
        if history.empty:
            return None

        reallocated = history["reallocated_sectors"].fillna(0).astype(float)
        pending = history["pending_sectors"].fillna(0).astype(float)
        temperature = history["temperature"].fillna(0).astype(float)

        suspicious = (
            (reallocated > self.policy.disk_reallocated_threshold)
            | (pending > self.policy.disk_pending_threshold)
            | (temperature > self.policy.disk_temperature_threshold)
        )
        if not suspicious.any():
            return None

        worst = reallocated[suspicious].sort_values(ascending=False, kind="stable").index[0]
        disk_name = history.at[worst, "disk_name"]
        worst_reallocated = int(reallocated[worst])
        worst_pending = int(pending[worst])

        is_critical = (
            worst_reallocated > self.policy.disk_reallocated_critical
            or worst_pending > self.policy.disk_pending_critical
        )
        return Anomaly(
            metric="Disk Health",
            kind=AnomalyKind.PATTERN,
            severity=Severity.CRITICAL if is_critical else Severity.HIGH,
            current_value=float(worst_reallocated),
            expected_value=0.0,
            deviation_percent=100.0,
            description=(
                f'Disk "{disk_name}" has {worst_reallocated} reallocated sectors '
                f"and {worst_pending} pending sectors"
            ),
            recommendation=(
                "Order replacement disk immediately, backup critical data, "
                "prepare for disk failure"
            ),
        )


def _deviation(current: float, expected: float | None) -> float:
    """Signed deviation of ``current`` from ``expected`` in percent"""
    if not expected:
        return 0.0
    return (current - expected) / expected * 100
