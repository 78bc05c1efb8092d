"""
Disk failure prediction from SMART trends.

The failure probability is an additive score built from independent rules,
each looking at one SMART attribute over the last weeks of history:

    rule                    contribution
    ----------------------  ----------------------------------------------
    reallocated sectors     40 when present, + magnitude (<=10) + slope (<=10)
    pending sectors         30 when present, + magnitude (<=10)
    temperature             15 when the mean runs hot, +10 when rising
    drive age               5..15 past the age threshold
    SMART health FAILED     50, and the total never drops below 70

Every prediction (including "insufficient data" ones) is appended to the
store's audit log.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pandas as pd
import structlog

from .config import DiskRiskPolicy
from .models import DiskFailurePrediction
from .statistics import index_growth_rate, mean
from .store import SampleStore

logger = structlog.get_logger(__name__)

INSUFFICIENT_DATA = "Insufficient historical data"
NO_INDICATORS = "No concerning indicators detected"
FAILED_STATUS = "FAILED"


@dataclass
class AttributeTrend:
    """Summary of one SMART attribute over the history window"""

    current: float
    average: float
    minimum: float
    maximum: float
    rate: float  # change per sample

    @classmethod
    def from_series(cls, values: pd.Series) -> "AttributeTrend":
        values = values.dropna().astype(float)
        if values.empty:
            return cls(current=0.0, average=0.0, minimum=0.0, maximum=0.0, rate=0.0)
        return cls(
            current=float(values.iloc[-1]),
            average=mean(values),
            minimum=float(values.min()),
            maximum=float(values.max()),
            rate=index_growth_rate(values.tolist()),
        )


@dataclass
class SmartTrends:
    """Everything the risk rules look at for one disk"""

    samples: int
    span_days: float
    reallocated: AttributeTrend
    pending: AttributeTrend
    temperature: AttributeTrend
    power_on_hours: float
    health_status: str

    @classmethod
    def from_history(cls, history: pd.DataFrame) -> "SmartTrends":
        timestamps = pd.to_datetime(history["timestamp"], utc=True)
        span = (timestamps.iloc[-1] - timestamps.iloc[0]).total_seconds() / 86400
        power_on = history["power_on_hours"].dropna()
        status = history["health_status"].dropna()
        return cls(
            samples=len(history),
            span_days=span,
            reallocated=AttributeTrend.from_series(history["reallocated_sectors"]),
            pending=AttributeTrend.from_series(history["pending_sectors"]),
            temperature=AttributeTrend.from_series(history["temperature"]),
            power_on_hours=float(power_on.iloc[-1]) if not power_on.empty else 0.0,
            health_status=str(status.iloc[-1]).upper() if not status.empty else "",
        )

    @property
    def failed(self) -> bool:
        return self.health_status == FAILED_STATUS

    def per_day(self, rate_per_sample: float) -> float:
        """Convert a per-sample rate to a per-day rate using the mean sample spacing"""
        if self.samples < 2 or self.span_days <= 0:
            return rate_per_sample
        return rate_per_sample * (self.samples - 1) / self.span_days


@dataclass
class RiskRule:
    """One independent contribution to the failure score"""

    name: str
    contribution: Callable[[SmartTrends], tuple[float, str | None]]

    def evaluate(self, trends: SmartTrends) -> tuple[float, str | None]:
        points, factor = self.contribution(trends)
        return max(0.0, points), factor


class DiskFailurePredictor:
    """Rule-based failure risk scoring for individual disks"""

    def __init__(self, store: SampleStore, policy: DiskRiskPolicy | None = None):
        self.store = store
        self.policy = policy or DiskRiskPolicy()
        self.rules = [
            RiskRule("reallocated_sectors", self._reallocated_risk),
            RiskRule("pending_sectors", self._pending_risk),
            RiskRule("temperature", self._temperature_risk),
            RiskRule("drive_age", self._age_risk),
            RiskRule("health_status", self._health_risk),
        ]

    def predict_failure(self, disk_name: str) -> DiskFailurePrediction:
        """Predict the failure risk of a disk and record it in the audit log"""
        since = datetime.now(timezone.utc) - timedelta(days=self.policy.history_days)
        history = self.store.query_smart_history(disk_name, since)

        if len(history) < self.policy.min_samples:
            prediction = self._insufficient(disk_name)
        else:
            prediction = self._score(disk_name, SmartTrends.from_history(history))

        self.store.append_disk_prediction(prediction)
        logger.info(
            "Disk failure predicted",
            disk_name=disk_name,
            failure_probability=round(prediction.failure_probability, 1),
            days_until_failure=prediction.days_until_failure,
            confidence=round(prediction.confidence, 1),
        )
        return prediction

    def predict_all(self) -> list[DiskFailurePrediction]:
        """Predict every disk with SMART data in the history window"""
        since = datetime.now(timezone.utc) - timedelta(days=self.policy.history_days)
        return [self.predict_failure(disk) for disk in self.store.list_disks(since)]

    def latest_predictions(self) -> list[DiskFailurePrediction]:
        return self.store.latest_disk_predictions()

    def _insufficient(self, disk_name: str) -> DiskFailurePrediction:
        return DiskFailurePrediction(
            disk_name=disk_name,
            failure_probability=0.0,
            days_until_failure=None,
            confidence=0.0,
            contributing_factors=[INSUFFICIENT_DATA],
            recommended_action="Continue monitoring - need more data points",
            predicted_at=datetime.now(timezone.utc).isoformat(),
        )

    def _score(self, disk_name: str, trends: SmartTrends) -> DiskFailurePrediction:
        total = 0.0
        factors = []
        for rule in self.rules:
            points, factor = rule.evaluate(trends)
            total += points
            if factor:
                factors.append(factor)
            if points:
                logger.debug("Risk rule fired", disk_name=disk_name, rule=rule.name, points=points)

        if trends.failed:
            total = max(total, self.policy.failed_floor)
        probability = min(100.0, max(0.0, total))

        return DiskFailurePrediction(
            disk_name=disk_name,
            failure_probability=probability,
            days_until_failure=self._days_until_failure(trends),
            confidence=min(
                100.0, trends.samples / self.policy.full_confidence_samples * 100
            ),
            contributing_factors=factors or [NO_INDICATORS],
            recommended_action=self._recommended_action(probability),
            predicted_at=datetime.now(timezone.utc).isoformat(),
        )

    # ========================================
    # Risk rules
    # ========================================

    def _reallocated_risk(self, trends: SmartTrends) -> tuple[float, str | None]:
        reallocated = trends.reallocated
        if reallocated.current <= 0:
            return 0.0, None

        p = self.policy
        points = p.reallocated_base + min(
            p.reallocated_magnitude_max, reallocated.current / p.reallocated_magnitude_scale
        )
        increasing = reallocated.rate > 0
        if increasing:
            points += min(p.reallocated_slope_max, reallocated.rate * p.reallocated_slope_weight)

        state = "INCREASING" if increasing else "stable"
        return points, f"{reallocated.current:.0f} reallocated sectors detected ({state})"

    def _pending_risk(self, trends: SmartTrends) -> tuple[float, str | None]:
        pending = trends.pending
        if pending.current <= 0:
            return 0.0, None
        points = self.policy.pending_base + min(self.policy.pending_magnitude_max, pending.current)
        return points, f"{pending.current:.0f} pending sectors"

    def _temperature_risk(self, trends: SmartTrends) -> tuple[float, str | None]:
        temperature = trends.temperature
        points = 0.0
        notes = []
        if temperature.average > self.policy.temperature_threshold:
            points += self.policy.temperature_risk
            notes.append(f"High average temperature: {temperature.average:.1f}°C")
        if temperature.rate > self.policy.temperature_rise_rate:
            points += self.policy.temperature_rise_risk
            notes.append("Temperature rising over time")
        return points, "; ".join(notes) or None

    def _age_risk(self, trends: SmartTrends) -> tuple[float, str | None]:
        years = trends.power_on_hours / self.policy.hours_per_year
        if years <= self.policy.age_threshold_years:
            return 0.0, None
        extra_years = years - self.policy.age_threshold_years
        points = min(
            self.policy.age_risk_max,
            self.policy.age_base_risk + self.policy.age_risk_per_year * extra_years,
        )
        return points, f"Drive age: {years:.1f} years"

    def _health_risk(self, trends: SmartTrends) -> tuple[float, str | None]:
        if not trends.failed:
            return 0.0, None
        return self.policy.failed_risk, "SMART health status: FAILED"

    # ========================================
    # Derived outputs
    # ========================================

    def _days_until_failure(self, trends: SmartTrends) -> int | None:
        """Days until the reallocated count reaches the critical threshold

        Only estimated for a degrading trend; a FAILED disk is capped.
        """
        days = None
        rate_per_day = trends.per_day(trends.reallocated.rate)
        if rate_per_day > 0:
            remaining = self.policy.critical_reallocated_sectors - trends.reallocated.current
            days = max(1, math.floor(remaining / rate_per_day))

        if trends.failed:
            days = min(days, self.policy.failed_max_days) if days else self.policy.failed_max_days
        return days

    def _recommended_action(self, probability: float) -> str:
        if probability >= self.policy.critical_probability:
            return (
                "URGENT: Replace drive immediately. Order a replacement and "
                "migrate data within 1 week."
            )
        if probability >= self.policy.medium_probability:
            return "Order replacement drive as precaution. Increase backup frequency."
        if probability >= self.policy.watch_probability:
            return "Monitor closely. Verify backups are current."
        return "Continue regular monitoring"
