"""
Capacity exhaustion forecasting.

Fits a linear trend to daily aggregates and projects when a resource runs out.
"""

import math
from datetime import datetime, timedelta, timezone

import pandas as pd
import structlog

from .config import CapacityPolicy
from .models import CapacityPrediction
from .statistics import linear_growth_rate
from .store import SampleStore

logger = structlog.get_logger(__name__)

SUPPORTED_RESOURCES = ("storage", "memory", "swap")


class CapacityPredictor:
    """Predicts when storage or memory will reach capacity"""

    def __init__(self, store: SampleStore, policy: CapacityPolicy | None = None):
        self.store = store
        self.policy = policy or CapacityPolicy()

    def predict(self, resource: str) -> CapacityPrediction | None:
        """Predict capacity exhaustion for a resource

        Args:
            resource: One of 'storage', 'memory' or 'swap'

        Returns:
            A prediction, or None when the resource is unsupported or there
            is not enough daily history
        """
        handlers = {
            "storage": self._predict_storage,
            "memory": self._predict_memory,
            "swap": self._predict_swap,
        }
        handler = handlers.get(resource)
        if handler is None:
            logger.warning("Unsupported capacity resource", resource=resource)
            return None
        return handler()

    def _since(self) -> datetime:
        return datetime.now(timezone.utc) - timedelta(days=self.policy.history_days)

    def _enough(self, resource: str, daily: pd.DataFrame) -> bool:
        if len(daily) < self.policy.min_daily_points:
            logger.debug(
                "Insufficient daily points for capacity prediction",
                resource=resource,
                points=len(daily),
                required=self.policy.min_daily_points,
            )
            return False
        return True

    def _predict_storage(self) -> CapacityPrediction | None:
        since = self._since()
        used = self.store.query_daily_aggregate("pool_used_bytes", aggregate="sum", since=since)
        if not self._enough("storage", used):
            return None

        total = self.store.query_daily_aggregate(
            "pool_total_bytes", aggregate="sum", since=since
        )
        if total.empty:
            return None

        growth_rate = _daily_growth(used)
        current_used = float(used["value"].iloc[-1])
        capacity = float(total["value"].iloc[-1])
        if capacity <= 0:
            return None

        usage_percent = current_used / capacity * 100
        days_until_full = _days_until_full(capacity - current_used, growth_rate)
        near_term = self._near_term(days_until_full)

        analysis = f"Storage is currently {usage_percent:.1f}% full."
        if near_term:
            analysis += (
                " At current growth rate, storage will be full in approximately "
                f"{days_until_full} days."
            )
        elif growth_rate <= 0:
            analysis += " Storage usage is stable or decreasing."
        else:
            analysis += " Storage capacity is healthy."

        recommendations = []
        if near_term:
            recommendations = [
                "Plan storage expansion or data cleanup within the next 60 days",
                "Review and delete old snapshots",
                "Identify large files that can be archived or deleted",
            ]

        confidence = (
            self.policy.storage_confidence_high
            if len(used) >= self.policy.high_confidence_points
            else self.policy.storage_confidence_low
        )

        return CapacityPrediction(
            resource="storage",
            current_usage=current_used,
            current_usage_percent=usage_percent,
            growth_rate_per_day=growth_rate,
            predicted_full_date=_full_date(days_until_full),
            days_until_full=days_until_full,
            confidence=confidence,
            recommendations=recommendations,
            trend_analysis=analysis,
        )

    def _predict_memory(self) -> CapacityPrediction | None:
        daily = self.store.query_daily_aggregate(
            "memory_percent", aggregate="avg", since=self._since()
        )
        if not self._enough("memory", daily):
            return None

        growth_rate = _daily_growth(daily)
        current_percent = float(daily["value"].iloc[-1])
        days_until_full = _days_until_full(100 - current_percent, growth_rate)
        near_term = self._near_term(days_until_full)

        analysis = f"Average memory usage is {current_percent:.1f}%."
        recommendations = []
        if near_term:
            analysis += " Memory usage is trending upward."
            recommendations = [
                "Consider upgrading RAM or reducing container memory limits",
                "Review container memory usage patterns",
            ]

        return CapacityPrediction(
            resource="memory",
            current_usage=current_percent,
            current_usage_percent=current_percent,
            growth_rate_per_day=growth_rate,
            predicted_full_date=_full_date(days_until_full),
            days_until_full=days_until_full,
            confidence=self.policy.memory_confidence,
            recommendations=recommendations,
            trend_analysis=analysis,
        )

    def _predict_swap(self) -> CapacityPrediction | None:
        # Swap usage is not collected yet
        return None

    def _near_term(self, days_until_full: int | None) -> bool:
        return days_until_full is not None and days_until_full < self.policy.warning_horizon_days


def _daily_growth(daily: pd.DataFrame) -> float:
    """Slope per day of a daily series, using the day offset as x"""
    return linear_growth_rate(enumerate(daily["value"].astype(float)))


def _days_until_full(remaining: float, growth_rate: float) -> int | None:
    """Whole days until ``remaining`` is consumed, None for flat or shrinking usage"""
    if growth_rate <= 0:
        return None
    return max(0, math.floor(remaining / growth_rate))


def _full_date(days_until_full: int | None) -> str | None:
    if days_until_full is None:
        return None
    return (datetime.now(timezone.utc) + timedelta(days=days_until_full)).isoformat()
