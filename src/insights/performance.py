"""
Multi-week performance trend analysis.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pandas as pd
import structlog

from .config import TrendPolicy
from .models import PerformanceTrend, TrendDirection
from .statistics import mean, percent_change, stddev
from .store import SampleStore

logger = structlog.get_logger(__name__)


@dataclass
class WindowStats:
    average: float
    minimum: float
    maximum: float
    std_deviation: float

    @property
    def variance(self) -> float:
        return self.std_deviation**2


def _window_stats(window: pd.DataFrame) -> WindowStats:
    values = window["value"]
    return WindowStats(
        average=mean(values),
        minimum=float(values.min()),
        maximum=float(values.max()),
        std_deviation=stddev(values),
    )


class PerformanceAnalyzer:
    """Classifies trends per resource family over a multi-week period"""

    def __init__(self, store: SampleStore, policy: TrendPolicy | None = None):
        self.store = store
        self.policy = policy or TrendPolicy()

    def analyze_trends(self, period_days: int | None = None) -> list[PerformanceTrend]:
        """Analyze CPU, memory, storage and disk temperature trends

        Families without samples in the period are omitted.
        """
        if period_days is None:
            period_days = self.policy.default_period_days
        now = datetime.now(timezone.utc)
        since = now - timedelta(days=period_days)
        logger.info("Analyzing performance trends", period_days=period_days)

        analyses = [
            self._analyze_cpu,
            self._analyze_memory,
            self._analyze_storage,
            self._analyze_disk_temperature,
        ]
        trends = []
        for analyze in analyses:
            trend = analyze(since, now, period_days)
            if trend is not None:
                trends.append(trend)
        return trends

    def _week_over_week(
        self, window: pd.DataFrame, stats: WindowStats, since: datetime, now: datetime
    ) -> tuple[TrendDirection, float]:
        """Compare the first and the most recent week of the window

        Volatility wins over any directional change.
        """
        comparison = timedelta(days=self.policy.comparison_window_days)
        timestamps = pd.to_datetime(window["timestamp"], utc=True)
        first_week = window.loc[timestamps <= pd.Timestamp(since + comparison), "value"]
        last_week = window.loc[timestamps > pd.Timestamp(now - comparison), "value"]

        change = 0.0
        if not first_week.empty and not last_week.empty:
            change = percent_change(mean(first_week), mean(last_week))

        if stats.average > 0 and stats.std_deviation / stats.average > self.policy.volatility_ratio:
            return TrendDirection.VOLATILE, change
        if change > self.policy.change_threshold_percent:
            return TrendDirection.DEGRADING, change
        if change < -self.policy.change_threshold_percent:
            return TrendDirection.IMPROVING, change
        return TrendDirection.STABLE, change

    def _utilization(self, stats: WindowStats) -> TrendDirection:
        if stats.average > self.policy.utilization_degrading_percent:
            return TrendDirection.DEGRADING
        return TrendDirection.STABLE

    def _analyze_cpu(self, since, now, period_days) -> PerformanceTrend | None:
        window = self.store.query("cpu_percent", since=since)
        if window.empty:
            return None

        stats = _window_stats(window)
        trend, change = self._week_over_week(window, stats, since, now)

        recommendations = []
        if trend == TrendDirection.DEGRADING:
            recommendations = [
                "Investigate processes causing increased CPU usage",
                "Consider upgrading CPU or optimizing workloads",
            ]
        elif trend == TrendDirection.VOLATILE:
            recommendations = [
                "Investigate causes of CPU usage spikes",
                "Consider implementing CPU limits on containers",
            ]

        movement = {
            TrendDirection.DEGRADING: "increased",
            TrendDirection.IMPROVING: "decreased",
            TrendDirection.VOLATILE: "fluctuated heavily",
        }.get(trend, "remained stable")

        return self._trend(
            "CPU Usage",
            period_days,
            trend,
            stats,
            change,
            f"CPU usage has {movement} over the last {period_days} days.",
            recommendations,
        )

    def _analyze_memory(self, since, now, period_days) -> PerformanceTrend | None:
        window = self.store.query("memory_percent", since=since)
        if window.empty:
            return None

        stats = _window_stats(window)
        trend = self._utilization(stats)
        return self._trend(
            "Memory Usage",
            period_days,
            trend,
            stats,
            0.0,
            f"Average memory usage is {stats.average:.1f}% over the last {period_days} days.",
            (
                ["Consider adding more RAM", "Review container memory limits"]
                if trend == TrendDirection.DEGRADING
                else []
            ),
        )

    def _analyze_storage(self, since, now, period_days) -> PerformanceTrend | None:
        window = self.store.query("pool_percent_used", since=since)
        if window.empty:
            return None

        stats = _window_stats(window)
        trend = self._utilization(stats)
        return self._trend(
            "Storage Usage",
            period_days,
            trend,
            stats,
            0.0,
            f"Storage pools are {stats.average:.1f}% full on average.",
            (
                ["Plan storage expansion", "Delete old snapshots", "Archive unused data"]
                if trend == TrendDirection.DEGRADING
                else []
            ),
        )

    def _analyze_disk_temperature(self, since, now, period_days) -> PerformanceTrend | None:
        window = self.store.query("disk_temperature", since=since)
        if window.empty:
            return None

        stats = _window_stats(window)
        trend, change = self._week_over_week(window, stats, since, now)

        recommendations = []
        running_hot = stats.average > self.policy.disk_temperature_warning
        if running_hot or trend in (TrendDirection.DEGRADING, TrendDirection.VOLATILE):
            recommendations = [
                "Improve case airflow",
                "Add additional case fans",
                "Check ambient temperature",
            ]

        return self._trend(
            "Disk Temperature",
            period_days,
            trend,
            stats,
            change,
            f"Average disk temperature is {stats.average:.1f}°C.",
            recommendations,
        )

    @staticmethod
    def _trend(metric, period_days, trend, stats, change, analysis, recommendations):
        return PerformanceTrend(
            metric=metric,
            period_days=period_days,
            trend=trend,
            average_value=stats.average,
            min_value=stats.minimum,
            max_value=stats.maximum,
            std_deviation=stats.std_deviation,
            variance=stats.variance,
            change_percent=change,
            analysis=analysis,
            recommendations=recommendations,
        )
