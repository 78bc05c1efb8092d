"""
Insights facade: the single entry point used by the transport layer.

Runs the analyzers against one sample store. Store failures propagate as a
single exception per call; no partial result is ever returned.
"""

import json
import time
from datetime import datetime, timedelta, timezone

import structlog

from .anomaly import AnomalyDetector
from .capacity import SUPPORTED_RESOURCES, CapacityPredictor
from .config import InsightsConfig
from .cost import CostOptimizer
from .disk import DiskFailurePredictor
from .models import (
    Anomaly,
    CapacityPrediction,
    CostOptimization,
    DiskFailurePrediction,
    Insight,
    InsightType,
    PerformanceTrend,
    Severity,
    TrendDirection,
)
from .performance import PerformanceAnalyzer
from .statistics import max_severity
from .store import SampleStore

logger = structlog.get_logger(__name__)

INSIGHT_TTL = {
    InsightType.ANOMALY: timedelta(hours=24),
    InsightType.CAPACITY: timedelta(days=7),
    InsightType.COST: timedelta(days=30),
    InsightType.PERFORMANCE: timedelta(days=7),
}


class InsightsService:
    """Orchestrates every analyzer over a sample store"""

    def __init__(self, store: SampleStore, config: InsightsConfig | None = None):
        self.store = store
        self.config = config or InsightsConfig()

        self.anomaly_detector = AnomalyDetector(store, self.config.anomaly)
        self.capacity_predictor = CapacityPredictor(store, self.config.capacity)
        self.disk_predictor = DiskFailurePredictor(store, self.config.disk)
        self.performance_analyzer = PerformanceAnalyzer(store, self.config.trend)
        self.cost_optimizer = CostOptimizer(store, self.config.cost)

        logger.info("Insights service initialized", store=type(store).__name__)

    def detect_anomalies(self, lookback_hours: float = 24) -> list[Anomaly]:
        return self.anomaly_detector.detect_anomalies(lookback_hours)

    def predict_capacity(self, resource: str | None = None) -> list[CapacityPrediction]:
        """Capacity predictions for one resource, or every supported one"""
        resources = [resource] if resource else list(SUPPORTED_RESOURCES)
        predictions = []
        for name in resources:
            prediction = self.capacity_predictor.predict(name)
            if prediction is not None:
                predictions.append(prediction)
        return predictions

    def predict_disk_failure(self, disk_name: str) -> DiskFailurePrediction:
        return self.disk_predictor.predict_failure(disk_name)

    def predict_all_disk_failures(self) -> list[DiskFailurePrediction]:
        return self.disk_predictor.predict_all()

    def latest_disk_predictions(self) -> list[DiskFailurePrediction]:
        return self.disk_predictor.latest_predictions()

    def analyze_trends(self, period_days: int = 30) -> list[PerformanceTrend]:
        return self.performance_analyzer.analyze_trends(period_days)

    def optimize_costs(self) -> CostOptimization:
        return self.cost_optimizer.generate_optimizations()

    def generate_insights(self) -> list[Insight]:
        """Roll every analyzer up into a list of actionable insights"""
        start_time = time.time()
        now = datetime.now(timezone.utc)
        stamp = int(now.timestamp() * 1000)
        insights = []

        anomalies = self.detect_anomalies(24)
        if anomalies:
            insights.append(
                _insight(
                    now,
                    f"anomaly-{stamp}",
                    InsightType.ANOMALY,
                    "Anomalies Detected",
                    f"Detected {len(anomalies)} anomalies in system metrics.",
                    [a.to_dict() for a in anomalies],
                    max_severity(a.severity for a in anomalies),
                    [a.recommendation for a in anomalies],
                )
            )

        horizon = self.config.capacity.warning_horizon_days
        for prediction in self.predict_capacity():
            days = prediction.days_until_full
            if days is None or days >= horizon:
                continue
            insights.append(
                _insight(
                    now,
                    f"capacity-{prediction.resource}-{stamp}",
                    InsightType.CAPACITY,
                    f"{prediction.resource} Capacity Warning",
                    prediction.trend_analysis,
                    prediction.to_dict(),
                    Severity.HIGH if days < 30 else Severity.MEDIUM,
                    prediction.recommendations,
                )
            )

        costs = self.optimize_costs()
        if costs.opportunities and costs.total_potential_savings_usd > 10:
            insights.append(
                _insight(
                    now,
                    f"cost-{stamp}",
                    InsightType.COST,
                    "Cost Optimization Opportunities",
                    f"Potential savings: ${costs.total_potential_savings_usd:.2f}/month",
                    costs.to_dict(),
                    Severity.INFO,
                    [op.title for op in costs.opportunities],
                )
            )

        for trend in self.analyze_trends(30):
            if trend.trend != TrendDirection.DEGRADING:
                continue
            insights.append(
                _insight(
                    now,
                    f"perf-{trend.metric}-{stamp}",
                    InsightType.PERFORMANCE,
                    f"Performance Degradation: {trend.metric}",
                    trend.analysis,
                    trend.to_dict(),
                    Severity.MEDIUM,
                    trend.recommendations,
                )
            )

        logger.info(
            "Insights generated",
            insights=len(insights),
            elapsed_sec=round(time.time() - start_time, 2),
        )
        return insights


def _insight(now, insight_id, insight_type, title, summary, details, severity, actions) -> Insight:
    return Insight(
        id=insight_id,
        type=insight_type,
        title=title,
        summary=summary,
        details=json.dumps(details, indent=2),
        severity=severity,
        actionable=bool(actions),
        actions=list(actions),
        generated_at=now.isoformat(),
        expires_at=(now + INSIGHT_TTL[insight_type]).isoformat(),
    )
