"""
Homelab Insights Engine

Turns collected host telemetry (system load, pool capacity, SMART attributes,
container activity) into actionable signals.

Architecture:
- Statistical kernel: pure functions (stddev, least-squares growth rate, severity ordering)
- Analyzers: anomalies, capacity forecasts, disk failure risk, performance trends, cost
- Facade: InsightsService, the only entry point for callers
- Stores: PostgreSQL/TimescaleDB for production, pandas DataFrames in-process

Usage:
    # Run one analysis against the database and print JSON
    python -m src.insights.analyze anomalies
    python -m src.insights.analyze disk --disk sda
"""

from .config import InsightsConfig
from .models import (
    Anomaly,
    CapacityPrediction,
    CostOptimization,
    DiskFailurePrediction,
    Insight,
    PerformanceTrend,
)
from .service import InsightsService
from .store import DataFrameSampleStore, SampleStore, StoreUnavailableError

__all__ = [
    "InsightsService",
    "InsightsConfig",
    "SampleStore",
    "DataFrameSampleStore",
    "StoreUnavailableError",
    "Anomaly",
    "CapacityPrediction",
    "DiskFailurePrediction",
    "PerformanceTrend",
    "CostOptimization",
    "Insight",
]
