"""
Result records produced by the insights engine.

All records are plain dataclasses without behavior beyond serialization, so a
transport layer can JSON-encode ``record.to_dict()`` directly.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum


class Severity(str, Enum):
    """Severity levels, lowest first"""

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AnomalyKind(str, Enum):
    """Shape of an anomaly"""

    SPIKE = "spike"
    DROP = "drop"
    TREND = "trend"
    PATTERN = "pattern"


class TrendDirection(str, Enum):
    """Classification of a multi-week performance trend"""

    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"
    VOLATILE = "volatile"


class InsightType(str, Enum):
    ANOMALY = "anomaly"
    CAPACITY = "capacity"
    COST = "cost"
    PERFORMANCE = "performance"
    GENERAL = "general"


def _plain(value):
    """Recursively replace enums with their values"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


class Record:
    """Mixin giving dataclass records a JSON-ready ``to_dict``"""

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass(frozen=True)
class Sample(Record):
    """A single timestamped reading of a metric family for one entity"""

    timestamp: datetime
    family: str
    entity_key: str
    value: float

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class Anomaly(Record):
    metric: str
    kind: AnomalyKind
    severity: Severity
    current_value: float
    expected_value: float
    deviation_percent: float
    description: str
    recommendation: str


@dataclass
class CapacityPrediction(Record):
    resource: str
    current_usage: float
    current_usage_percent: float
    growth_rate_per_day: float
    predicted_full_date: str | None
    days_until_full: int | None
    confidence: float
    recommendations: list[str] = field(default_factory=list)
    trend_analysis: str = ""


@dataclass
class DiskFailurePrediction(Record):
    """Failure-risk estimate for one disk, persisted as an audit row"""

    disk_name: str
    failure_probability: float
    days_until_failure: int | None
    confidence: float
    contributing_factors: list[str]
    recommended_action: str
    predicted_at: str

    @classmethod
    def from_dict(cls, data: dict) -> "DiskFailurePrediction":
        """Create from dictionary"""
        return cls(
            disk_name=data["disk_name"],
            failure_probability=float(data["failure_probability"]),
            days_until_failure=(
                int(data["days_until_failure"])
                if data.get("days_until_failure") is not None
                else None
            ),
            confidence=float(data["confidence"]),
            contributing_factors=list(data["contributing_factors"]),
            recommended_action=data["recommended_action"],
            predicted_at=data["predicted_at"],
        )


@dataclass
class PerformanceTrend(Record):
    metric: str
    period_days: int
    trend: TrendDirection
    average_value: float
    min_value: float
    max_value: float
    std_deviation: float
    variance: float
    change_percent: float
    analysis: str
    recommendations: list[str] = field(default_factory=list)


@dataclass
class SystemState(Record):
    """Snapshot of the host used by the power model"""

    total_storage_tb: float
    active_containers: int
    estimated_power_watts: int
    estimated_monthly_cost_usd: float


@dataclass
class CostOpportunity(Record):
    category: str  # storage, compute, power, network
    title: str
    description: str
    potential_savings_usd: float
    difficulty: str  # easy, medium, hard
    implementation_steps: list[str] = field(default_factory=list)


@dataclass
class CostOptimization(Record):
    current_state: SystemState
    opportunities: list[CostOpportunity]
    total_potential_savings_usd: float


@dataclass
class Insight(Record):
    """A single actionable roll-up of one analyzer's output"""

    id: str
    type: InsightType
    title: str
    summary: str
    details: str
    severity: Severity
    actionable: bool
    actions: list[str]
    generated_at: str
    expires_at: str | None
