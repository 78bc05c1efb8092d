"""
Configuration and policy thresholds for the insights engine.

Every threshold used by the analyzers lives here so it can be recalibrated
without touching the algorithms.
"""

import os
from dataclasses import dataclass, field


@dataclass
class AnomalyPolicy:
    """Thresholds for point-in-time anomaly detection"""

    z_score_threshold: float = 2.0
    z_score_high: float = 3.0
    memory_high_percent: float = 90.0
    memory_critical_percent: float = 95.0
    pool_high_percent: float = 85.0
    pool_critical_percent: float = 95.0
    pool_target_percent: float = 75.0  # design target, not a historical mean
    disk_reallocated_threshold: int = 10
    disk_pending_threshold: int = 5
    disk_temperature_threshold: float = 55.0
    disk_reallocated_critical: int = 50
    disk_pending_critical: int = 20


@dataclass
class CapacityPolicy:
    """Linear capacity forecasting settings"""

    history_days: int = 30
    min_daily_points: int = 7
    high_confidence_points: int = 30
    storage_confidence_high: float = 0.9
    storage_confidence_low: float = 0.7
    memory_confidence: float = 0.6
    warning_horizon_days: int = 90


@dataclass
class DiskRiskPolicy:
    """Weights of the SMART failure-risk rules.

    The qualitative ordering FAILED > reallocated > pending > temperature > age
    must hold for any recalibration.
    """

    history_days: int = 30
    min_samples: int = 2
    full_confidence_samples: int = 30

    reallocated_base: float = 40.0
    reallocated_magnitude_max: float = 10.0
    reallocated_magnitude_scale: float = 10.0  # sectors per risk point
    reallocated_slope_max: float = 10.0
    reallocated_slope_weight: float = 2.0  # risk points per sector/sample
    critical_reallocated_sectors: int = 100

    pending_base: float = 30.0
    pending_magnitude_max: float = 10.0

    temperature_threshold: float = 55.0
    temperature_risk: float = 15.0
    temperature_rise_rate: float = 0.5  # degrees per sample
    temperature_rise_risk: float = 10.0

    age_threshold_years: float = 4.0
    age_base_risk: float = 5.0
    age_risk_per_year: float = 2.5
    age_risk_max: float = 15.0
    hours_per_year: int = 8760

    failed_risk: float = 50.0
    failed_floor: float = 70.0
    failed_max_days: int = 30

    critical_probability: float = 70.0
    medium_probability: float = 40.0
    watch_probability: float = 20.0


@dataclass
class TrendPolicy:
    """Week-over-week classification settings"""

    default_period_days: int = 30
    comparison_window_days: int = 7
    volatility_ratio: float = 0.5
    change_threshold_percent: float = 20.0
    utilization_degrading_percent: float = 80.0
    disk_temperature_warning: float = 45.0


@dataclass
class CostModel:
    """Rough power and cost model of a single home server"""

    cpu_watts: float = 65.0
    ram_watts: float = 20.0
    disks_per_tb: float = 3.0
    watts_per_disk: float = 5.0
    watts_per_container: float = 2.0
    price_per_kwh_usd: float = 0.12

    snapshot_excess_count: int = 50
    idle_cpu_percent: float = 1.0
    idle_min_samples: int = 20
    idle_container_count: int = 3
    idle_container_savings_usd: float = 0.5
    low_cpu_percent: float = 20.0
    power_saving_fraction: float = 0.15


@dataclass
class InsightsConfig:
    """Configuration for the insights engine"""

    # PostgreSQL settings
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_database: str = "homelab_db"
    postgres_user: str = "homelab"
    postgres_password: str = "homelab_password"

    anomaly: AnomalyPolicy = field(default_factory=AnomalyPolicy)
    capacity: CapacityPolicy = field(default_factory=CapacityPolicy)
    disk: DiskRiskPolicy = field(default_factory=DiskRiskPolicy)
    trend: TrendPolicy = field(default_factory=TrendPolicy)
    cost: CostModel = field(default_factory=CostModel)

    @classmethod
    def from_env(cls) -> "InsightsConfig":
        """Build a configuration from POSTGRES_* environment variables"""
        return cls(
            postgres_host=os.getenv("POSTGRES_HOST", "localhost"),
            postgres_port=int(os.getenv("POSTGRES_PORT", "5432")),
            postgres_database=os.getenv("POSTGRES_DB", "homelab_db"),
            postgres_user=os.getenv("POSTGRES_USER", "homelab"),
            postgres_password=os.getenv("POSTGRES_PASSWORD", "homelab_password"),
        )
