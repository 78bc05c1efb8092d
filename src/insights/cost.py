"""
Power/cost model of the host and optimization opportunities.
"""

from datetime import datetime, timedelta, timezone

import structlog

from .config import CostModel
from .models import CostOpportunity, CostOptimization, SystemState
from .statistics import mean
from .store import SampleStore

logger = structlog.get_logger(__name__)

BYTES_PER_TB = 1024**4


class CostOptimizer:
    """Estimates running cost and lists independent optimization opportunities"""

    def __init__(self, store: SampleStore, model: CostModel | None = None):
        self.store = store
        self.model = model or CostModel()

    def generate_optimizations(self) -> CostOptimization:
        """Build the current power/cost estimate and evaluate every rule

        Each rule is evaluated on its own; total savings is a plain sum.
        """
        now = datetime.now(timezone.utc)
        state = self.current_state(now)

        opportunities = []
        for rule in (self._storage_rules, self._compute_rules, self._power_rules):
            opportunities.extend(rule(state, now))

        total = round(sum(op.potential_savings_usd for op in opportunities), 2)
        logger.info(
            "Cost optimizations generated",
            opportunities=len(opportunities),
            total_potential_savings_usd=total,
        )
        return CostOptimization(
            current_state=state,
            opportunities=opportunities,
            total_potential_savings_usd=total,
        )

    def current_state(self, now: datetime | None = None) -> SystemState:
        """Best-effort snapshot of storage, containers and power draw over the last hour"""
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(hours=1)

        pools = self.store.query("pool_total_bytes", since=since)
        total_bytes = 0.0
        if not pools.empty:
            total_bytes = float(pools.groupby("entity_key")["value"].last().sum())
        total_storage_tb = total_bytes / BYTES_PER_TB

        containers = self.store.query_containers(since)
        active = 0
        if not containers.empty:
            running = containers[containers["state"] == "running"]
            active = int(running["container_id"].nunique())

        m = self.model
        watts = (
            m.cpu_watts
            + m.ram_watts
            + total_storage_tb * m.disks_per_tb * m.watts_per_disk
            + active * m.watts_per_container
        )
        monthly_cost = watts * 24 * 30 * m.price_per_kwh_usd / 1000

        return SystemState(
            total_storage_tb=total_storage_tb,
            active_containers=active,
            estimated_power_watts=round(watts),
            estimated_monthly_cost_usd=round(monthly_cost, 2),
        )

    def _storage_rules(self, state: SystemState, now: datetime) -> list[CostOpportunity]:
        snapshot_count = self.store.count_snapshots()
        if snapshot_count <= self.model.snapshot_excess_count:
            return []

        return [
            CostOpportunity(
                category="storage",
                title="Reduce snapshot retention",
                description=(
                    f"You have {snapshot_count} snapshots. "
                    "Consider implementing automated snapshot cleanup."
                ),
                potential_savings_usd=0.0,  # disks are already paid for
                difficulty="easy",
                implementation_steps=[
                    "Review snapshot policy in TrueNAS",
                    "Delete snapshots older than 30 days",
                    "Set up automated snapshot rotation",
                ],
            )
        ]

    def _compute_rules(self, state: SystemState, now: datetime) -> list[CostOpportunity]:
        containers = self.store.query_containers(now - timedelta(hours=24))
        if containers.empty:
            return []

        running = containers[containers["state"] == "running"]
        idle = 0
        for _, samples in running.groupby("container_id"):
            cpu = samples["cpu_percent"].astype(float)
            if len(cpu) > self.model.idle_min_samples and (cpu < self.model.idle_cpu_percent).all():
                idle += 1

        if idle <= self.model.idle_container_count:
            return []

        return [
            CostOpportunity(
                category="compute",
                title="Stop idle containers",
                description=f"{idle} containers have been idle for 24+ hours.",
                potential_savings_usd=round(idle * self.model.idle_container_savings_usd, 2),
                difficulty="easy",
                implementation_steps=[
                    "Review idle containers with docker ps",
                    "Stop non-essential containers",
                    "Consider using container orchestration with auto-scaling",
                ],
            )
        ]

    def _power_rules(self, state: SystemState, now: datetime) -> list[CostOpportunity]:
        window = self.store.query("cpu_percent", since=now - timedelta(days=7))
        average = mean(window["value"]) if not window.empty else None
        if average is None or average >= self.model.low_cpu_percent:
            return []

        return [
            CostOpportunity(
                category="power",
                title="Enable CPU power saving features",
                description=(
                    f"Average CPU usage is only {average:.1f}%. Enable power saving modes."
                ),
                potential_savings_usd=round(
                    state.estimated_monthly_cost_usd * self.model.power_saving_fraction, 2
                ),
                difficulty="medium",
                implementation_steps=[
                    "Enable Intel SpeedStep in BIOS",
                    'Set CPU governor to "powersave" for non-critical workloads',
                    "Consider consolidating workloads to fewer cores",
                ],
            )
        ]
