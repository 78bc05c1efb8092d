"""
Sample store interface consumed by the analyzers.

The store is an opaque, append-only time-series source. Analyzers only ever
talk to the ``SampleStore`` interface; ``DataFrameSampleStore`` keeps the
tables in memory as pandas DataFrames (embedding, offline exports, tests) and
``src.insights.database.PostgresSampleStore`` reads the live database.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

import pandas as pd
import structlog

from .models import DiskFailurePrediction, Sample

logger = structlog.get_logger(__name__)

SYSTEM_ENTITY = "system"
AGGREGATES = ("avg", "sum", "min", "max")

SAMPLE_COLUMNS = ["timestamp", "entity_key", "value"]
DAILY_COLUMNS = ["day", "value"]
SMART_COLUMNS = [
    "timestamp",
    "disk_name",
    "temperature",
    "power_on_hours",
    "reallocated_sectors",
    "pending_sectors",
    "health_status",
]
CONTAINER_COLUMNS = ["timestamp", "container_id", "state", "cpu_percent"]

TABLE_COLUMNS = {
    "system_metrics": ["timestamp", "cpu_percent", "memory_percent", "memory_used_gb"],
    "pool_metrics": ["timestamp", "pool_name", "used_bytes", "total_bytes", "percent_used"],
    "smart_metrics": SMART_COLUMNS,
    "container_metrics": CONTAINER_COLUMNS,
    "snapshots": ["created_at", "pool_name", "snapshot_name"],
}


class StoreUnavailableError(RuntimeError):
    """The underlying store could not answer a query"""


@dataclass(frozen=True)
class MetricFamily:
    """Where the samples of one metric family live"""

    name: str
    table: str
    column: str
    entity_column: str | None = None  # None means the single "system" entity


FAMILIES = {
    family.name: family
    for family in [
        MetricFamily("cpu_percent", "system_metrics", "cpu_percent"),
        MetricFamily("memory_percent", "system_metrics", "memory_percent"),
        MetricFamily("memory_used_gb", "system_metrics", "memory_used_gb"),
        MetricFamily("pool_used_bytes", "pool_metrics", "used_bytes", "pool_name"),
        MetricFamily("pool_total_bytes", "pool_metrics", "total_bytes", "pool_name"),
        MetricFamily("pool_percent_used", "pool_metrics", "percent_used", "pool_name"),
        MetricFamily("disk_temperature", "smart_metrics", "temperature", "disk_name"),
        MetricFamily("disk_power_on_hours", "smart_metrics", "power_on_hours", "disk_name"),
        MetricFamily(
            "disk_reallocated_sectors", "smart_metrics", "reallocated_sectors", "disk_name"
        ),
        MetricFamily("disk_pending_sectors", "smart_metrics", "pending_sectors", "disk_name"),
        MetricFamily(
            "container_cpu_percent", "container_metrics", "cpu_percent", "container_id"
        ),
    ]
}


def get_family(name: str) -> MetricFamily:
    """Look up a metric family

    Raises:
        ValueError: If the family is not registered
    """
    if name not in FAMILIES:
        available = ", ".join(sorted(FAMILIES))
        raise ValueError(f"Unknown metric family '{name}'. Available families: {available}")
    return FAMILIES[name]


def check_aggregate(aggregate: str) -> None:
    if aggregate not in AGGREGATES:
        raise ValueError(f"Unknown aggregate '{aggregate}'. Use one of: {', '.join(AGGREGATES)}")


class SampleStore(ABC):
    """Read interface over the collected telemetry plus the disk prediction audit log"""

    @abstractmethod
    def query(
        self, family: str, entity_key: str | None = None, since: datetime | None = None
    ) -> pd.DataFrame:
        """Samples of a family newer than ``since``

        Returns:
            DataFrame with columns ['timestamp', 'entity_key', 'value'],
            ascending by timestamp, without null values
        """

    @abstractmethod
    def query_smart_history(
        self, disk_name: str | None = None, since: datetime | None = None
    ) -> pd.DataFrame:
        """Full SMART rows (one per collection) for one disk or all disks, ascending"""

    @abstractmethod
    def query_containers(self, since: datetime | None = None) -> pd.DataFrame:
        """Container activity rows with columns ['timestamp', 'container_id', 'state', 'cpu_percent']"""

    @abstractmethod
    def count_snapshots(self) -> int:
        """Number of storage snapshots currently tracked"""

    @abstractmethod
    def append_disk_prediction(self, prediction: DiskFailurePrediction) -> None:
        """Append a prediction to the audit log (never updates or deletes)"""

    @abstractmethod
    def latest_disk_predictions(self) -> list[DiskFailurePrediction]:
        """Most recent audit row per disk, highest failure probability first"""

    def query_latest(self, family: str, entity_key: str | None = None) -> Sample | None:
        """Most recent sample of a family, or None if the family has no data"""
        frame = self.query(family, entity_key)
        if frame.empty:
            return None
        row = frame.iloc[-1]
        return Sample(
            timestamp=pd.Timestamp(row["timestamp"]).to_pydatetime(),
            family=family,
            entity_key=str(row["entity_key"]),
            value=float(row["value"]),
        )

    def query_daily_aggregate(
        self,
        family: str,
        entity_key: str | None = None,
        aggregate: str = "avg",
        since: datetime | None = None,
    ) -> pd.DataFrame:
        """One value per calendar day (UTC), ascending

        ``sum`` adds up each entity's daily mean, so pools sampled several
        times a day are not counted more than once.

        Returns:
            DataFrame with columns ['day', 'value']
        """
        check_aggregate(aggregate)
        frame = self.query(family, entity_key, since)
        if frame.empty:
            return pd.DataFrame(columns=DAILY_COLUMNS)

        frame = frame.assign(day=pd.to_datetime(frame["timestamp"], utc=True).dt.floor("D"))
        if aggregate == "sum":
            per_entity = frame.groupby(["day", "entity_key"])["value"].mean()
            daily = per_entity.groupby(level="day").sum()
        else:
            how = {"avg": "mean", "min": "min", "max": "max"}[aggregate]
            daily = frame.groupby("day")["value"].agg(how)

        return daily.sort_index().reset_index().rename(columns={"index": "day"})[DAILY_COLUMNS]

    def list_disks(self, since: datetime | None = None) -> list[str]:
        """Names of every disk with SMART data"""
        history = self.query_smart_history(None, since)
        if history.empty:
            return []
        return sorted(history["disk_name"].dropna().unique().tolist())


def _utc(moment: datetime) -> pd.Timestamp:
    """Timestamp in UTC; naive datetimes are taken to be UTC already"""
    stamp = pd.Timestamp(moment)
    return stamp.tz_localize("UTC") if stamp.tzinfo is None else stamp.tz_convert("UTC")


def _to_frame(rows: pd.DataFrame | list[dict], columns: list[str]) -> pd.DataFrame:
    frame = rows.copy() if isinstance(rows, pd.DataFrame) else pd.DataFrame(rows)
    frame = frame.reindex(columns=columns)
    time_column = columns[0]
    frame[time_column] = pd.to_datetime(frame[time_column], utc=True)
    return frame


class DataFrameSampleStore(SampleStore):
    """Sample store holding each table as an in-memory DataFrame"""

    def __init__(self, tables: dict[str, pd.DataFrame | list[dict]] | None = None):
        self.tables: dict[str, pd.DataFrame] = {
            name: _to_frame([], columns) for name, columns in TABLE_COLUMNS.items()
        }
        self.predictions: list[dict] = []
        for name, rows in (tables or {}).items():
            self.load(name, rows)

    def load(self, table: str, rows: pd.DataFrame | list[dict]) -> None:
        """Append rows to a table"""
        if table not in TABLE_COLUMNS:
            raise ValueError(f"Unknown table '{table}'")
        new = _to_frame(rows, TABLE_COLUMNS[table])
        if new.empty:
            return
        current = self.tables[table]
        self.tables[table] = new if current.empty else pd.concat([current, new], ignore_index=True)
        logger.debug("Rows loaded", table=table, rows=len(new))

    def query(
        self, family: str, entity_key: str | None = None, since: datetime | None = None
    ) -> pd.DataFrame:
        source = get_family(family)
        table = self.tables[source.table]

        mask = table[source.column].notna()
        if since is not None:
            mask &= table["timestamp"] > _utc(since)
        if entity_key is not None and source.entity_column:
            mask &= table[source.entity_column] == entity_key

        selected = table[mask]
        entities = selected[source.entity_column] if source.entity_column else SYSTEM_ENTITY
        frame = pd.DataFrame(
            {
                "timestamp": selected["timestamp"],
                "entity_key": entities,
                "value": selected[source.column].astype(float),
            },
            columns=SAMPLE_COLUMNS,
        )
        return frame.sort_values("timestamp", kind="stable").reset_index(drop=True)

    def query_smart_history(
        self, disk_name: str | None = None, since: datetime | None = None
    ) -> pd.DataFrame:
        table = self.tables["smart_metrics"]
        mask = pd.Series(True, index=table.index)
        if disk_name is not None:
            mask &= table["disk_name"] == disk_name
        if since is not None:
            mask &= table["timestamp"] >= _utc(since)
        return table[mask].sort_values("timestamp", kind="stable").reset_index(drop=True)

    def query_containers(self, since: datetime | None = None) -> pd.DataFrame:
        table = self.tables["container_metrics"]
        if since is not None:
            table = table[table["timestamp"] > _utc(since)]
        return table.sort_values("timestamp", kind="stable").reset_index(drop=True)

    def count_snapshots(self) -> int:
        return len(self.tables["snapshots"])

    def append_disk_prediction(self, prediction: DiskFailurePrediction) -> None:
        self.predictions.append(prediction.to_dict())
        logger.debug("Disk prediction appended", disk_name=prediction.disk_name)

    def latest_disk_predictions(self) -> list[DiskFailurePrediction]:
        latest: dict[str, dict] = {}
        for row in self.predictions:
            latest[row["disk_name"]] = row
        predictions = [DiskFailurePrediction.from_dict(row) for row in latest.values()]
        return sorted(predictions, key=lambda p: p.failure_probability, reverse=True)
