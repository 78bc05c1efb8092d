"""
PostgreSQL (TimescaleDB) implementation of the sample store.

Handles:
- Querying collected telemetry by metric family, entity and time range
- Daily aggregation with time_bucket
- Appending disk failure predictions to the audit table
"""

import json
from datetime import datetime, timezone
from typing import Any

import pandas as pd
import psycopg2
import structlog

from src.core.database import PostgresConnection

from .config import InsightsConfig
from .models import DiskFailurePrediction, Sample
from .store import (
    CONTAINER_COLUMNS,
    DAILY_COLUMNS,
    SAMPLE_COLUMNS,
    SMART_COLUMNS,
    SYSTEM_ENTITY,
    SampleStore,
    StoreUnavailableError,
    check_aggregate,
    get_family,
)

logger = structlog.get_logger(__name__)

SQL_AGGREGATES = {"avg": "AVG", "sum": "SUM", "min": "MIN", "max": "MAX"}


class PostgresSampleStore(PostgresConnection, SampleStore):
    """Sample store backed by the telemetry tables of the collector database"""

    def __init__(self, config: InsightsConfig):
        super().__init__(
            host=config.postgres_host,
            port=config.postgres_port,
            database=config.postgres_database,
            user=config.postgres_user,
            password=config.postgres_password,
        )
        self.config = config

    def _frame(self, query: str, params: dict[str, Any], what: str) -> pd.DataFrame:
        """Run a read query, turning driver failures into StoreUnavailableError"""
        try:
            frame = self.fetch_frame(query, params)
        except psycopg2.Error as e:
            logger.error("Store query failed", query_name=what, error=str(e))
            raise StoreUnavailableError(f"Failed to query {what}: {e}") from e
        logger.debug("Store query", query_name=what, rows=len(frame))
        return frame

    @staticmethod
    def _filters(column: str, entity_column: str | None, entity_key, since) -> tuple[str, dict]:
        clauses = [f"{column} IS NOT NULL"]
        params: dict[str, Any] = {}
        if since is not None:
            clauses.append("timestamp > %(since)s")
            params["since"] = _utc(since)
        if entity_key is not None and entity_column:
            clauses.append(f"{entity_column} = %(entity_key)s")
            params["entity_key"] = entity_key
        return " AND ".join(clauses), params

    def query(
        self, family: str, entity_key: str | None = None, since: datetime | None = None
    ) -> pd.DataFrame:
        source = get_family(family)
        entity = source.entity_column or f"'{SYSTEM_ENTITY}'"
        where, params = self._filters(source.column, source.entity_column, entity_key, since)

        query = f"""
            SELECT timestamp, {entity} AS entity_key, {source.column} AS value
            FROM {source.table}
            WHERE {where}
            ORDER BY timestamp ASC
        """
        frame = self._frame(query, params, family)
        if frame.empty:
            return pd.DataFrame(columns=SAMPLE_COLUMNS)
        frame["value"] = frame["value"].astype(float)
        return frame[SAMPLE_COLUMNS]

    def query_latest(self, family: str, entity_key: str | None = None) -> Sample | None:
        source = get_family(family)
        entity = source.entity_column or f"'{SYSTEM_ENTITY}'"
        where, params = self._filters(source.column, source.entity_column, entity_key, None)

        query = f"""
            SELECT timestamp, {entity} AS entity_key, {source.column} AS value
            FROM {source.table}
            WHERE {where}
            ORDER BY timestamp DESC
            LIMIT 1
        """
        frame = self._frame(query, params, f"latest {family}")
        if frame.empty:
            return None
        row = frame.iloc[0]
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
        check_aggregate(aggregate)
        source = get_family(family)
        entity = source.entity_column or f"'{SYSTEM_ENTITY}'"
        where, params = self._filters(source.column, source.entity_column, entity_key, since)

        if aggregate == "sum":
            query = f"""
                SELECT day, SUM(entity_value) AS value
                FROM (
                    SELECT
                        time_bucket('1 day', timestamp) AS day,
                        {entity} AS entity_key,
                        AVG({source.column}) AS entity_value
                    FROM {source.table}
                    WHERE {where}
                    GROUP BY day, entity_key
                ) per_entity
                GROUP BY day
                ORDER BY day
            """
        else:
            query = f"""
                SELECT
                    time_bucket('1 day', timestamp) AS day,
                    {SQL_AGGREGATES[aggregate]}({source.column}) AS value
                FROM {source.table}
                WHERE {where}
                GROUP BY day
                ORDER BY day
            """

        frame = self._frame(query, params, f"daily {aggregate} {family}")
        if frame.empty:
            return pd.DataFrame(columns=DAILY_COLUMNS)
        frame["value"] = frame["value"].astype(float)
        return frame[DAILY_COLUMNS]

    def query_smart_history(
        self, disk_name: str | None = None, since: datetime | None = None
    ) -> pd.DataFrame:
        clauses = ["TRUE"]
        params: dict[str, Any] = {}
        if disk_name is not None:
            clauses.append("disk_name = %(disk_name)s")
            params["disk_name"] = disk_name
        if since is not None:
            clauses.append("timestamp >= %(since)s")
            params["since"] = _utc(since)

        query = f"""
            SELECT {", ".join(SMART_COLUMNS)}
            FROM smart_metrics
            WHERE {" AND ".join(clauses)}
            ORDER BY timestamp ASC
        """
        frame = self._frame(query, params, "smart history")
        return frame if not frame.empty else pd.DataFrame(columns=SMART_COLUMNS)

    def list_disks(self, since: datetime | None = None) -> list[str]:
        params: dict[str, Any] = {}
        where = ""
        if since is not None:
            where = "WHERE timestamp >= %(since)s"
            params["since"] = _utc(since)
        query = f"SELECT DISTINCT disk_name FROM smart_metrics {where} ORDER BY disk_name"
        frame = self._frame(query, params, "disk names")
        return frame["disk_name"].tolist() if not frame.empty else []

    def query_containers(self, since: datetime | None = None) -> pd.DataFrame:
        params: dict[str, Any] = {}
        where = ""
        if since is not None:
            where = "WHERE timestamp > %(since)s"
            params["since"] = _utc(since)
        query = f"""
            SELECT {", ".join(CONTAINER_COLUMNS)}
            FROM container_metrics
            {where}
            ORDER BY timestamp ASC
        """
        frame = self._frame(query, params, "container metrics")
        return frame if not frame.empty else pd.DataFrame(columns=CONTAINER_COLUMNS)

    def count_snapshots(self) -> int:
        try:
            count = self.fetch_scalar("SELECT COUNT(*) FROM snapshots")
        except psycopg2.Error as e:
            logger.error("Failed to count snapshots", error=str(e))
            raise StoreUnavailableError(f"Failed to count snapshots: {e}") from e
        return int(count or 0)

    # ========================================
    # Disk prediction audit log
    # ========================================

    def append_disk_prediction(self, prediction: DiskFailurePrediction) -> None:
        query = """
            INSERT INTO disk_predictions (
                disk_name, predicted_at, failure_probability, days_until_failure,
                confidence, contributing_factors, recommended_action
            ) VALUES (
                %(disk_name)s, %(predicted_at)s, %(failure_probability)s, %(days_until_failure)s,
                %(confidence)s, %(contributing_factors)s, %(recommended_action)s
            )
        """
        row = prediction.to_dict()
        row["contributing_factors"] = json.dumps(prediction.contributing_factors)

        try:
            self.execute(query, row)
        except psycopg2.Error as e:
            logger.error(
                "Failed to store disk prediction", disk_name=prediction.disk_name, error=str(e)
            )
            raise StoreUnavailableError(f"Failed to store disk prediction: {e}") from e

        logger.info(
            "Stored disk prediction",
            disk_name=prediction.disk_name,
            failure_probability=round(prediction.failure_probability, 1),
        )

    def latest_disk_predictions(self) -> list[DiskFailurePrediction]:
        query = """
            SELECT * FROM (
                SELECT DISTINCT ON (disk_name)
                    disk_name, predicted_at, failure_probability, days_until_failure,
                    confidence, contributing_factors, recommended_action
                FROM disk_predictions
                ORDER BY disk_name, id DESC
            ) latest
            ORDER BY failure_probability DESC
        """
        frame = self._frame(query, {}, "latest disk predictions")
        predictions = []
        for row in frame.to_dict("records"):
            factors = row["contributing_factors"]
            if isinstance(factors, str):
                factors = json.loads(factors)
            row["contributing_factors"] = factors
            row["predicted_at"] = _iso(row["predicted_at"])
            if pd.isna(row["days_until_failure"]):
                row["days_until_failure"] = None
            predictions.append(DiskFailurePrediction.from_dict(row))
        return predictions

    def ensure_prediction_table_exists(self):
        """Create disk_predictions table if it doesn't exist"""
        query = """
            CREATE TABLE IF NOT EXISTS disk_predictions (
                id SERIAL PRIMARY KEY,
                disk_name VARCHAR(100) NOT NULL,
                predicted_at TIMESTAMPTZ NOT NULL,
                failure_probability DOUBLE PRECISION NOT NULL,
                days_until_failure INTEGER,
                confidence DOUBLE PRECISION NOT NULL,
                contributing_factors JSONB NOT NULL,
                recommended_action TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_disk_predictions_lookup
            ON disk_predictions(disk_name, predicted_at DESC);
        """
        self.execute(query)
        logger.info("Ensured disk_predictions table exists")


def _iso(value) -> str:
    """Normalize a timestamp read back from the database to a UTC ISO string"""
    if isinstance(value, str):
        return value
    return pd.Timestamp(value).to_pydatetime().astimezone(timezone.utc).isoformat()


def _utc(moment: datetime) -> datetime:
    """Attach UTC to naive datetimes so the server session timezone is never applied"""
    return moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment
