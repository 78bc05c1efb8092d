"""
Generic PostgreSQL connection management.
Shared by the sample store and the prediction audit log.
"""

from contextlib import contextmanager
from typing import Any

import pandas as pd
import psycopg2
import structlog

logger = structlog.get_logger(__name__)


class PostgresConnection:
    """Base class for PostgreSQL connection management"""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        connect_timeout: int = 10,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.connect_timeout = connect_timeout
        self.connection = None
        self._connect()

    def _connect(self):
        """Establish connection to PostgreSQL"""
        try:
            self.connection = psycopg2.connect(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                connect_timeout=self.connect_timeout,
            )
            logger.info(
                "PostgreSQL connection established",
                host=self.host,
                database=self.database,
            )
        except Exception as e:
            logger.error("Failed to connect to PostgreSQL", error=str(e))
            raise

    @contextmanager
    def get_cursor(self):
        """Context manager for database cursor with automatic commit/rollback"""
        cursor = self.connection.cursor()
        try:
            yield cursor
            self.connection.commit()
        except Exception as e:
            self.connection.rollback()
            logger.error("Database operation failed", error=str(e))
            raise
        finally:
            cursor.close()

    def execute(self, query: str, params: dict[str, Any] | tuple | None = None) -> None:
        """Execute a statement, letting any database error propagate"""
        with self.get_cursor() as cursor:
            cursor.execute(query, params or {})

    def fetch_frame(
        self, query: str, params: dict[str, Any] | tuple | None = None
    ) -> pd.DataFrame:
        """Run a query and return its rows as a DataFrame named after the result columns"""
        with self.get_cursor() as cursor:
            cursor.execute(query, params or {})
            columns = [desc[0] for desc in cursor.description]
            rows = cursor.fetchall()
        return pd.DataFrame(rows, columns=columns)

    def fetch_scalar(self, query: str, params: dict[str, Any] | tuple | None = None) -> Any:
        """Run a query and return the first column of the first row (None if no rows)"""
        with self.get_cursor() as cursor:
            cursor.execute(query, params or {})
            row = cursor.fetchone()
        return row[0] if row else None

    def check_health(self) -> bool:
        """Check if database connection is healthy"""
        try:
            with self.get_cursor() as cursor:
                cursor.execute("SELECT 1")
                return cursor.fetchone()[0] == 1
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    def close(self):
        """Close database connection"""
        if self.connection:
            self.connection.close()
            logger.info("PostgreSQL connection closed")
