"""
PostgreSQL Connection Helper

Holds the single connection a sync run uses and provides context management
for cursors and transactions. Handles connection lifecycle and error handling.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

import psycopg2
from psycopg2 import OperationalError

from etl.errors import ConnectivityError

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


class DatabaseConnection:
    """
    Manages one PostgreSQL connection for the duration of a run.

    Every cursor context ends its transaction: commit on success,
    rollback on error.
    """

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
        self._password = password
        self.connect_timeout = connect_timeout
        self._conn = None

    @classmethod
    def from_settings(cls, settings) -> "DatabaseConnection":
        return cls(
            host=settings.DB_HOST,
            port=settings.DB_PORT,
            database=settings.DB_NAME,
            user=settings.DB_USER,
            password=settings.DB_PASSWORD,
            connect_timeout=settings.DB_CONNECT_TIMEOUT,
        )

    def open(self) -> None:
        """
        Open the connection.

        Raises:
            ConnectivityError: If the server cannot be reached or rejects the login
        """
        if self._conn is not None:
            return
        try:
            self._conn = psycopg2.connect(
                host=self.host,
                port=self.port,
                dbname=self.database,
                user=self.user,
                password=self._password,
                connect_timeout=self.connect_timeout,
            )
            logger.info(f"Connected to database {self.database} on {self.host}:{self.port}")
        except OperationalError as e:
            logger.error(f"Failed to connect to database: {e}")
            raise ConnectivityError(f"Cannot connect to {self.host}:{self.port}/{self.database}: {e}") from e

    def close(self) -> None:
        """Close the connection if it is open."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Database connection closed")

    def __enter__(self) -> "DatabaseConnection":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def connection(self):
        if self._conn is None:
            raise ConnectivityError("Database connection not open. Call open() first.")
        return self._conn

    @contextmanager
    def get_cursor(self, commit: bool = True) -> Iterator:
        """
        Context manager to get a cursor for direct SQL execution.

        Args:
            commit: Commit on success; otherwise the transaction is rolled back

        Yields:
            psycopg2 cursor object

        Example:
            with connection.get_cursor(commit=False) as cursor:
                cursor.execute("SELECT id, name FROM state")
                results = cursor.fetchall()
        """
        conn = self.connection
        cursor = conn.cursor()
        try:
            yield cursor
            if commit:
                conn.commit()
                logger.debug("Transaction committed successfully")
            else:
                conn.rollback()
        except Exception as e:
            conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            cursor.close()

    @contextmanager
    def transaction(self, serializable: bool = False) -> Iterator:
        """
        Context manager for one atomic unit of work.

        Args:
            serializable: Run the transaction at SERIALIZABLE isolation

        Yields:
            psycopg2 cursor object
        """
        with self.get_cursor(commit=True) as cursor:
            if serializable:
                cursor.execute("SET TRANSACTION ISOLATION LEVEL SERIALIZABLE;")
            yield cursor

    def execute_query(self, query: str, params: Optional[Sequence] = None) -> list:
        """
        Execute a SELECT query and return results.

        Args:
            query: SQL query string
            params: Query parameters (optional)

        Returns:
            List of result rows
        """
        with self.get_cursor(commit=False) as cursor:
            cursor.execute(query, params or ())
            return cursor.fetchall()

    def execute_update(self, query: str, params: Optional[Sequence] = None) -> int:
        """
        Execute an INSERT/UPDATE/DELETE query.

        Args:
            query: SQL query string
            params: Query parameters (optional)

        Returns:
            Number of rows affected
        """
        with self.get_cursor(commit=True) as cursor:
            cursor.execute(query, params or ())
            return cursor.rowcount

    def apply_schema(self, path: Path = SCHEMA_PATH) -> None:
        """Create any missing tables from the schema file."""
        logger.info(f"Applying schema from {path}")
        with self.get_cursor(commit=True) as cursor:
            cursor.execute(Path(path).read_text())
