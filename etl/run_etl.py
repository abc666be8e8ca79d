"""
Sync Orchestrator

Coordinates one sync run:
- Open the database connection
- Extract and type the states and/or turbines CSV files
- Run the dependency-ordered sync pipeline
- Log per-stage metrics and the resulting table sizes
"""

import argparse
import logging
import os
import sys
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from psycopg2 import sql

from config.settings import Settings
from db.connection import DatabaseConnection
from etl.extract import fetch_states_csv, fetch_turbines_csv
from etl.load import EntityWriter
from etl.pipeline import StageResult, SyncPipeline
from etl.reconcile import Reconciler
from etl.transform import transform_states, transform_turbines

logger = logging.getLogger(__name__)

TABLES = ["state", "county", "manufacturer", "model", "image_source", "project", "turbine"]


class SyncOrchestrator:
    """
    Orchestrates a complete sync run.

    Workflow:
    1. Open the database connection (and apply the schema if asked)
    2. Sync the states file, if given
    3. Sync the turbines file, if given
    4. Log a summary of every stage
    """

    def __init__(self, settings: Settings):
        """
        Initialize sync orchestrator.

        Args:
            settings: Configuration object with database credentials
        """
        self.settings = settings
        self.start_time: datetime = None
        self.end_time: datetime = None
        self.results: List[StageResult] = []
        self.table_counts = {}

    def run(
        self,
        states_file: Optional[str] = None,
        turbines_file: Optional[str] = None,
        init_schema: bool = False,
    ) -> bool:
        """
        Execute the sync run.

        Args:
            states_file: Path of the states CSV file (skipped when None)
            turbines_file: Path of the turbines CSV file (skipped when None)
            init_schema: Create missing tables before syncing

        Returns:
            True if successful, False otherwise
        """
        self.start_time = datetime.now(timezone.utc)
        connection = DatabaseConnection.from_settings(self.settings)

        try:
            logger.info("=" * 60)
            logger.info("Starting Sync Run")
            logger.info("=" * 60)

            connection.open()
            if init_schema:
                connection.apply_schema()

            pipeline = SyncPipeline(
                EntityWriter(connection, max_retries=self.settings.MAX_RETRIES),
                Reconciler(connection),
            )

            if states_file:
                logger.info(f"Syncing states from {states_file}")
                records = transform_states(fetch_states_csv(states_file))
                self.results.extend(pipeline.sync_states(records))

            if turbines_file:
                logger.info(f"Syncing turbines from {turbines_file}")
                records = transform_turbines(fetch_turbines_csv(turbines_file))
                self.results.extend(pipeline.sync_turbines(records))

            if not states_file and not turbines_file:
                logger.warning("No input files given, nothing to sync")

            self.table_counts = self._count_tables(connection)
            self.end_time = datetime.now(timezone.utc)

            logger.info("=" * 60)
            logger.info("Sync Run Completed Successfully")
            logger.info("=" * 60)
            self._log_summary()

            return True

        except Exception as e:
            logger.error(f"Sync run failed: {e}", exc_info=True)
            return False

        finally:
            connection.close()

    def _count_tables(self, connection: DatabaseConnection) -> dict:
        counts = {}
        for table in TABLES:
            query = sql.SQL("SELECT COUNT(*) FROM {};").format(sql.Identifier(table))
            counts[table] = connection.execute_query(query)[0][0]
        return counts

    def _log_summary(self) -> None:
        """Log sync summary with all stage metrics."""
        duration = (self.end_time - self.start_time).total_seconds()
        logger.info(f"Duration: {duration:.2f} seconds")
        for result in self.results:
            logger.info(
                f"{result.stage:<13} processed={result.processed} duplicates={result.duplicates} "
                f"inserted={result.inserted} updated={result.updated} "
                f"unchanged={result.unchanged} deleted={result.deleted}"
            )
        for table, count in self.table_counts.items():
            logger.info(f"There are now {count} rows in {table}")


def setup_logging(log_file: str = "logs/sync.log", level: str = "INFO") -> None:
    """
    Configure logging for the sync run.

    Args:
        log_file: Path to log file
        level: Console log level name
    """
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # File handler
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level.upper())
    console_handler.setFormatter(formatter)

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="wind-sync",
        description="Synchronize US states and wind turbine CSV files into PostgreSQL.",
    )
    parser.add_argument("-u", "--states-file", help="CSV file of US states and territories")
    parser.add_argument("-t", "--turbines-file", help="USWTDB turbines CSV file")
    parser.add_argument("--init-schema", action="store_true", help="Create missing tables first")
    parser.add_argument("--log-level", help="Console log level (overrides LOG_LEVEL)")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point for the sync run."""
    args = parse_args(argv)

    try:
        settings = Settings()
    except ValueError as e:
        setup_logging(level=args.log_level or "INFO")
        logger.error(f"Fatal error: {e}")
        sys.exit(1)

    setup_logging(settings.LOG_FILE, args.log_level or settings.LOG_LEVEL)

    try:
        orchestrator = SyncOrchestrator(settings)
        success = orchestrator.run(
            states_file=args.states_file,
            turbines_file=args.turbines_file,
            init_schema=args.init_schema,
        )
        sys.exit(0 if success else 1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
