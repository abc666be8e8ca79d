"""
US Wind Power Stats Sync Package

Synchronizes US state and wind turbine CSV data into PostgreSQL.

Modules:
- extract: CSV extraction
- transform: Row typing and validation
- dedup: Natural-key deduplication
- stages: Dependency-ordered stage declarations
- load: Idempotent reference inserts and upserts
- reconcile: State pruning and turbine swap
- pipeline: Stage execution
- repository: Read-only accessors
- run_etl: Run orchestration and CLI
"""

__version__ = "1.0.0"
__author__ = "Data Engineering Team"
