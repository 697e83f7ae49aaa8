# Infrastructure module - Logging, SQLite persistence and configuration

from .logging import (
    get_logger, configure_logging, RunContext,
    log_run_end, get_run_id, generate_run_id
)
from .store import (
    Store, StoreError, SchemaMismatchError, MigrationFailedError,
    SCHEMA_VERSION
)
from .config import AppConfig, load_config

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "RunContext",
    "log_run_end",
    "get_run_id",
    "generate_run_id",
    # Store
    "Store",
    "StoreError",
    "SchemaMismatchError",
    "MigrationFailedError",
    "SCHEMA_VERSION",
    # Config
    "AppConfig",
    "load_config",
]
