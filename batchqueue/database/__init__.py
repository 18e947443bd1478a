"""
Database package for batchqueue.
Provides the queue table handler and the pending-work listener.
"""

# Import from helper for core database functionality
from ..helper.database import (
    Database,
    DatabaseConfiguration,
    new_database,
    new_database_from_env,
)

from ..helper.sql import (
    SQLLoader,
)

from .db_queue import (
    QueueDBHandler,
    PENDING_CHANNEL,
    QUEUE_TABLE,
)

from .db_listener import (
    QueueListener,
    new_queue_db_listener,
)

__all__ = [
    # Core database classes (from helper)
    "Database",
    "DatabaseConfiguration",
    "new_database",
    "new_database_from_env",
    # Schema loading
    "SQLLoader",
    # Queue handler
    "QueueDBHandler",
    "PENDING_CHANNEL",
    "QUEUE_TABLE",
    # Listeners
    "QueueListener",
    "new_queue_db_listener",
]
