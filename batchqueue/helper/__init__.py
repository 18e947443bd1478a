"""
Helper package for batchqueue.
Provides utility functions and classes shared by the queue components.
"""

from .codec import (
    MAX_KEY_LENGTH,
    encode_parameters,
    decode_parameters,
    derive_key,
)

from .error import (
    QueueError,
)

from .database import (
    Database,
    DatabaseConfiguration,
    new_database,
    new_database_from_env,
)

from .logging import (
    QueueLogger,
    ColorFormatter,
    get_logger,
    setup_logging,
)

__all__ = [
    # Key codec
    "MAX_KEY_LENGTH",
    "encode_parameters",
    "decode_parameters",
    "derive_key",
    # Error handling
    "QueueError",
    # Database utilities
    "Database",
    "DatabaseConfiguration",
    "new_database",
    "new_database_from_env",
    # Logging utilities
    "QueueLogger",
    "ColorFormatter",
    "get_logger",
    "setup_logging",
]
