"""
batchqueue - a durable, deduplicating batch request queue

A job queue with PostgreSQL backend that provides:
- Deduplicated submission by a key derived from the request
- Pending / InProgress / Completed / Failed lifecycle with requeue
- Atomic claims so concurrent workers never share a request
- Notification driven waiting for new work
- Database-backed persistence that survives restarts
"""

from ._version import __version__

from .queue_manager import (
    QueueManager,
    QueueManagerConfig,
    new_queue_manager,
    new_queue_manager_with_db,
)

from .helper.database import (
    DatabaseConfiguration,
)

from .helper.codec import (
    encode_parameters,
    decode_parameters,
    derive_key,
)

from .model.batch_request import (
    BatchRequest,
    new_batch_request,
)

from .model.batch_status import (
    BatchStatus,
    StatusFlag,
)

from .model.queue_entry import (
    QueueEntry,
)

from .core.worker import (
    QueueWorker,
)

from .helper.error import (
    QueueError,
)

# Import submodules for direct access
from . import core
from . import database
from . import helper
from . import model

__all__ = [
    # Core classes
    "QueueManager",
    "QueueManagerConfig",
    "new_queue_manager",
    "new_queue_manager_with_db",
    "QueueWorker",
    # Configuration
    "DatabaseConfiguration",
    # Key codec
    "encode_parameters",
    "decode_parameters",
    "derive_key",
    # Models
    "BatchRequest",
    "new_batch_request",
    "BatchStatus",
    "StatusFlag",
    "QueueEntry",
    # Exceptions
    "QueueError",
    # Submodules
    "core",
    "database",
    "helper",
    "model",
    # Version info
    "__version__",
]
