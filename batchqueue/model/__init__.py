"""
Model package for batchqueue.

Contains data models and domain objects for the queue.
"""

from .batch_request import BatchRequest, DEFAULT_ESTIMATED_TIME, new_batch_request
from .batch_status import BatchStatus, StatusFlag, INCOMPLETE_STATUSES
from .queue_entry import QueueEntry

__all__ = [
    # Request related
    "BatchRequest",
    "DEFAULT_ESTIMATED_TIME",
    "new_batch_request",
    # Status related
    "BatchStatus",
    "StatusFlag",
    "INCOMPLETE_STATUSES",
    # Persisted rows
    "QueueEntry",
]
