"""
Core components for batchqueue.
"""

from .worker import QueueWorker

__all__ = [
    "QueueWorker",
]
