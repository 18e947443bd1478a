"""
Polling worker for the batch queue.
Claims requests one at a time and reports the outcome back to the queue.
"""

import threading
from typing import Any, Callable, Optional

from ..helper.logging import get_logger
from ..model.batch_request import BatchRequest
from ..queue_manager import QueueManager

logger = get_logger(__name__)


class QueueWorker:
    """
    Runs a handler for each claimed request.

    The handler's return value is ignored. A handler that returns finishes the
    request, one that raises fails it. An interrupt returns the request to the
    Pending queue before propagating.
    """

    def __init__(
        self,
        manager: QueueManager,
        handler: Callable[[BatchRequest], Any],
        timeout: Optional[int] = None,
    ):
        """
        Initialize the worker.

        :param manager: QueueManager to claim requests from.
        :param handler: Function processing one request.
        :param timeout: Wait per claim attempt in milliseconds, manager default if None.
        """
        self.manager = manager
        self.handler = handler
        self.timeout = timeout
        self._stop_event = threading.Event()

    def run_once(self) -> Optional[BatchRequest]:
        """
        Claim and process a single request.

        :returns: The processed request, or None if the queue stayed empty.
        """
        request: Optional[BatchRequest] = self.manager.next_request(self.timeout)
        if request is None:
            return None

        key = request.key
        try:
            self.handler(request)
        except KeyboardInterrupt:
            logger.warning("Request interrupted, returning it to the queue", key=key)
            self.manager.abort_request(key)
            raise
        except Exception as e:
            logger.error("Request handler failed", error=e, key=key)
            self.manager.fail_request(key)
            return request

        self.manager.finish_request(key)
        return request

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """
        Process requests until ``stop_event`` or ``stop()`` is set.

        :param stop_event: Optional external stop signal.
        """
        logger.info("Worker started")
        while not self._stop_event.is_set() and not (
            stop_event is not None and stop_event.is_set()
        ):
            self.run_once()
        logger.info("Worker stopped")

    def stop(self) -> None:
        """Stop the loop after the current request."""
        self._stop_event.set()
