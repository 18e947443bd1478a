"""
Queue manager for batch requests.

Requests are submitted under a key derived from their URI and parameters and
persisted in the ``queue`` table. Workers claim the oldest Pending request with
``next_request`` and close out the claim with ``finish_request``,
``fail_request`` or ``abort_request``. Any number of managers, in any number
of processes, may share the table.
"""

import os
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

from .database.db_listener import QueueListener, new_queue_db_listener
from .database.db_queue import PENDING_CHANNEL, QueueDBHandler
from .helper.database import Database, DatabaseConfiguration, new_database
from .helper.logging import get_logger
from .model.batch_request import BatchRequest
from .model.batch_status import BatchStatus, StatusFlag
from .model.queue_entry import QueueEntry

logger = get_logger(__name__)

# Pause in seconds before retrying a claim that lost to a concurrent worker
CLAIM_RETRY_DELAY = 0.05


@dataclass
class QueueManagerConfig:
    """
    Queue manager settings. Times are in milliseconds.

    - delete_on_complete: finish_request deletes the entry instead of marking it Completed
    - query_interval: longest single wait between claim attempts on an empty queue
    - default_timeout: wait used by next_request when no timeout is given
    - use_listener: wake waiting workers through LISTEN/NOTIFY
    """

    delete_on_complete: bool = False
    query_interval: int = 500
    default_timeout: int = 1000
    use_listener: bool = True

    @classmethod
    def from_env(cls) -> "QueueManagerConfig":
        """Create configuration from environment variables."""
        return cls(
            delete_on_complete=(
                os.getenv("BATCHQUEUE_DELETE_ON_COMPLETE", "false").lower() == "true"
            ),
            query_interval=int(os.getenv("BATCHQUEUE_QUERY_INTERVAL", "500")),
            default_timeout=int(os.getenv("BATCHQUEUE_DEFAULT_TIMEOUT", "1000")),
            use_listener=os.getenv("BATCHQUEUE_USE_LISTENER", "true").lower() == "true",
        )


def _now_millis() -> int:
    return int(time.time() * 1000)


def _remaining_time(entry: QueueEntry, now: int) -> Optional[int]:
    """Estimated milliseconds left for a started entry, None once overdue or unknown."""
    if entry.start_time is None or entry.estimated_time is None:
        return None
    remaining = entry.estimated_time - (now - entry.start_time)
    return remaining if remaining > 0 else None


def new_queue_manager(config: Optional[QueueManagerConfig] = None) -> "QueueManager":
    """
    Create a new QueueManager using the database configuration from the environment.
    - BATCHQUEUE_DB_HOST, BATCHQUEUE_DB_PORT, BATCHQUEUE_DB_DATABASE
    - BATCHQUEUE_DB_USERNAME, BATCHQUEUE_DB_PASSWORD, BATCHQUEUE_DB_SCHEMA
    - BATCHQUEUE_DB_SSLMODE (optional, defaults to "require")

    :param config: Manager settings, read from the environment if None.
    :returns: A started QueueManager.
    """
    return QueueManager(None, config or QueueManagerConfig.from_env())


def new_queue_manager_with_db(
    db_config: DatabaseConfiguration,
    config: Optional[QueueManagerConfig] = None,
) -> "QueueManager":
    """
    Create a new QueueManager with an explicit database configuration.

    :param db_config: Database configuration.
    :param config: Manager settings, defaults if None.
    :returns: A started QueueManager.
    """
    return QueueManager(db_config, config)


class QueueManager:
    """
    Durable, deduplicating queue of batch requests backed by PostgreSQL.
    """

    def __init__(
        self,
        db_config: Optional[DatabaseConfiguration] = None,
        config: Optional[QueueManagerConfig] = None,
    ):
        """
        Connect to the database and make sure the queue table exists.
        If ``config.use_listener`` is set a second connection is opened to
        receive notifications about new Pending entries.

        :param db_config: Database configuration, read from the environment if None.
        :param config: Manager settings, defaults if None.
        :raises QueueError: If connecting or creating the table fails.
        """
        self.config: QueueManagerConfig = config or QueueManagerConfig()
        self.db_config: DatabaseConfiguration = (
            db_config if db_config is not None else DatabaseConfiguration.from_env()
        )

        self._stopped: threading.Event = threading.Event()

        self.database: Database = new_database("batchqueue", self.db_config, logger)
        self.db_queue: QueueDBHandler = QueueDBHandler(
            self.database, self.db_config.with_table_drop
        )

        self.listener: Optional[QueueListener] = None
        if self.config.use_listener:
            self.listener = new_queue_db_listener(self.db_config, PENDING_CHANNEL)
            self.listener.connect()

        logger.info(
            "Queue manager started",
            delete_on_complete=self.config.delete_on_complete,
            use_listener=self.config.use_listener,
        )

    def __enter__(self) -> "QueueManager":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def submit(self, request: BatchRequest) -> BatchStatus:
        """
        Submit a request for processing.
        If the latest entry for the key is Pending, InProgress or Completed its
        status is returned and nothing is written. Otherwise (no entry, or the
        latest one Failed) a new Pending entry is added.

        :param request: The request to queue.
        :returns: Status of the authoritative entry for the key.
        """
        entry, inserted = self.db_queue.insert_entry_if_absent(request)
        if inserted:
            logger.info("Request queued", key=entry.key, index=entry.index)
        else:
            logger.debug("Request already known", key=entry.key, status=entry.status.value)
        return entry.as_batch_status()

    def resubmit(self, request: BatchRequest) -> BatchStatus:
        """
        Queue a request again regardless of its current state.
        Pending and InProgress entries for the key are replaced by one new
        Pending entry; Completed and Failed entries are kept as history.

        :param request: The request to queue.
        :returns: Status of the new entry.
        """
        entry = self.db_queue.replace_entry(request)
        logger.info("Request requeued", key=entry.key, index=entry.index)
        return entry.as_batch_status()

    def get_status(self, key: str) -> BatchStatus:
        """
        Retrieve the status of the latest entry for a key.

        :param key: Request key.
        :returns: The entry status, or Unknown if the key was never submitted.
        """
        entry = self.db_queue.select_entry(key)
        if entry is None:
            return BatchStatus(key, StatusFlag.UNKNOWN)
        return entry.as_batch_status()

    def get_queue(self) -> List[BatchStatus]:
        """
        Return every outstanding (Pending or InProgress) entry, oldest first.

        InProgress entries are at position 0 and, while their estimated time
        has not run out, carry the remaining time as eta. Pending entries
        count their 1-based position over the whole list, and their eta is
        the summed estimated time of every listed entry up to and including
        themselves.

        :returns: List of BatchStatus.
        """
        now = _now_millis()
        statuses: List[BatchStatus] = []
        eta = 0
        for position, entry in enumerate(self.db_queue.select_entries_by_status(), 1):
            status = entry.as_batch_status()
            eta += entry.estimated_time or 0
            if entry.status == StatusFlag.PENDING:
                status.position_in_queue = position
                status.eta = eta
            else:
                status.position_in_queue = 0
                status.eta = _remaining_time(entry, now)
            statuses.append(status)
        return statuses

    def find_request(self, key: str) -> Optional[BatchRequest]:
        """
        Retrieve the request of the latest entry for a key.

        :param key: Request key.
        :returns: The request, or None if the key was never submitted.
        """
        entry = self.db_queue.select_entry(key)
        return entry.as_batch_request() if entry else None

    def next_request(self, timeout: Optional[int] = None) -> Optional[BatchRequest]:
        """
        Claim the oldest Pending request, mark it InProgress and return it.

        A claim that loses to a concurrent worker is retried after a short
        pause. On an empty queue the call waits for new work, in steps of at
        most ``query_interval``. Either way it gives up once ``timeout`` has
        elapsed.

        :param timeout: Maximum wait in milliseconds, ``config.default_timeout`` if None.
        :returns: The claimed request, or None if nothing arrived in time or
            the manager was closed.
        """
        timeout_ms = self.config.default_timeout if timeout is None else timeout
        deadline = time.monotonic() + max(timeout_ms, 0) / 1000

        while True:
            # close() takes the same lock before dropping the connection
            with self.database.lock:
                if self._stopped.is_set():
                    return None
                entry = self.db_queue.claim_next_pending(_now_millis())
                contended = entry is None and self.db_queue.has_pending()

            if entry is not None:
                logger.info("Request claimed", key=entry.key, index=entry.index)
                return entry.as_batch_request()

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.debug("No pending request", timeout_ms=timeout_ms)
                return None

            if contended:
                # Every Pending row is locked by a concurrent claim
                self._stopped.wait(min(remaining, CLAIM_RETRY_DELAY))
            else:
                self._wait_for_pending(remaining)

    def _wait_for_pending(self, remaining: float) -> None:
        step = min(remaining, self.config.query_interval / 1000)
        listener = self.listener
        if listener is not None:
            listener.wait(step)
        else:
            self._stopped.wait(step)

    def finish_request(self, key: str) -> None:
        """
        Mark an outstanding request as Completed, or delete it when
        ``delete_on_complete`` is configured. No-op if the key has no
        Pending or InProgress entry.

        :param key: Request key.
        """
        if self.config.delete_on_complete:
            deleted = self.db_queue.delete_incomplete_entries(key)
            logger.info("Request finished", key=key, deleted=deleted)
        else:
            updated = self.db_queue.compare_and_set_status(key, StatusFlag.COMPLETED)
            logger.info("Request finished", key=key, updated=updated)

    def abort_request(self, key: str) -> None:
        """
        Return an outstanding request to the Pending queue, e.g. after a
        worker gave up on it. No-op if the key has no Pending or InProgress entry.

        :param key: Request key.
        """
        updated = self.db_queue.compare_and_set_status(key, StatusFlag.PENDING)
        logger.info("Request aborted", key=key, updated=updated)

    def fail_request(self, key: str) -> None:
        """
        Mark an outstanding request as Failed. No-op if the key has no
        Pending or InProgress entry.

        :param key: Request key.
        """
        updated = self.db_queue.compare_and_set_status(key, StatusFlag.FAILED)
        logger.info("Request failed", key=key, updated=updated)

    def remove_old_completed_requests(self, cutoff: int) -> None:
        """
        Delete Completed and Failed entries older than ``cutoff``.

        :param cutoff: Cutoff time in milliseconds since the epoch.
        :raises NotImplementedError: Always, purging is not implemented.
        """
        raise NotImplementedError("remove_old_completed_requests is not implemented")

    def close(self) -> None:
        """Wake waiting workers and release the database connections."""
        self._stopped.set()
        if self.listener is not None:
            self.listener.stop()
            self.listener = None
        self.database.close()
        logger.info("Queue manager closed")
