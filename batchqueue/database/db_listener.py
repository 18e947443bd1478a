"""
Database listener for PostgreSQL LISTEN/NOTIFY.
Lets idle workers block until a queue row becomes Pending instead of sleeping blind.
"""

import logging
import threading
from typing import Optional
import psycopg
from psycopg import Connection, sql

from ..helper.database import DatabaseConfiguration
from ..helper.error import QueueError


class QueueListener:
    """
    Synchronous listener on a single notification channel.
    Holds its own autocommit connection, separate from the queue connection.
    """

    def __init__(self, db_config: DatabaseConfiguration, channel: str):
        """
        Initialize database listener.

        :param db_config: Database configuration
        :param channel: Channel name to listen on
        """
        self.db_config = db_config
        self.channel = channel
        self.connection: Optional[Connection] = None
        self.logger = logging.getLogger(f"batchqueue_db_listener_{channel}")
        # One waiter at a time on the connection
        self._wait_lock = threading.Lock()

    def connect(self) -> None:
        """
        Establish the database connection and start listening.

        :raises QueueError: If the connection cannot be established.
        """
        try:
            self.connection = psycopg.connect(
                self.db_config.connection_string(),
                autocommit=True,  # Required for LISTEN/NOTIFY
            )
            self.connection.execute(
                sql.SQL("LISTEN {}").format(
                    sql.Identifier(self.channel)
                )
            )
            self.logger.info(f"Connected and listening on channel: {self.channel}")
        except Exception as e:
            self.logger.error(f"Failed to connect to database: {e}")
            self.connection = None
            raise QueueError("listen", e)

    def wait(self, timeout: float) -> bool:
        """
        Block until a notification arrives on the channel or the timeout elapses.
        Notifications delivered while nobody was waiting are returned immediately.

        :param timeout: Maximum time to wait in seconds.
        :returns: True if a notification was received, False on timeout.
        """
        if timeout <= 0:
            return False

        if not self._wait_lock.acquire(timeout=timeout):
            return False

        try:
            if self.connection is None:
                # Stopped while waiting for the lock
                return False

            for notify in self.connection.notifies(timeout=timeout, stop_after=1):
                self.logger.debug(
                    f"Notification on {notify.channel}: {notify.payload}"
                )
                return True
            return False
        finally:
            self._wait_lock.release()

    def stop(self) -> None:
        """Stop listening and close the connection once the current waiter returns."""
        with self._wait_lock:
            if self.connection:
                try:
                    self.connection.close()
                except Exception as e:
                    self.logger.debug(f"Error closing connection: {e}")
                self.connection = None

        self.logger.info(f"Listener stopped for channel: {self.channel}")


def new_queue_db_listener(
    db_config: DatabaseConfiguration, channel: str
) -> QueueListener:
    """
    Create a new QueueListener instance.
    """
    return QueueListener(db_config, channel)
