"""
Queue database handler.
All statements against the ``queue`` table live here.
"""

from typing import List, Optional, Sequence, Tuple
from psycopg import Cursor
from psycopg.rows import DictRow, dict_row

from ..helper.database import Database
from ..helper.error import QueueError
from ..helper.logging import get_logger
from ..helper.sql import SQLLoader, run_ddl
from ..model.batch_request import BatchRequest
from ..model.batch_status import INCOMPLETE_STATUSES, StatusFlag
from ..model.queue_entry import QueueEntry

logger = get_logger(__name__)

QUEUE_TABLE = "queue"

# Channel notified whenever a row becomes Pending
PENDING_CHANNEL = "queue_pending"


def _status_values(statuses: Sequence[StatusFlag]) -> List[str]:
    return [status.value for status in statuses]


class QueueDBHandler:
    """
    Queue database handler.
    Every method runs in its own transaction on the shared connection.
    """

    def __init__(self, db_connection: Database, with_table_drop: bool = False):
        """
        Initialize the queue handler and make sure the table exists.

        :param db_connection: Connected database wrapper.
        :param with_table_drop: Drop the table before creating it (tests).
        :raises ValueError: If the database is not connected.
        """
        self.db: Database = db_connection

        if self.db.instance is None:
            raise ValueError("Database connection is not established")

        if with_table_drop:
            self.drop_table()

        self.create_table()

    def check_table_existence(self) -> bool:
        """
        Check if the queue table exists.

        :return: True if the queue table exists, False otherwise.
        """
        return self.db.check_table_existence(QUEUE_TABLE)

    def create_table(self) -> bool:
        """
        Create the queue table and its indexes if the table is absent.

        :return: True if the table was created, False if it already existed.
        :raises QueueError: If creating the table fails.
        """
        if self.check_table_existence():
            return False

        try:
            with self.db.lock:
                SQLLoader().load_queue_sql(self.db.instance)
        except Exception as e:
            raise QueueError(f"Failed to create table {QUEUE_TABLE}", e)

        logger.info("Created queue table", table=QUEUE_TABLE)
        return True

    def drop_table(self) -> None:
        """Drop the queue table with DDL deadlock protection."""
        if self.db.instance is None:
            raise ValueError("Database connection is not established")

        with self.db.lock:
            run_ddl(self.db.instance, f"DROP TABLE IF EXISTS {QUEUE_TABLE} CASCADE;")

    def _lock_key(self, cur: Cursor[DictRow], key: str) -> None:
        # Serialises submit/resubmit of the same key until commit
        cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s));", (key,))

    def _notify_pending(self, cur: Cursor[DictRow], key: str) -> None:
        cur.execute("SELECT pg_notify(%s, %s);", (PENDING_CHANNEL, key))

    def _select_latest(self, cur: Cursor[DictRow], key: str) -> Optional[QueueEntry]:
        cur.execute(
            """
            SELECT * FROM queue
            WHERE "key" = %s
            ORDER BY "index" DESC
            LIMIT 1;
            """,
            (key,),
        )
        row = cur.fetchone()
        return QueueEntry.from_row(row) if row else None

    def _insert_pending(self, cur: Cursor[DictRow], request: BatchRequest) -> QueueEntry:
        cur.execute(
            """
            INSERT INTO queue ("key", status, requestUri, params, estimatedTime)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING *;
            """,
            (
                request.key,
                StatusFlag.PENDING.value,
                request.request_uri,
                request.parameter_string,
                request.estimated_time,
            ),
        )
        row = cur.fetchone()
        if row is None:
            raise RuntimeError("Failed to insert queue entry")

        self._notify_pending(cur, request.key)
        return QueueEntry.from_row(row)

    def select_entry(self, key: str) -> Optional[QueueEntry]:
        """
        Select the latest generation for a key.

        :param key: Request key.
        :return: The entry with the greatest index for the key, or None.
        """
        with self.db.transaction() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                return self._select_latest(cur, key)

    def select_entries_by_status(
        self, statuses: Sequence[StatusFlag] = INCOMPLETE_STATUSES
    ) -> List[QueueEntry]:
        """
        Select all entries with one of the given statuses, oldest first.

        :param statuses: Statuses to include.
        :return: List of QueueEntry instances ordered by index.
        """
        with self.db.transaction() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT * FROM queue
                    WHERE status = ANY(%s)
                    ORDER BY "index" ASC;
                    """,
                    (_status_values(statuses),),
                )
                return [QueueEntry.from_row(row) for row in cur.fetchall()]

    def insert_entry_if_absent(self, request: BatchRequest) -> Tuple[QueueEntry, bool]:
        """
        Insert a Pending entry unless the latest generation of the key is
        Pending, InProgress or Completed.

        :param request: Request to enqueue.
        :return: The authoritative entry and whether it was inserted.
        """
        with self.db.transaction() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                self._lock_key(cur, request.key)
                latest = self._select_latest(cur, request.key)
                if latest is not None and not latest.is_failed():
                    return latest, False

                return self._insert_pending(cur, request), True

    def replace_entry(self, request: BatchRequest) -> QueueEntry:
        """
        Delete the incomplete entries of the key and insert a fresh Pending one.
        Completed and Failed entries are kept.

        :param request: Request to enqueue.
        :return: The inserted entry.
        """
        with self.db.transaction() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                self._lock_key(cur, request.key)
                cur.execute(
                    'DELETE FROM queue WHERE "key" = %s AND status = ANY(%s);',
                    (request.key, _status_values(INCOMPLETE_STATUSES)),
                )
                return self._insert_pending(cur, request)

    def claim_next_pending(self, start_time: int) -> Optional[QueueEntry]:
        """
        Atomically move the oldest unlocked Pending entry to InProgress.
        Rows locked by a concurrent claim are skipped, so no two callers
        receive the same entry.

        :param start_time: Claim time in milliseconds since the epoch.
        :return: The claimed entry, or None if nothing could be claimed.
        """
        with self.db.transaction() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    UPDATE queue
                    SET status = %s, startTime = %s
                    WHERE "index" = (
                        SELECT "index" FROM queue
                        WHERE status = %s
                        ORDER BY "index" ASC
                        LIMIT 1
                        FOR UPDATE SKIP LOCKED
                    )
                    AND status = %s
                    RETURNING *;
                    """,
                    (
                        StatusFlag.IN_PROGRESS.value,
                        start_time,
                        StatusFlag.PENDING.value,
                        StatusFlag.PENDING.value,
                    ),
                )
                row = cur.fetchone()
                return QueueEntry.from_row(row) if row else None

    def has_pending(self) -> bool:
        """
        Check whether any Pending entry exists, locked or not.

        :return: True if at least one entry is Pending.
        """
        with self.db.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT EXISTS (SELECT 1 FROM queue WHERE status = %s);",
                    (StatusFlag.PENDING.value,),
                )
                result = cur.fetchone()
                return result[0] if result else False

    def compare_and_set_status(
        self,
        key: str,
        new_status: StatusFlag,
        expected: Sequence[StatusFlag] = INCOMPLETE_STATUSES,
        start_time: Optional[int] = None,
    ) -> int:
        """
        Set the status of the key's entries whose current status is one of ``expected``.
        The check and the write happen in a single statement.

        :param key: Request key.
        :param new_status: Status to set.
        :param expected: Statuses an entry must currently have to be updated.
        :param start_time: Start time to stamp in milliseconds, unchanged if None.
        :return: Number of entries updated, 0 if none matched.
        """
        with self.db.transaction() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    UPDATE queue
                    SET status = %s, startTime = COALESCE(%s::bigint, startTime)
                    WHERE "key" = %s
                    AND status = ANY(%s);
                    """,
                    (new_status.value, start_time, key, _status_values(expected)),
                )
                updated = cur.rowcount
                if updated > 0 and new_status == StatusFlag.PENDING:
                    self._notify_pending(cur, key)

        if updated == 0:
            logger.debug(
                "Status transition matched no entry",
                key=key,
                status=new_status.value,
            )
        return updated

    def delete_incomplete_entries(self, key: str) -> int:
        """
        Delete the Pending and InProgress entries of a key.

        :param key: Request key.
        :return: Number of entries deleted.
        """
        with self.db.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    'DELETE FROM queue WHERE "key" = %s AND status = ANY(%s);',
                    (key, _status_values(INCOMPLETE_STATUSES)),
                )
                return cur.rowcount
