"""
Schema helpers: DDL execution and the ``.sql`` files shipped with the package.
"""

import threading
import time
from pathlib import Path
from typing import Optional, Union
from psycopg import Connection, errors

from .logging import get_logger

logger = get_logger(__name__)

SQL_DIR = Path(__file__).resolve().parent.parent / "sql"

DDL_RETRY_DELAY = 0.5

# DDL from concurrent threads of one process runs one statement batch at a time
_DDL_LOCK = threading.RLock()

_RETRYABLE = (errors.DeadlockDetected, errors.SerializationFailure)


def run_ddl(conn: Connection, sql_statement: str, max_retries: int = 3) -> None:
    """
    Run a DDL batch in its own transaction.

    Deadlocks and serialization failures, which concurrent ``CREATE ... IF NOT
    EXISTS`` from several processes can cause, are retried after a short
    pause. Any other error rolls the transaction back and propagates.

    :param conn: Connection to run on; any open transaction is rolled back first.
    :param sql_statement: One or more DDL statements.
    :param max_retries: Attempts before a retryable error is raised.
    """
    payload = sql_statement.encode("utf-8")

    with _DDL_LOCK:
        attempt = 0
        while True:
            attempt += 1
            try:
                conn.rollback()
                with conn.cursor() as cur:
                    cur.execute(payload)
                conn.commit()
                return
            except _RETRYABLE as e:
                if attempt >= max_retries:
                    logger.error("DDL gave up", error=e, attempts=attempt)
                    raise
                logger.warning("DDL retry", attempt=attempt, max_retries=max_retries)
                time.sleep(DDL_RETRY_DELAY)
            except Exception:
                conn.rollback()
                raise


class SQLLoader:
    """Reads schema files from a directory, by default the package's ``sql``."""

    QUEUE_SQL = "queue.sql"

    def __init__(self, sql_base_path: Optional[Union[str, Path]] = None):
        self.sql_base_path = str(sql_base_path or SQL_DIR)

    def load_sql_file(self, file_path: Union[str, Path]) -> str:
        """
        :returns: The file content.
        :raises ValueError: If the file does not exist.
        """
        path = Path(file_path)
        if not path.is_file():
            raise ValueError(f"SQL file not found: {file_path}")
        return path.read_text(encoding="utf-8")

    def execute_sql_file(self, connection: Connection, file_path: Union[str, Path]) -> None:
        run_ddl(connection, self.load_sql_file(file_path))

    def load_queue_sql(self, connection: Connection) -> None:
        """Create the queue table and its indexes."""
        self.execute_sql_file(connection, Path(self.sql_base_path) / self.QUEUE_SQL)
