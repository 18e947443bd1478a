"""
PostgreSQL connection handling for the batch queue.

``DatabaseConfiguration`` describes where the queue table lives, ``Database``
owns one psycopg connection and hands it out through ``transaction()``.
"""

import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Union
import psycopg
from psycopg import Connection

from .error import QueueError
from .logging import QueueLogger

ENV_PREFIX = "BATCHQUEUE_DB_"


def _env(name: str, default: str) -> str:
    return os.getenv(ENV_PREFIX + name, default)


@dataclass
class DatabaseConfiguration:
    """
    Connection settings.
    ``with_table_drop`` makes the queue drop its table on start and is meant for tests.
    """

    host: str
    port: int
    database: str
    username: str
    password: str
    schema: str = "public"
    sslmode: str = "require"
    with_table_drop: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfiguration":
        """
        Read the configuration from ``BATCHQUEUE_DB_*`` environment variables:
        HOST, PORT, DATABASE, USERNAME, PASSWORD, SCHEMA, SSLMODE, WITH_TABLE_DROP.

        :raises ValueError: If HOST, DATABASE, USERNAME or SCHEMA is blank.
        """
        config = cls(
            host=_env("HOST", "localhost"),
            port=int(_env("PORT", "5432")),
            database=_env("DATABASE", "batchqueue"),
            username=_env("USERNAME", "postgres"),
            password=_env("PASSWORD", ""),
            schema=_env("SCHEMA", "public"),
            sslmode=_env("SSLMODE", "require"),
            with_table_drop=_env("WITH_TABLE_DROP", "false").lower() == "true",
        )

        required = {
            "HOST": config.host,
            "DATABASE": config.database,
            "USERNAME": config.username,
            "SCHEMA": config.schema,
        }
        blank = [ENV_PREFIX + name for name, value in required.items() if not value.strip()]
        if blank:
            raise ValueError(
                f"Required environment variables missing: {', '.join(blank)} must be set"
            )
        return config

    def connection_string(self) -> str:
        """libpq connection string; the schema is applied as the search_path."""
        params = {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.username,
            "password": self.password,
            "sslmode": self.sslmode,
            "application_name": "batchqueue",
        }
        parts = [f"{name}={value}" for name, value in params.items()]
        parts.append(f"options='-c search_path={self.schema}'")
        return " ".join(parts)


class Database:
    """
    One psycopg connection shared by the threads of a process.
    Statements are serialised by ``lock``; use ``transaction()`` for work.
    """

    def __init__(
        self,
        name: str,
        config: Optional[DatabaseConfiguration] = None,
        logger: Optional[Union[QueueLogger, logging.Logger]] = None,
        auto_connect: bool = True,
    ):
        self.name = name
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.instance: Optional[Connection] = None
        self.lock = threading.RLock()

        if config is not None and auto_connect:
            self.connect_to_database()

    def connect_to_database(self) -> None:
        """
        Open the connection and check it with a trivial query.

        :raises QueueError: If there is no configuration or connecting fails.
        """
        if self.config is None:
            raise QueueError(
                "Database configuration is required for connection",
                ValueError("No config provided"),
            )

        try:
            conn = psycopg.connect(self.config.connection_string(), autocommit=False)
            conn.execute("SELECT 1")
            conn.commit()
        except Exception as e:
            raise QueueError("Failed to connect to database", e)

        self.instance = conn
        self.logger.info(f"Connected to database: {self.config.database}")

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """
        Hold the connection for one transaction.
        Commits when the block exits normally, otherwise rolls back and re-raises.

        :raises ValueError: If the connection is not established.
        """
        with self.lock:
            conn = self.instance
            if conn is None:
                raise ValueError("Database connection is not established")

            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

    def check_table_existence(self, table_name: str) -> bool:
        """True if ``table_name`` exists in the current schema."""
        try:
            with self.transaction() as conn:
                row = conn.execute(
                    """
                    SELECT EXISTS (
                        SELECT 1 FROM information_schema.tables
                        WHERE table_schema = current_schema()
                        AND table_name = %s
                    );
                    """,
                    (table_name,),
                ).fetchone()
        except ValueError:
            raise
        except Exception as e:
            raise QueueError(f"Failed to check table existence for {table_name}", e)

        return bool(row and row[0])

    def health(self) -> Dict[str, str]:
        """Round-trip a query and report ``status`` plus server details or the error."""
        if self.instance is None:
            return {"status": "down", "error": "No database connection"}

        try:
            with self.transaction() as conn:
                conn.execute("SELECT 1").fetchone()
                info = conn.info
                return {
                    "status": "up",
                    "message": "It's healthy",
                    "server_version": str(info.server_version),
                    "backend_pid": str(info.backend_pid),
                }
        except Exception as e:
            self.logger.error(f"Database health check failed: {e}")
            return {"status": "down", "error": f"Database health check failed: {e}"}

    def close(self) -> None:
        with self.lock:
            if self.instance is not None:
                self.instance.close()
                self.instance = None
                self.logger.info("Database connection closed")


def new_database(
    name: str,
    config: DatabaseConfiguration,
    logger: Optional[QueueLogger] = None,
    auto_connect: bool = True,
) -> Database:
    return Database(name, config, logger, auto_connect)


def new_database_from_env(
    name: str = "batchqueue",
    logger: Optional[QueueLogger] = None,
    auto_connect: bool = True,
) -> Database:
    """Create a Database configured from ``BATCHQUEUE_DB_*`` variables."""
    return Database(name, DatabaseConfiguration.from_env(), logger, auto_connect)
