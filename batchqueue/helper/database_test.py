"""
Tests for database configuration and the connection wrapper, without a server.
"""

import os
import unittest
from typing import Any, Dict, List
from unittest.mock import MagicMock, patch

from .database import Database, DatabaseConfiguration, new_database
from .error import QueueError


def _config(**overrides: Any) -> DatabaseConfiguration:
    values: Dict[str, Any] = {
        "host": "db.local",
        "port": 5432,
        "database": "queue_db",
        "username": "queue_user",
        "password": "secret",
    }
    values.update(overrides)
    return DatabaseConfiguration(**values)


class TestDatabaseConfigurationFromEnv(unittest.TestCase):
    """Environment handling of DatabaseConfiguration."""

    def test_from_env(self):
        test_cases: List[Dict[str, Any]] = [
            {
                "name": "Nothing set uses defaults",
                "env": {},
                "expected": {
                    "host": "localhost",
                    "port": 5432,
                    "database": "batchqueue",
                    "username": "postgres",
                    "password": "",
                    "schema": "public",
                    "sslmode": "require",
                    "with_table_drop": False,
                },
            },
            {
                "name": "Everything set",
                "env": {
                    "BATCHQUEUE_DB_HOST": "pg",
                    "BATCHQUEUE_DB_PORT": "6543",
                    "BATCHQUEUE_DB_DATABASE": "jobs",
                    "BATCHQUEUE_DB_USERNAME": "worker",
                    "BATCHQUEUE_DB_PASSWORD": "pw",
                    "BATCHQUEUE_DB_SCHEMA": "batch",
                    "BATCHQUEUE_DB_SSLMODE": "disable",
                    "BATCHQUEUE_DB_WITH_TABLE_DROP": "TRUE",
                },
                "expected": {
                    "host": "pg",
                    "port": 6543,
                    "database": "jobs",
                    "username": "worker",
                    "password": "pw",
                    "schema": "batch",
                    "sslmode": "disable",
                    "with_table_drop": True,
                },
            },
        ]

        for test_case in test_cases:
            with self.subTest(name=test_case["name"]):
                with patch.dict(os.environ, test_case["env"], clear=True):
                    config = DatabaseConfiguration.from_env()

                for field, value in test_case["expected"].items():
                    self.assertEqual(value, getattr(config, field), field)

    def test_from_env_blank_required(self):
        """A blank required variable is reported by name."""
        for name in ["HOST", "DATABASE", "USERNAME", "SCHEMA"]:
            with self.subTest(variable=name):
                with patch.dict(os.environ, {f"BATCHQUEUE_DB_{name}": "  "}, clear=True):
                    with self.assertRaises(ValueError) as cm:
                        DatabaseConfiguration.from_env()

                message = str(cm.exception)
                self.assertIn("Required environment variables missing", message)
                self.assertIn(f"BATCHQUEUE_DB_{name}", message)

    def test_connection_string(self):
        conn_str = _config(schema="batch", sslmode="disable").connection_string()

        self.assertEqual(
            "host=db.local port=5432 dbname=queue_db user=queue_user password=secret "
            "sslmode=disable application_name=batchqueue "
            "options='-c search_path=batch'",
            conn_str,
        )


class TestDatabaseConnection(unittest.TestCase):
    """Connecting and closing with a mocked driver."""

    def test_no_connect_without_config(self):
        db = Database("queue")

        self.assertIsNone(db.instance)
        with self.assertRaises(QueueError) as cm:
            db.connect_to_database()
        self.assertIn("Database configuration is required", str(cm.exception))

    @patch("batchqueue.helper.database.psycopg.connect")
    def test_auto_connect(self, mock_connect: MagicMock):
        config = _config()

        db = Database("queue", config)

        mock_connect.assert_called_once_with(config.connection_string(), autocommit=False)
        self.assertIs(mock_connect.return_value, db.instance)
        mock_connect.return_value.execute.assert_called_once_with("SELECT 1")
        mock_connect.return_value.commit.assert_called_once()

    @patch("batchqueue.helper.database.psycopg.connect")
    def test_auto_connect_disabled(self, mock_connect: MagicMock):
        db = new_database("queue", _config(), auto_connect=False)

        mock_connect.assert_not_called()
        self.assertIsNone(db.instance)

    @patch("batchqueue.helper.database.psycopg.connect")
    def test_connect_failure_is_wrapped(self, mock_connect: MagicMock):
        mock_connect.side_effect = OSError("connection refused")
        db = Database("queue", _config(), auto_connect=False)

        with self.assertRaises(QueueError) as cm:
            db.connect_to_database()

        self.assertIsInstance(cm.exception.original, OSError)
        self.assertIn("Failed to connect to database", str(cm.exception))
        self.assertIsNone(db.instance)

    def test_close_is_idempotent(self):
        db = Database("queue")
        connection = MagicMock()
        db.instance = connection

        db.close()
        db.close()

        connection.close.assert_called_once()
        self.assertIsNone(db.instance)


class TestDatabaseTransaction(unittest.TestCase):
    """Transaction scope over a mocked connection."""

    def setUp(self):
        self.db = Database("queue")
        self.db.instance = MagicMock()

    def test_commit_on_success(self):
        with self.db.transaction() as conn:
            conn.execute("UPDATE queue SET status = 'Failed'")

        self.db.instance.commit.assert_called_once()
        self.db.instance.rollback.assert_not_called()

    def test_rollback_on_error(self):
        with self.assertRaises(RuntimeError):
            with self.db.transaction():
                raise RuntimeError("insert failed")

        self.db.instance.rollback.assert_called_once()
        self.db.instance.commit.assert_not_called()

    def test_requires_connection(self):
        self.db.instance = None

        with self.assertRaises(ValueError) as cm:
            with self.db.transaction():
                pass

        self.assertIn("not established", str(cm.exception))

    def test_health(self):
        self.db.instance.info.server_version = 160004
        self.db.instance.info.backend_pid = 42

        stats = self.db.health()

        self.assertEqual("up", stats["status"])
        self.assertEqual("160004", stats["server_version"])
        self.assertEqual("42", stats["backend_pid"])

    def test_health_without_connection(self):
        self.db.instance = None

        self.assertEqual(
            {"status": "down", "error": "No database connection"}, self.db.health()
        )


if __name__ == "__main__":
    unittest.main()
