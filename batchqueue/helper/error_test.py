"""
Tests for QueueError.
"""

import unittest

from .error import QueueError


def _connect():
    raise ConnectionError("refused")


def _open_queue():
    try:
        _connect()
    except ConnectionError as e:
        raise QueueError("connect", e)


def _start_manager():
    try:
        _open_queue()
    except QueueError as e:
        raise QueueError("start manager", e)


class TestQueueError(unittest.TestCase):
    """Test QueueError trace handling."""

    def test_single_wrap(self):
        """The trace names the function that wrapped the error."""
        with self.assertRaises(QueueError) as cm:
            _open_queue()

        error = cm.exception
        self.assertIsInstance(error.original, ConnectionError)
        self.assertEqual(["_open_queue - connect"], error.trace)
        self.assertEqual("refused | Trace: _open_queue - connect", str(error))

    def test_nested_wrap(self):
        """Re-wrapping keeps the innermost error and extends the trace."""
        with self.assertRaises(QueueError) as cm:
            _start_manager()

        error = cm.exception
        self.assertIsInstance(error.original, ConnectionError)
        self.assertEqual(
            ["_open_queue - connect", "_start_manager - start manager"], error.trace
        )

    def test_args_hold_original_message(self):
        error = QueueError("context", ValueError("bad value"))

        self.assertEqual(("bad value",), error.args)
        self.assertEqual(["test_args_hold_original_message - context"], error.trace)


if __name__ == "__main__":
    unittest.main()
