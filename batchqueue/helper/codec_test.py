"""
Tests for parameter encoding and key derivation.
"""

import hashlib
import unittest
from typing import Any, Dict, List

from .codec import MAX_KEY_LENGTH, decode_parameters, derive_key, encode_parameters


class TestEncodeParameters(unittest.TestCase):
    """Test cases for encode_parameters."""

    def test_encode_parameters(self):
        """Test canonical encoding for various parameter sets."""
        test_cases: List[Dict[str, Any]] = [
            {"name": "Empty", "params": {}, "expected": ""},
            {"name": "None", "params": None, "expected": ""},
            {
                "name": "Sorted by name",
                "params": {"foo": ["x"], "bar": ["y"]},
                "expected": "bar=y&foo=x",
            },
            {
                "name": "Sorted by value",
                "params": {"key1": ["value2", "value1"]},
                "expected": "key1=value1&key1=value2",
            },
            {
                "name": "Parameter without value",
                "params": {"key3": [None], "key1": ["a"]},
                "expected": "key1=a&key3",
            },
        ]

        for test_case in test_cases:
            with self.subTest(name=test_case["name"]):
                self.assertEqual(
                    test_case["expected"], encode_parameters(test_case["params"])
                )

    def test_decode_reverses_encode(self):
        """Test decoding the canonical form gives the same parameters back."""
        params = {"key1": ("value1", "value2"), "key2": ("value3",), "key3": (None,)}

        self.assertEqual(params, decode_parameters(encode_parameters(params)))

    def test_decode_empty(self):
        """Test decoding empty input."""
        self.assertEqual({}, decode_parameters(""))
        self.assertEqual({}, decode_parameters(None))

    def test_decode_keeps_value_order(self):
        """Test decoding keeps values in string order."""
        self.assertEqual(
            {"foo": ("x", "a"), "bar": ("y",)}, decode_parameters("foo=x&bar=y&foo=a")
        )


class TestDeriveKey(unittest.TestCase):
    """Test cases for derive_key."""

    def test_key_is_order_independent(self):
        """Test both parameter orders give the same key."""
        first = derive_key("test", decode_parameters("foo=x&bar=y"))
        second = derive_key("test", decode_parameters("bar=y&foo=x"))

        self.assertEqual("test_bar_y_foo_x", first)
        self.assertEqual(first, second)

    def test_key_differs_for_different_values(self):
        """Test different values give different keys."""
        self.assertNotEqual(
            derive_key("test", {"foo": ["x"]}), derive_key("test", {"foo": ["z"]})
        )

    def test_key_escapes_path_separator(self):
        """Test slashes in the URI are escaped."""
        key = derive_key("http://localhost/service", {"a": ["1"]})

        self.assertNotIn("/", key)
        self.assertEqual("http:%2F%2Flocalhost%2Fservice_a_1", key)

    def test_missing_value_differs_from_empty_value(self):
        """Test a parameter without a value is keyed apart from an empty value."""
        missing = derive_key("test", {"a": [None]})
        empty = derive_key("test", {"a": [""]})

        self.assertEqual("test_a_null", missing)
        self.assertEqual("test_a_", empty)
        self.assertNotEqual(missing, empty)

    def test_long_key_digest_renders_missing_value(self):
        """Test a missing value enters the digest as name=null."""
        long_uri = "u" * (MAX_KEY_LENGTH + 1)
        expected = hashlib.md5(
            long_uri.encode("utf-8") + "a=null".encode("utf-8")
        ).hexdigest()

        self.assertEqual(expected, derive_key(long_uri, {"a": [None]}))

    def test_key_without_parameters(self):
        """Test a request without parameters is keyed by its URI."""
        self.assertEqual("test", derive_key("test", {}))

    def test_long_key_uses_digest(self):
        """Test keys longer than the limit are replaced by an MD5 digest."""
        params = {"p": ["v" * (MAX_KEY_LENGTH + 1)]}
        expected = hashlib.md5(
            "test".encode("utf-8") + f"p={'v' * (MAX_KEY_LENGTH + 1)}".encode("utf-8")
        ).hexdigest()

        key = derive_key("test", params)

        self.assertEqual(expected, key)
        self.assertEqual(32, len(key))


if __name__ == "__main__":
    unittest.main()
