"""
Key Comparer for Holdings Reconciliation

Reduces entities from different stores to a single totally-ordered composite
key and compares those keys. Raw records from different stores are never
compared directly.
"""

import logging
from typing import Any, Dict, Tuple, Union
from uuid import UUID

logger = logging.getLogger(__name__)

COLLECTION_ID_SEPARATOR = "___"

CompositeKey = Union[str, Tuple[str, ...]]


def build_s3_uri(bucket: str, key: str) -> str:
    """Build the canonical ``s3://bucket/key`` form used to compare files."""
    return f"s3://{bucket}/{key}"


def parse_s3_uri(uri: str) -> Dict[str, str]:
    """
    Split an ``s3://bucket/key`` URI.

    Args:
        uri: URI to split

    Returns:
        Dictionary with ``bucket`` and ``key``

    Raises:
        ValueError: If the URI does not use the s3 scheme
    """
    if not uri.startswith("s3://"):
        raise ValueError(f"Not an s3 URI: {uri}")

    bucket, _, key = uri[len("s3://"):].partition("/")
    return {"bucket": bucket, "key": key}


def construct_collection_id(name: str, version: str) -> str:
    """Build a collection id from a short name and version."""
    return f"{name}{COLLECTION_ID_SEPARATOR}{version}"


def deconstruct_collection_id(collection_id: str) -> Dict[str, str]:
    """
    Split a collection id into short name and version.

    Raises:
        ValueError: If the id has no separator
    """
    name, separator, version = collection_id.rpartition(COLLECTION_ID_SEPARATOR)
    if not separator or not name:
        raise ValueError(f"Invalid collection id: {collection_id!r}")
    return {"name": name, "version": version}


class KeyComparer:
    """
    Normalizes and orders composite keys.

    Keys are strings or tuples of strings. UUIDs and other scalars are
    converted to strings so that keys coming from different drivers compare
    the same way.
    """

    def __init__(self):
        """Initialize the key comparer."""
        logger.debug("Initialized KeyComparer")

    def normalize_key(self, key: Any) -> CompositeKey:
        """
        Normalize a key for comparison.

        Args:
            key: Key as produced by a cursor's key rule

        Returns:
            String, or tuple of strings for composite keys

        Raises:
            ValueError: If the key (or any part of it) is None
        """
        if key is None:
            raise ValueError("Keys cannot be None")

        if isinstance(key, (tuple, list)):
            return tuple(self._normalize_part(part) for part in key)

        return self._normalize_part(key)

    def compare(self, key_a: Any, key_b: Any) -> int:
        """
        Compare two keys.

        Returns:
            Negative if key_a sorts first, positive if key_b sorts first, 0 if equal
        """
        a = self.normalize_key(key_a)
        b = self.normalize_key(key_b)

        if a < b:
            return -1
        if a > b:
            return 1
        return 0

    def _normalize_part(self, value: Any) -> str:
        if value is None:
            raise ValueError("Key parts cannot be None")

        if isinstance(value, UUID):
            return str(value)

        if isinstance(value, bytes):
            return value.decode("utf-8")

        return value if isinstance(value, str) else str(value)
