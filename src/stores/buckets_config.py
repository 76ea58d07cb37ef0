"""
Bucket configuration and access-URL construction.

BucketsConfig answers "what visibility class does this bucket have".
AccessUrlBuilder answers "what URL should the catalog show for this file"
under the two addressing modes the catalog may use.
"""

import logging
from typing import Any, Dict, List, Optional

from src.reconciliation.comparer import build_s3_uri

logger = logging.getLogger(__name__)

DATA_BUCKET_TYPES = ("private", "protected", "public")

DISTRIBUTION_MODE = "distribution"
S3_MODE = "s3"


class BucketsConfig:
    """
    Lookup over the stack's buckets config.

    The config maps a config key to ``{"name": ..., "type": ...}``, e.g.
    ``{"protected": {"name": "my-protected-bucket", "type": "protected"}}``.
    """

    def __init__(self, buckets: Dict[str, Dict[str, Any]]):
        self.buckets = buckets
        self._by_name = {
            config["name"]: (config_key, config)
            for config_key, config in buckets.items()
            if isinstance(config, dict) and config.get("name")
        }

    def key(self, bucket: Optional[str]) -> Optional[str]:
        """Config key for a bucket name, or None if the bucket is unknown."""
        entry = self._by_name.get(bucket)
        return entry[0] if entry else None

    def type(self, bucket: Optional[str]) -> Optional[str]:
        """Bucket type (private/protected/public/...), or None if unknown."""
        entry = self._by_name.get(bucket)
        return entry[1].get("type") if entry else None

    def is_private(self, bucket: Optional[str]) -> bool:
        return self.type(bucket) == "private"

    def data_buckets(self) -> List[str]:
        """Names of buckets that hold data files, in config order."""
        return [
            config["name"]
            for config in self.buckets.values()
            if isinstance(config, dict) and config.get("type") in DATA_BUCKET_TYPES
        ]


class AccessUrlBuilder:
    """
    Builds the access URL the catalog is expected to hold for a file.

    Distribution URLs are ``<endpoint>/<distribution path>/<key>``, where the
    path comes from the distribution bucket map and defaults to the bucket
    name. Direct URLs are ``s3://<bucket>/<key>``. Private files have neither.
    """

    def __init__(
        self,
        distribution_endpoint: str,
        buckets_config: BucketsConfig,
        distribution_bucket_map: Optional[Dict[str, str]] = None
    ):
        self.distribution_endpoint = distribution_endpoint.rstrip("/")
        self.buckets_config = buckets_config
        self.distribution_bucket_map = distribution_bucket_map or {}

    def __call__(self, file: Dict[str, Any], mode: str) -> Optional[str]:
        return self.url_for(file, mode)

    def url_for(self, file: Dict[str, Any], mode: str) -> Optional[str]:
        """
        Build the expected URL of a file.

        Args:
            file: File record with ``bucket`` and ``key``
            mode: "distribution" or "s3"

        Returns:
            URL string, or None for private or incomplete files

        Raises:
            ValueError: On an unknown mode
        """
        if mode not in (DISTRIBUTION_MODE, S3_MODE):
            raise ValueError(f"Unknown access URL mode: {mode!r}")

        bucket = file.get("bucket")
        key = file.get("key")
        if not bucket or not key or self.buckets_config.is_private(bucket):
            return None

        if mode == S3_MODE:
            return build_s3_uri(bucket, key)

        path = self.distribution_bucket_map.get(bucket, bucket).strip("/")
        return f"{self.distribution_endpoint}/{path}/{key}"
