"""
S3 object listings.

list_objects_v2 returns keys in UTF-8 binary order, which is the order
Python compares ``str`` keys in, so pages can feed a SortedCursor directly.
"""

import asyncio
import logging
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from src.reconciliation.interfaces import FetchFailure, ObjectStore, Page, PageResult, PageSource

logger = logging.getLogger(__name__)

# S3 error codes worth retrying
RETRYABLE_CODES = {
    "InternalError",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "ServiceUnavailable",
    "SlowDown",
    "Throttling",
    "500",
    "503",
}


def client_error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def fetch_failure_from_boto(error: Exception, action: str) -> FetchFailure:
    """
    Classify a boto3 error as a retryable or fatal fetch failure.

    Client errors are retryable only for throttling and server-side codes.
    Transport errors (timeouts, dropped connections) are always retryable.
    """
    if isinstance(error, ClientError):
        code = client_error_code(error)
        return FetchFailure(retryable=code in RETRYABLE_CODES, message=f"{action} failed: {code}", cause=error)
    return FetchFailure(retryable=True, message=f"{action} failed: {error}", cause=error)


class S3ListingSource(PageSource):
    """One bucket's objects, a page per list_objects_v2 call."""

    def __init__(self, client, bucket: str, page_size: int = 1000, prefix: Optional[str] = None):
        self.client = client
        self.bucket = bucket
        self.page_size = page_size
        self.prefix = prefix
        self.name = f"s3:{bucket}"

    async def fetch_page(self, token: Optional[Any]) -> PageResult:
        kwargs = {"Bucket": self.bucket, "MaxKeys": self.page_size}
        if self.prefix:
            kwargs["Prefix"] = self.prefix
        if token:
            kwargs["ContinuationToken"] = token

        try:
            response = await asyncio.to_thread(self.client.list_objects_v2, **kwargs)
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"list_objects_v2 on {self.bucket} failed: {e}")
            return fetch_failure_from_boto(e, f"list_objects_v2 {self.bucket}")

        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return Page(items=response.get("Contents", []), next_token=next_token)


class S3ObjectListing(ObjectStore):
    """ObjectStore backed by a boto3 S3 client."""

    def __init__(self, client, page_size: int = 1000):
        """
        Args:
            client: boto3 S3 client
            page_size: Keys per list call (S3 caps this at 1000)
        """
        self.client = client
        self.page_size = min(page_size, 1000)

    def listing_source(self, bucket: str) -> PageSource:
        return S3ListingSource(self.client, bucket, page_size=self.page_size)
