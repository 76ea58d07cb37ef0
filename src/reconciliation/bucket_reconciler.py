"""
Bucket Reconciler

Compares one storage bucket's object listing with the inventory's file
records for the same bucket. Both sides are compared by their s3://bucket/key
URI and streamed through cursors.
"""

import logging
from typing import Any, Dict, Optional

from src.reconciliation.comparer import build_s3_uri
from src.reconciliation.cursor import SortedCursor
from src.reconciliation.differ import DataDiffer, SubReport
from src.reconciliation.interfaces import FileInventory, ObjectStore

logger = logging.getLogger(__name__)

# Serialization labels for the storage-vs-inventory axis
ONLY_IN_STORAGE = "onlyInS3"
ONLY_IN_INVENTORY = "onlyInInventory"
OK_COUNT_BY_GRANULE = "okCountByGranule"


class BucketReconciler:
    """Storage-vs-inventory comparison for one bucket at a time."""

    def __init__(
        self,
        object_store: ObjectStore,
        file_inventory: FileInventory,
        differ: Optional[DataDiffer] = None,
        cursor_options: Optional[Dict[str, Any]] = None,
        metrics=None
    ):
        """
        Initialize the bucket reconciler.

        Args:
            object_store: Source of raw object listings
            file_inventory: Source of the inventory's file records
            differ: Merge-join engine (a new DataDiffer if omitted)
            cursor_options: Retry settings passed to every SortedCursor
            metrics: Optional ReconciliationMetrics
        """
        self.object_store = object_store
        self.file_inventory = file_inventory
        self.differ = differ or DataDiffer()
        self.cursor_options = cursor_options or {}
        self.metrics = metrics

    async def reconcile(self, bucket: str) -> SubReport:
        """
        Reconcile one bucket.

        Objects only in storage are reported as URIs; records only in the
        inventory are reported with the granule that owns them. Matches are
        also counted per granule.

        Args:
            bucket: Bucket name

        Returns:
            SubReport with only_in_a = storage-only, only_in_b = inventory-only
        """
        logger.info(f"Reconciling bucket {bucket}")

        def storage_uri(item: Dict[str, Any]) -> str:
            return build_s3_uri(bucket, item["Key"])

        def inventory_uri(item: Dict[str, Any]) -> str:
            return build_s3_uri(bucket, item["key"])

        storage_cursor = SortedCursor(
            self.object_store.listing_source(bucket),
            key=storage_uri,
            metrics=self.metrics,
            **self.cursor_options
        )
        inventory_cursor = SortedCursor(
            self.file_inventory.files_source(bucket),
            key=inventory_uri,
            metrics=self.metrics,
            **self.cursor_options
        )

        report = await self.differ.diff_cursors(
            storage_cursor,
            inventory_cursor,
            a_entry=storage_uri,
            b_entry=lambda item: {"uri": inventory_uri(item), "granuleId": item.get("granuleId")},
            group_of=lambda item: item.get("granuleId"),
        )

        logger.info(
            f"Bucket {bucket}: {report.ok_count} ok, "
            f"{len(report.only_in_a)} only in storage, {len(report.only_in_b)} only in inventory"
        )
        return report
