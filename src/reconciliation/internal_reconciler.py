"""
Internal Reconciler

Compares the search index with the inventory tables: collection ids first,
then the granules of every collection both stores know. Both sides are
filtered by the same request, so the comparison is always two-way.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from src.reconciliation.collection_reconciler import append_unique, warn_duplicates
from src.reconciliation.cursor import SortedCursor
from src.reconciliation.differ import DataDiffer, SubReport
from src.reconciliation.interfaces import IndexSource, InventorySource
from src.reconciliation.request import ReportRequest

logger = logging.getLogger(__name__)

ONLY_IN_INDEX = "onlyInEs"
ONLY_IN_INVENTORY = "onlyInDb"


class InternalReconciler:
    """Index-vs-inventory comparison of collections and granules."""

    def __init__(
        self,
        index: IndexSource,
        inventory: InventorySource,
        differ: Optional[DataDiffer] = None,
        cursor_options: Optional[Dict[str, Any]] = None,
        metrics=None
    ):
        self.index = index
        self.inventory = inventory
        self.differ = differ or DataDiffer()
        self.cursor_options = cursor_options or {}
        self.metrics = metrics

    async def reconcile_collections(self, request: ReportRequest) -> Tuple[SubReport, List[str]]:
        """
        Reconcile collection ids.

        Returns:
            Tuple of (SubReport with only_in_a = index-only, only_in_b =
            inventory-only, ids present in both stores)
        """
        index_ids, inventory_ids = await asyncio.gather(
            self.index.list_collection_ids(request),
            self.inventory.list_collection_ids(request),
        )

        if request.collection_ids:
            wanted = set(request.collection_ids)
            index_ids = [c for c in index_ids if c in wanted]
            inventory_ids = [c for c in inventory_ids if c in wanted]

        warn_duplicates("index", index_ids)
        warn_duplicates("inventory", inventory_ids)

        shared: List[str] = []
        report = self.differ.diff_sorted(
            sorted(index_ids),
            sorted(inventory_ids),
            on_match=lambda index_id, inventory_id: append_unique(shared, index_id),
        )

        logger.info(
            f"Internal collections: {report.ok_count} ok, {len(report.only_in_a)} only in index, "
            f"{len(report.only_in_b)} only in inventory"
        )
        return report, shared

    async def reconcile_granules(self, collection_id: str, request: ReportRequest) -> SubReport:
        """
        Reconcile the granules of one collection by granule id.

        Returns:
            SubReport with ``{granuleId, collectionId}`` entries
        """

        def granule_entry(item: Dict[str, Any]) -> Dict[str, Any]:
            return {"granuleId": item["granuleId"], "collectionId": collection_id}

        index_cursor = SortedCursor(
            self.index.granule_source(collection_id, request),
            key=lambda item: item["granuleId"],
            metrics=self.metrics,
            **self.cursor_options
        )
        inventory_cursor = SortedCursor(
            self.inventory.granule_source(collection_id, request),
            key=lambda item: item["granuleId"],
            metrics=self.metrics,
            **self.cursor_options
        )

        report = await self.differ.diff_cursors(
            index_cursor,
            inventory_cursor,
            a_entry=granule_entry,
            b_entry=granule_entry,
        )

        logger.debug(f"Internal granules of {collection_id}: {report.ok_count} ok, {report.drift_count} drift")
        return report
