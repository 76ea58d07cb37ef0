"""
Collection Reconciler

Compares the collection ids held by the search index with the ones held by
the catalog. Collection counts are bounded, so both lists are fetched in
full, sorted once and merge-joined in memory.
"""

import asyncio
import logging
from collections import Counter
from typing import List, Optional, Tuple

from src.reconciliation.differ import DataDiffer, SubReport
from src.reconciliation.interfaces import CatalogSource, IndexSource
from src.reconciliation.request import ReportRequest

logger = logging.getLogger(__name__)

ONLY_IN_INDEX = "onlyInCumulus"
ONLY_IN_CATALOG = "onlyInCmr"


def warn_duplicates(store: str, collection_ids: List[str]) -> None:
    duplicates = sorted(c for c, n in Counter(collection_ids).items() if n > 1)
    if duplicates:
        logger.warning(f"Duplicate collection ids from {store}: {duplicates}")


def append_unique(collection_ids: List[str], collection_id: str) -> None:
    """Append to a sorted list unless it already ends with the id."""
    if not collection_ids or collection_ids[-1] != collection_id:
        collection_ids.append(collection_id)


class CollectionReconciler:
    """
    Index-vs-catalog comparison of collection ids.

    only_in_a holds ids found only in the index, only_in_b ids found only in
    the catalog. In one-way mode only_in_b is always empty.
    """

    def __init__(self, catalog: CatalogSource, index: IndexSource, differ: Optional[DataDiffer] = None):
        self.catalog = catalog
        self.index = index
        self.differ = differ or DataDiffer()

    async def reconcile(self, request: ReportRequest) -> Tuple[SubReport, List[str]]:
        """
        Reconcile collections.

        Args:
            request: Normalized report request (filters and one-way flag)

        Returns:
            Tuple of (SubReport, ids of collections present in both stores)
        """
        catalog_ids, index_ids = await asyncio.gather(
            self.catalog.list_collection_ids(request),
            self.index.list_collection_ids(request),
        )

        if request.collection_ids:
            wanted = set(request.collection_ids)
            catalog_ids = [c for c in catalog_ids if c in wanted]

        warn_duplicates("index", index_ids)
        warn_duplicates("catalog", catalog_ids)

        # Duplicates stay in, so a copy without a partner is reported
        ok_collections: List[str] = []
        report = self.differ.diff_sorted(
            sorted(index_ids),
            sorted(catalog_ids),
            one_way=request.one_way,
            on_match=lambda index_id, catalog_id: append_unique(ok_collections, index_id),
        )

        logger.info(
            f"Collections: {report.ok_count} ok, {len(report.only_in_a)} only in index, "
            f"{len(report.only_in_b)} only in catalog (one_way={request.one_way})"
        )
        return report, ok_collections
