"""
Granule Reconciler

Streams one collection's granules from the search index and from the
catalog and merge-joins them by granule id. Every matched pair has its files
reconciled before either cursor advances, so at most one granule's file list
is held at a time.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from src.reconciliation.cursor import SortedCursor
from src.reconciliation.differ import DataDiffer, SubReport
from src.reconciliation.file_reconciler import FileReconciler
from src.reconciliation.interfaces import CatalogSource, IndexSource
from src.reconciliation.request import ReportRequest

logger = logging.getLogger(__name__)


def catalog_granule_ur(item: Dict[str, Any]) -> str:
    return item["umm"]["GranuleUR"]


def catalog_granule_entry(item: Dict[str, Any]) -> Dict[str, Any]:
    """Report entry for a granule found only in the catalog."""
    umm = item["umm"]
    reference = umm.get("CollectionReference") or {}
    return {
        "GranuleUR": umm["GranuleUR"],
        "ShortName": reference.get("ShortName"),
        "Version": reference.get("Version"),
    }


class GranuleReconciler:
    """Index-vs-catalog comparison of the granules of one collection."""

    def __init__(
        self,
        catalog: CatalogSource,
        index: IndexSource,
        file_reconciler: FileReconciler,
        differ: Optional[DataDiffer] = None,
        cursor_options: Optional[Dict[str, Any]] = None,
        metrics=None
    ):
        """
        Initialize the granule reconciler.

        Args:
            catalog: Catalog granule listings
            index: Search index granule listings
            file_reconciler: Compares the files of each matched granule
            differ: Merge-join engine (a new DataDiffer if omitted)
            cursor_options: Retry settings passed to every SortedCursor
            metrics: Optional ReconciliationMetrics
        """
        self.catalog = catalog
        self.index = index
        self.file_reconciler = file_reconciler
        self.differ = differ or DataDiffer()
        self.cursor_options = cursor_options or {}
        self.metrics = metrics

    async def reconcile(self, collection_id: str, request: ReportRequest) -> Tuple[SubReport, SubReport]:
        """
        Reconcile the granules, and the files of matched granules, of one collection.

        Args:
            collection_id: Collection present in both stores
            request: Normalized report request (time window and one-way flag)

        Returns:
            Tuple of (granules SubReport, files SubReport). In both, only_in_a
            is the index side and only_in_b the catalog side.
        """
        logger.info(f"Reconciling granules of collection {collection_id}")
        files_report = SubReport()

        async def reconcile_files(index_granule: Dict[str, Any], catalog_item: Dict[str, Any]) -> None:
            granule_in_db = {
                "granuleId": index_granule["granuleId"],
                "collectionId": collection_id,
                "files": index_granule.get("files") or [],
            }
            files_report.merge(self.file_reconciler.reconcile(granule_in_db, catalog_item["umm"]))

        index_cursor = SortedCursor(
            self.index.granule_source(collection_id, request),
            key=lambda item: item["granuleId"],
            metrics=self.metrics,
            **self.cursor_options
        )
        catalog_cursor = SortedCursor(
            self.catalog.granule_source(collection_id),
            key=catalog_granule_ur,
            metrics=self.metrics,
            **self.cursor_options
        )

        granules_report = await self.differ.diff_cursors(
            index_cursor,
            catalog_cursor,
            one_way=request.one_way,
            a_entry=lambda item: {"granuleId": item["granuleId"], "collectionId": collection_id},
            b_entry=catalog_granule_entry,
            on_match=reconcile_files,
        )

        logger.info(
            f"Collection {collection_id}: granules {granules_report.ok_count} ok / "
            f"{granules_report.drift_count} drift, files {files_report.ok_count} ok / "
            f"{files_report.drift_count} drift"
        )
        return granules_report, files_report
