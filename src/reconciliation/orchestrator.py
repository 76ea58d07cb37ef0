"""
Report Orchestrator

Runs one reconciliation report end to end:

1. Normalize the request (input errors raise before anything is written).
2. Create the tracking record as Pending and write a zeroed checkpoint.
3. Run the bucket reconciliations (bounded concurrency) and the
   collection -> granule -> file chain (one task per shared collection).
4. Re-persist the document as each axis completes.
5. Mark the report Generated, or Failed with the error that stopped it.

A failed report keeps whatever partial document was last written.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from src.reconciliation.bucket_reconciler import BucketReconciler
from src.reconciliation.collection_reconciler import CollectionReconciler
from src.reconciliation.differ import DataDiffer
from src.reconciliation.errors import ReconciliationError, RecordDoesNotExist, ReportNameConflictError, errorify
from src.reconciliation.file_reconciler import FileReconciler
from src.reconciliation.granule_reconciler import GranuleReconciler
from src.reconciliation.interfaces import (
    CatalogSource,
    FileInventory,
    IndexSource,
    InventorySource,
    ObjectStore,
    ReportRecordStore,
    ReportStore,
)
from src.reconciliation.internal_reconciler import InternalReconciler
from src.reconciliation.report import (
    InternalReport,
    InventoryReport,
    ReconciliationReport,
    ReportStatus,
    build_report_name,
    new_report,
)
from src.reconciliation.request import ReportRequest, ReportType, normalize_request
from src.stores.buckets_config import AccessUrlBuilder, BucketsConfig
from src.utils.config import ReconciliationConfig
from src.utils.correlation import CorrelationContext

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def gather_settled(awaitables: Iterable[Awaitable[Any]]) -> List[Any]:
    """
    Await every awaitable, then raise the first failure if there was one.

    Unlike a plain gather, no result is returned (and no error raised) while
    sibling tasks are still running.
    """
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class ReportWriter:
    """
    Persists one report document, one write at a time.

    Writes run as shielded tasks under a lock, so a write interrupted by a
    timeout still lands, and lands before any later write. drain() waits for
    every write started so far.
    """

    def __init__(self, store: ReportStore, key: str):
        self.store = store
        self.key = key
        self._lock = asyncio.Lock()
        self._in_flight: Set[asyncio.Task] = set()

    async def write(self, report: ReconciliationReport) -> None:
        document = report.to_dict()
        task = asyncio.ensure_future(self._write_in_order(document))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        await asyncio.shield(task)
        logger.debug(f"Persisted report {report.name} ({report.status.value})")

    async def _write_in_order(self, document: Dict[str, Any]) -> None:
        async with self._lock:
            await self.store.write_json(self.key, document)

    async def drain(self) -> None:
        if self._in_flight:
            logger.debug(f"Waiting for {len(self._in_flight)} in-flight writes of {self.key}")
            await asyncio.gather(*self._in_flight, return_exceptions=True)


class ReportOrchestrator:
    """Creates, runs and tracks reconciliation reports."""

    def __init__(
        self,
        config: ReconciliationConfig,
        report_store: ReportStore,
        record_store: ReportRecordStore,
        object_store: Optional[ObjectStore] = None,
        file_inventory: Optional[FileInventory] = None,
        catalog: Optional[CatalogSource] = None,
        index: Optional[IndexSource] = None,
        inventory: Optional[InventorySource] = None,
        buckets_config: Optional[BucketsConfig] = None,
        url_builder: Optional[Callable[[Dict[str, Any], str], Optional[str]]] = None,
        metrics=None,
        clock: Callable[[], datetime] = _utc_now
    ):
        """
        Initialize the orchestrator.

        Only the stores a report type needs have to be supplied: Inventory
        reports use object_store, file_inventory, catalog, index and
        buckets_config; Internal reports use index and inventory.

        Args:
            config: Reconciliation settings
            report_store: Where report documents are written
            record_store: Where tracking records are kept
            object_store: Raw storage listings
            file_inventory: Inventory file records by bucket
            catalog: Remote metadata catalog
            index: Search index
            inventory: Inventory collection and granule tables
            buckets_config: Bucket visibility lookup
            url_builder: Callable(file, mode) building expected access URLs;
                defaults to an AccessUrlBuilder over buckets_config
            metrics: Optional ReconciliationMetrics
            clock: Returns the current UTC time
        """
        self.config = config
        self.report_store = report_store
        self.record_store = record_store
        self.object_store = object_store
        self.file_inventory = file_inventory
        self.catalog = catalog
        self.index = index
        self.inventory = inventory
        self.buckets_config = buckets_config
        self.url_builder = url_builder
        self.metrics = metrics
        self.clock = clock
        self.differ = DataDiffer()

        logger.info(f"Initialized ReportOrchestrator for stack {config.stack_name}")

    async def process_request(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create and run one report.

        Args:
            event: Raw request payload (reportType, startTimestamp,
                endTimestamp, collectionId/collectionIds, reportName, oneWay)

        Returns:
            The report's tracking record after the run

        Raises:
            TypeError: On malformed dates or conflicting collection id parameters
            ValueError: On an unknown report type
            ReportNameConflictError: If the requested report name is taken
        """
        request = normalize_request(event)
        started_at = self.clock()
        name = request.report_name or build_report_name(request.report_type, started_at)

        await self._ensure_name_available(name)

        key = self.config.report_key(name)
        location = self.report_store.location(key)

        await self.record_store.create({
            "name": name,
            "type": request.report_type.value,
            "status": ReportStatus.PENDING.value,
            "location": location,
        })
        logger.info(f"Created {request.report_type.value} report {name} at {location}")

        report = new_report(request, name, location, started_at)

        with CorrelationContext(name):
            await self._run(request, report, key)

        return await self.record_store.get(name)

    async def _ensure_name_available(self, name: str) -> None:
        try:
            await self.record_store.get(name)
        except RecordDoesNotExist:
            return
        raise ReportNameConflictError(f"A reconciliation report named {name!r} already exists")

    async def _run(self, request: ReportRequest, report: ReconciliationReport, key: str) -> None:
        started = time.monotonic()
        writer = ReportWriter(self.report_store, key)

        try:
            await writer.write(report)

            if request.report_type is ReportType.INTERNAL:
                work = self._run_internal(request, report, writer)
            else:
                work = self._run_inventory(request, report, writer)

            if self.config.timeout_seconds is not None:
                await asyncio.wait_for(work, timeout=self.config.timeout_seconds)
            else:
                await work

            report.mark_generated(self.clock())
            await writer.write(report)
            await self.record_store.update(report.name, {"status": ReportStatus.GENERATED.value})
            logger.info(f"Report {report.name} generated")

        except Exception as e:
            await self._fail(report, writer, e)

        finally:
            if self.metrics is not None:
                self.metrics.record_report_run(
                    report_type=report.report_type.value,
                    status=report.status.value,
                    duration_seconds=time.monotonic() - started,
                    axes=report.axes(),
                )

    async def _fail(self, report: ReconciliationReport, writer: ReportWriter, error: Exception) -> None:
        if isinstance(error, asyncio.TimeoutError):
            message = f"Report did not finish within {self.config.timeout_seconds} seconds"
        else:
            message = str(error) or type(error).__name__

        logger.exception(f"Error creating reconciliation report {report.name}: {message}")

        summary = {"Error": message, "Cause": errorify(error)}
        report.mark_failed(summary, self.clock())

        # Checkpoints abandoned by a timeout must land before the terminal document
        await writer.drain()
        try:
            await writer.write(report)
        except Exception as write_error:
            logger.error(f"Could not write failed report document {writer.key}: {write_error}")

        await self.record_store.update(report.name, {
            "status": ReportStatus.FAILED.value,
            "error": summary,
        })

    def _require(self, **stores: Any) -> None:
        missing = [name for name, store in stores.items() if store is None]
        if missing:
            raise ReconciliationError(f"Report needs stores that were not configured: {', '.join(missing)}")

    async def _run_inventory(self, request: ReportRequest, report: InventoryReport, writer: ReportWriter) -> None:
        self._require(
            object_store=self.object_store,
            file_inventory=self.file_inventory,
            catalog=self.catalog,
            index=self.index,
            buckets_config=self.buckets_config,
        )

        await gather_settled([
            self._reconcile_buckets(report, writer),
            self._reconcile_catalog(request, report, writer),
        ])

    async def _reconcile_buckets(self, report: InventoryReport, writer: ReportWriter) -> None:
        reconciler = BucketReconciler(
            self.object_store,
            self.file_inventory,
            differ=self.differ,
            cursor_options=self.config.cursor_options(),
            metrics=self.metrics,
        )
        buckets = self.buckets_config.data_buckets()
        semaphore = asyncio.Semaphore(self.config.bucket_concurrency)

        async def reconcile_bucket(bucket: str):
            async with semaphore:
                return await reconciler.reconcile(bucket)

        logger.info(f"Reconciling {len(buckets)} data buckets, {self.config.bucket_concurrency} at a time")
        bucket_reports = await gather_settled([reconcile_bucket(b) for b in buckets])

        for bucket_report in bucket_reports:
            report.files_in_cumulus.merge(bucket_report)

        await writer.write(report)

    async def _reconcile_catalog(self, request: ReportRequest, report: InventoryReport, writer: ReportWriter) -> None:
        collections = CollectionReconciler(self.catalog, self.index, differ=self.differ)
        url_builder = self.url_builder or AccessUrlBuilder(self.config.distribution_endpoint, self.buckets_config)
        granules = GranuleReconciler(
            self.catalog,
            self.index,
            FileReconciler(self.buckets_config, url_builder),
            differ=self.differ,
            cursor_options=self.config.cursor_options(),
            metrics=self.metrics,
        )

        collections_report, ok_collections = await collections.reconcile(request)
        report.collections_in_cumulus_cmr = collections_report
        await writer.write(report)

        results = await gather_settled([granules.reconcile(c, request) for c in ok_collections])

        for granules_report, files_report in results:
            report.granules_in_cumulus_cmr.merge(granules_report)
            report.files_in_cumulus_cmr.merge(files_report)

        await writer.write(report)

    async def _run_internal(self, request: ReportRequest, report: InternalReport, writer: ReportWriter) -> None:
        self._require(index=self.index, inventory=self.inventory)

        reconciler = InternalReconciler(
            self.index,
            self.inventory,
            differ=self.differ,
            cursor_options=self.config.cursor_options(),
            metrics=self.metrics,
        )

        collections_report, shared = await reconciler.reconcile_collections(request)
        report.collections = collections_report
        await writer.write(report)

        granule_reports = await gather_settled([reconciler.reconcile_granules(c, request) for c in shared])
        for granule_report in granule_reports:
            report.granules.merge(granule_report)

        await writer.write(report)
