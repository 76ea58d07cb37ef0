"""
Reconciliation Module for Holdings Reconciliation

Detects drift between independently maintained holdings of the same
objects: object storage, the inventory, the search index and the catalog.

Main components:
- cursor: Lazy peek/shift view over a paginated, sorted listing
- differ: Merge-join producing SubReports
- bucket_reconciler / collection_reconciler / granule_reconciler /
  file_reconciler / internal_reconciler: One comparison axis each
- orchestrator: Runs a whole report and tracks its status

Usage:
    from src.reconciliation import ReportOrchestrator

    orchestrator = ReportOrchestrator(config, report_store, record_store, ...)
    record = await orchestrator.process_request({"reportType": "Inventory"})
"""

from src.reconciliation.cursor import SortedCursor
from src.reconciliation.differ import DataDiffer, SubReport
from src.reconciliation.orchestrator import ReportOrchestrator
from src.reconciliation.report import InternalReport, InventoryReport, ReportStatus
from src.reconciliation.request import ReportRequest, ReportType, normalize_request

__all__ = [
    "DataDiffer",
    "InternalReport",
    "InventoryReport",
    "ReportOrchestrator",
    "ReportRequest",
    "ReportStatus",
    "ReportType",
    "SortedCursor",
    "SubReport",
    "normalize_request",
]

__version__ = "1.0.0"
