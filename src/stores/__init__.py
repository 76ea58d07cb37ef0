"""
Concrete stores for Holdings Reconciliation

Adapters that expose S3, the CMR catalog, Elasticsearch, Postgres and
ScyllaDB through the interfaces in ``src.reconciliation.interfaces``.
Driver errors are turned into FetchFailure results at the page boundary.
"""

# Load src.reconciliation first: its orchestrator imports src.stores.buckets_config.
import src.reconciliation  # noqa: F401
from src.stores.buckets_config import AccessUrlBuilder, BucketsConfig
from src.stores.catalog import CmrCatalog
from src.stores.object_store import S3ObjectListing
from src.stores.postgres_inventory import PostgresInventory
from src.stores.report_store import LocalReportRecordStore, LocalReportStore, S3ReportStore
from src.stores.scylla import ScyllaFileInventory, ScyllaReportRecordStore
from src.stores.search_index import ElasticsearchIndex

__all__ = [
    "AccessUrlBuilder",
    "BucketsConfig",
    "CmrCatalog",
    "ElasticsearchIndex",
    "LocalReportRecordStore",
    "LocalReportStore",
    "PostgresInventory",
    "S3ObjectListing",
    "S3ReportStore",
    "ScyllaFileInventory",
    "ScyllaReportRecordStore",
]
