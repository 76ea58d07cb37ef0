"""
ScyllaDB stores.

``files_by_bucket`` holds one row per inventory file, partitioned by bucket
and clustered by key, so a partition scan returns keys in byte order. The
driver's paging state is the page token.

``reconciliation_reports`` holds the tracking record of every report.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from cassandra import OperationTimedOut, ReadTimeout, Unavailable
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import Cluster, NoHostAvailable
from cassandra.query import SimpleStatement

from src.reconciliation.errors import RecordDoesNotExist, ReportNameConflictError
from src.reconciliation.interfaces import FetchFailure, FileInventory, Page, PageResult, PageSource, ReportRecordStore

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationTimedOut, ReadTimeout, Unavailable, NoHostAvailable)

# Record fields and the columns they are stored in
RECORD_COLUMNS = {
    "name": "name",
    "type": "type",
    "status": "status",
    "location": "location",
    "error": "error",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def connect_scylla(
    hosts: List[str],
    port: int = 9042,
    keyspace: str = "holdings",
    username: Optional[str] = None,
    password: Optional[str] = None
):
    """
    Connect to ScyllaDB.

    Returns:
        Tuple of (cluster, session); call cluster.shutdown() when done
    """
    logger.info(f"Connecting to ScyllaDB at {','.join(hosts)}:{port}")
    auth_provider = PlainTextAuthProvider(username=username, password=password) if username else None
    cluster = Cluster(hosts, port=port, auth_provider=auth_provider)
    session = cluster.connect(keyspace)
    return cluster, session


class ScyllaFilesSource(PageSource):
    """One bucket's inventory files, a driver page per fetch."""

    QUERY = "SELECT key, granule_id FROM files_by_bucket WHERE bucket = %s"

    def __init__(self, session, bucket: str, page_size: int = 1000):
        self.session = session
        self.bucket = bucket
        self.page_size = page_size
        self.name = f"scylla:{bucket}"

    def _execute(self, paging_state):
        statement = SimpleStatement(self.QUERY, fetch_size=self.page_size)
        result = self.session.execute(statement, (self.bucket,), paging_state=paging_state)
        return list(result.current_rows), result.paging_state

    async def fetch_page(self, token: Optional[Any]) -> PageResult:
        try:
            rows, paging_state = await asyncio.to_thread(self._execute, token)
        except RETRYABLE_ERRORS as e:
            return FetchFailure(retryable=True, message=f"files_by_bucket scan failed: {e}", cause=e)

        items = [{"key": row.key, "granuleId": row.granule_id} for row in rows]
        return Page(items=items, next_token=paging_state)


class ScyllaFileInventory(FileInventory):
    """FileInventory backed by the files_by_bucket table."""

    def __init__(self, session, page_size: int = 1000):
        self.session = session
        self.page_size = page_size

    def files_source(self, bucket: str) -> PageSource:
        return ScyllaFilesSource(self.session, bucket, page_size=self.page_size)


class ScyllaReportRecordStore(ReportRecordStore):
    """Tracking records in the reconciliation_reports table."""

    def __init__(self, session, table: str = "reconciliation_reports"):
        self.session = session
        self.table = table

    async def create(self, record: Dict[str, Any]) -> None:
        """
        Insert a new record.

        Raises:
            ReportNameConflictError: If a record with the same name exists
        """
        now = datetime.now(timezone.utc)
        row = {**record, "createdAt": now, "updatedAt": now}
        columns = [RECORD_COLUMNS[field] for field in row]
        values = [_to_column(field, value) for field, value in row.items()]

        query = (
            f"INSERT INTO {self.table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(values))}) IF NOT EXISTS"
        )
        result = await asyncio.to_thread(self.session.execute, query, values)

        if not result.was_applied:
            raise ReportNameConflictError(f"A reconciliation report named {record['name']!r} already exists")
        logger.info(f"Record created: {record['name']}")

    async def get(self, name: str) -> Dict[str, Any]:
        query = f"SELECT * FROM {self.table} WHERE name = %s"
        result = await asyncio.to_thread(self.session.execute, query, (name,))
        row = result.one()

        if row is None:
            raise RecordDoesNotExist(f"No reconciliation report record named {name!r}")
        return _from_row(row._asdict())

    async def update(self, name: str, updates: Dict[str, Any]) -> None:
        updates = {**updates, "updatedAt": datetime.now(timezone.utc)}
        assignments = [f"{RECORD_COLUMNS[field]} = %s" for field in updates]
        values = [_to_column(field, value) for field, value in updates.items()]

        query = f"UPDATE {self.table} SET {', '.join(assignments)} WHERE name = %s"
        await asyncio.to_thread(self.session.execute, query, values + [name])
        logger.debug(f"Record {name} updated: {sorted(updates)}")


def _to_column(field: str, value: Any) -> Any:
    if field == "error" and value is not None:
        return json.dumps(value)
    return value


def _from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    columns_to_fields = {column: field for field, column in RECORD_COLUMNS.items()}
    record = {}

    for column, value in row.items():
        if value is None:
            continue
        field = columns_to_fields.get(column, column)
        if field == "error":
            value = json.loads(value)
        elif isinstance(value, datetime):
            value = value.replace(tzinfo=timezone.utc).isoformat() if value.tzinfo is None else value.isoformat()
        record[field] = value

    return record
