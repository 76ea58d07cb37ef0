"""
Postgres inventory tables.

Collections and granules are read from ``<schema>.collections`` and
``<schema>.granules`` (granules reference their collection through
``collection_cumulus_id``). Granules are paged by keyset on granule_id under
the "C" collation, whose byte order matches Python string comparison.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from src.reconciliation.comparer import construct_collection_id, deconstruct_collection_id
from src.reconciliation.errors import FetchAbortError
from src.reconciliation.interfaces import FetchFailure, InventorySource, Page, PageResult, PageSource

logger = logging.getLogger(__name__)


class PostgresGranuleSource(PageSource):
    """Granule ids of one collection, a keyset page per query."""

    def __init__(self, inventory: "PostgresInventory", collection_id: str, request):
        self.inventory = inventory
        self.collection = deconstruct_collection_id(collection_id)
        self.request = request
        self.name = f"postgres:granules:{collection_id}"

    def _query(self, after: Optional[str]):
        conditions = [sql.SQL("c.name = %s"), sql.SQL("c.version = %s")]
        params: List[Any] = [self.collection["name"], self.collection["version"]]

        if after is not None:
            conditions.append(sql.SQL('g.granule_id COLLATE "C" > %s'))
            params.append(after)
        if self.request.start_timestamp:
            conditions.append(sql.SQL("g.updated_at >= %s"))
            params.append(self.request.start_timestamp)
        if self.request.end_timestamp:
            conditions.append(sql.SQL("g.updated_at <= %s"))
            params.append(self.request.end_timestamp)

        query = sql.SQL(
            'SELECT g.granule_id AS "granuleId" '
            "FROM {granules} g JOIN {collections} c ON g.collection_cumulus_id = c.cumulus_id "
            'WHERE {conditions} ORDER BY g.granule_id COLLATE "C" LIMIT %s'
        ).format(
            granules=sql.Identifier(self.inventory.schema, "granules"),
            collections=sql.Identifier(self.inventory.schema, "collections"),
            conditions=sql.SQL(" AND ").join(conditions),
        )
        params.append(self.inventory.page_size)
        return query, params

    async def fetch_page(self, token: Optional[Any]) -> PageResult:
        query, params = self._query(token)

        try:
            rows = await asyncio.to_thread(self.inventory.fetch_all, query, params)
        except psycopg2.OperationalError as e:
            return FetchFailure(retryable=True, message=f"Postgres unavailable: {e}", cause=e)
        except psycopg2.Error as e:
            return FetchFailure(retryable=False, message=f"Postgres query failed: {e}", cause=e)

        next_token = rows[-1]["granuleId"] if len(rows) == self.inventory.page_size else None
        return Page(items=rows, next_token=next_token)


class PostgresInventory(InventorySource):
    """InventorySource backed by a psycopg2 connection pool."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "inventory",
        user: str = "postgres",
        password: str = "postgres",
        schema: str = "public",
        page_size: int = 1000,
        max_connections: int = 8,
        pool=None
    ):
        """
        Initialize the inventory.

        Args:
            host: PostgreSQL host
            port: PostgreSQL port
            database: PostgreSQL database
            user: PostgreSQL username
            password: PostgreSQL password
            schema: Schema holding the collections and granules tables
            page_size: Rows per granule page
            max_connections: Upper bound on pooled connections
            pool: Existing connection pool (one is created if omitted)
        """
        self.schema = schema
        self.page_size = page_size

        if pool is None:
            logger.info(f"Connecting to PostgreSQL at {host}:{port}")
            pool = ThreadedConnectionPool(
                1,
                max_connections,
                host=host,
                port=port,
                database=database,
                user=user,
                password=password
            )
        self.pool = pool

    def fetch_all(self, query, params: Sequence[Any]) -> List[Dict[str, Any]]:
        """Run a read-only query on a pooled connection and return its rows."""
        conn = self.pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(query, params)
                rows = [dict(row) for row in cursor.fetchall()]
            conn.rollback()
            return rows
        finally:
            self.pool.putconn(conn)

    async def list_collection_ids(self, request) -> List[str]:
        """
        Collection ids in the inventory.

        With a time window, only collections with granules updated inside it.
        """
        conditions = []
        params: List[Any] = []

        if request.start_timestamp:
            conditions.append(sql.SQL("g.updated_at >= %s"))
            params.append(request.start_timestamp)
        if request.end_timestamp:
            conditions.append(sql.SQL("g.updated_at <= %s"))
            params.append(request.end_timestamp)

        if conditions:
            query = sql.SQL(
                "SELECT DISTINCT c.name, c.version "
                "FROM {collections} c JOIN {granules} g ON g.collection_cumulus_id = c.cumulus_id "
                "WHERE {conditions}"
            ).format(
                collections=sql.Identifier(self.schema, "collections"),
                granules=sql.Identifier(self.schema, "granules"),
                conditions=sql.SQL(" AND ").join(conditions),
            )
        else:
            query = sql.SQL("SELECT name, version FROM {collections}").format(
                collections=sql.Identifier(self.schema, "collections"),
            )

        try:
            rows = await asyncio.to_thread(self.fetch_all, query, params)
        except psycopg2.Error as e:
            raise FetchAbortError("postgres:collections", f"collection query failed: {e}", cause=e) from e

        collection_ids = [construct_collection_id(row["name"], row["version"]) for row in rows]
        if request.collection_ids:
            wanted = set(request.collection_ids)
            collection_ids = [c for c in collection_ids if c in wanted]

        logger.info(f"Read {len(collection_ids)} collections from PostgreSQL")
        return sorted(collection_ids)

    def granule_source(self, collection_id: str, request) -> PageSource:
        return PostgresGranuleSource(self, collection_id, request)

    def close(self) -> None:
        self.pool.closeall()
        logger.info("PostgreSQL connection pool closed")
