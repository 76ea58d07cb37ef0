"""
Elasticsearch search index.

Collections and granules live in two indices, ``<index>-collections`` and
``<index>-granules``. Granules are paged with ``search_after`` sorted by
granuleId. When the request has a time window, the collection list is the
set of collections with granules updated inside it, from a terms
aggregation over the granule index.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

from src.reconciliation.comparer import construct_collection_id
from src.reconciliation.cursor import SortedCursor
from src.reconciliation.errors import FetchAbortError
from src.reconciliation.interfaces import FetchFailure, IndexSource, Page, PageResult, PageSource

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 502, 503, 504}


def updated_at_filter(request) -> List[Dict[str, Any]]:
    """Range filter on granule updatedAt for the request's time window, if any."""
    bounds = {}
    if request.start_timestamp:
        bounds["gte"] = request.start_timestamp
    if request.end_timestamp:
        bounds["lte"] = request.end_timestamp
    return [{"range": {"updatedAt": bounds}}] if bounds else []


class ElasticsearchSearchSource(PageSource):
    """A sorted search over one index, paged with search_after."""

    def __init__(
        self,
        session: requests.Session,
        url: str,
        query: Dict[str, Any],
        sort: List[Dict[str, str]],
        page_size: int,
        timeout: float = 60.0,
        name: str = "es"
    ):
        self.session = session
        self.url = url
        self.query = query
        self.sort = sort
        self.page_size = page_size
        self.timeout = timeout
        self.name = name

    async def fetch_page(self, token: Optional[Any]) -> PageResult:
        body: Dict[str, Any] = {"size": self.page_size, "query": self.query, "sort": self.sort}
        if token:
            body["search_after"] = token

        try:
            response = await asyncio.to_thread(self.session.post, self.url, json=body, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            return FetchFailure(retryable=True, message=f"Elasticsearch request failed: {e}", cause=e)

        if response.status_code != 200:
            return FetchFailure(
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
                message=f"Elasticsearch search returned HTTP {response.status_code}: {response.text[:200]}",
            )

        hits = response.json().get("hits", {}).get("hits", [])
        next_token = hits[-1].get("sort") if len(hits) == self.page_size else None
        return Page(items=[hit["_source"] for hit in hits], next_token=next_token)


class ElasticsearchIndex(IndexSource):
    """IndexSource backed by Elasticsearch's REST API."""

    def __init__(
        self,
        base_url: str,
        index: str,
        page_size: int = 1000,
        aggregation_size: int = 10000,
        session: Optional[requests.Session] = None,
        cursor_options: Optional[Dict[str, Any]] = None,
        timeout: float = 60.0
    ):
        """
        Initialize the index client.

        Args:
            base_url: Elasticsearch URL
            index: Index name prefix
            page_size: Hits per search request
            aggregation_size: Maximum buckets of the collections aggregation
            session: requests session (a new one if omitted)
            cursor_options: Retry settings for the collection listing cursor
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.collection_index = f"{index}-collections"
        self.granule_index = f"{index}-granules"
        self.page_size = page_size
        self.aggregation_size = aggregation_size
        self.session = session or requests.Session()
        self.cursor_options = cursor_options or {}
        self.timeout = timeout

        logger.info(f"Initialized ElasticsearchIndex {index} at {self.base_url}")

    def _search_url(self, index: str) -> str:
        return f"{self.base_url}/{index}/_search"

    async def list_collection_ids(self, request) -> List[str]:
        """
        Collection ids in the index.

        With a time window, only collections with granules updated inside it.
        The list is restricted to ``request.collection_ids`` when given.
        """
        if request.is_time_filtered:
            collection_ids = await self._aggregate_active_collections(request)
        else:
            collection_ids = await self._list_all_collections()

        if request.collection_ids:
            wanted = set(request.collection_ids)
            collection_ids = [c for c in collection_ids if c in wanted]

        logger.info(f"Read {len(collection_ids)} collections from Elasticsearch")
        return sorted(collection_ids)

    async def _list_all_collections(self) -> List[str]:
        source = ElasticsearchSearchSource(
            self.session,
            self._search_url(self.collection_index),
            {"match_all": {}},
            [{"name": "asc"}, {"version": "asc"}],
            self.page_size,
            timeout=self.timeout,
            name="es:collections",
        )
        cursor = SortedCursor(source, **self.cursor_options)

        collection_ids = []
        while await cursor.peek() is not None:
            item = await cursor.shift()
            collection_ids.append(construct_collection_id(item["name"], item["version"]))
        return collection_ids

    async def _aggregate_active_collections(self, request) -> List[str]:
        body = {
            "size": 0,
            "query": {"bool": {"filter": updated_at_filter(request)}},
            "aggs": {"collections": {"terms": {"field": "collectionId", "size": self.aggregation_size}}},
        }

        try:
            response = await asyncio.to_thread(
                self.session.post, self._search_url(self.granule_index), json=body, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchAbortError("es:collections", f"collection aggregation failed: {e}", cause=e) from e

        buckets = response.json().get("aggregations", {}).get("collections", {}).get("buckets", [])
        return [bucket["key"] for bucket in buckets]

    def granule_source(self, collection_id: str, request) -> PageSource:
        filters = [{"term": {"collectionId": collection_id}}] + updated_at_filter(request)
        return ElasticsearchSearchSource(
            self.session,
            self._search_url(self.granule_index),
            {"bool": {"filter": filters}},
            [{"granuleId": "asc"}],
            self.page_size,
            timeout=self.timeout,
            name=f"es:granules:{collection_id}",
        )
