"""
CMR catalog client.

Collections and granules are read from the CMR search API in UMM JSON.
Paging uses the CMR-Search-After header: every response carries the token
for the following page, which is sent back as a request header.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

from src.reconciliation.comparer import construct_collection_id, deconstruct_collection_id
from src.reconciliation.cursor import SortedCursor
from src.reconciliation.interfaces import CatalogSource, FetchFailure, Page, PageResult, PageSource

logger = logging.getLogger(__name__)

SEARCH_AFTER_HEADER = "CMR-Search-After"

# 404 is included because a freshly ingested concept can briefly be missing
RETRYABLE_STATUS_CODES = {404, 429, 500, 502, 503, 504}


class CmrSearchSource(PageSource):
    """One CMR concept search (collections or granules), a page per request."""

    def __init__(
        self,
        session: requests.Session,
        url: str,
        params: Dict[str, Any],
        page_size: int,
        headers: Optional[Dict[str, str]] = None,
        limit: Optional[int] = None,
        timeout: float = 60.0,
        name: str = "cmr"
    ):
        self.session = session
        self.url = url
        self.params = params
        self.page_size = page_size
        self.headers = headers or {}
        self.limit = limit
        self.timeout = timeout
        self.name = name
        self.items_read = 0

    async def fetch_page(self, token: Optional[Any]) -> PageResult:
        headers = dict(self.headers)
        if token:
            headers[SEARCH_AFTER_HEADER] = token

        params = {**self.params, "page_size": self.page_size}

        try:
            response = await asyncio.to_thread(
                self.session.get, self.url, params=params, headers=headers, timeout=self.timeout
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            return FetchFailure(retryable=True, message=f"CMR request failed: {e}", cause=e)

        if response.status_code != 200:
            return FetchFailure(
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
                message=f"CMR search returned HTTP {response.status_code}: {response.text[:200]}",
            )

        items = response.json().get("items", [])

        if self.limit is not None:
            items = items[:max(self.limit - self.items_read, 0)]
        self.items_read += len(items)

        next_token = response.headers.get(SEARCH_AFTER_HEADER)
        if len(items) < self.page_size or (self.limit is not None and self.items_read >= self.limit):
            next_token = None

        return Page(items=items, next_token=next_token)


class CmrCatalog(CatalogSource):
    """CatalogSource backed by the CMR search API."""

    def __init__(
        self,
        base_url: str,
        provider: str,
        page_size: int = 200,
        limit: int = 5000,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        cursor_options: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the catalog client.

        Args:
            base_url: CMR root URL, e.g. https://cmr.earthdata.nasa.gov
            provider: CMR provider id; searches are restricted to it
            page_size: Items per search request
            limit: Maximum number of collections read
            token: Access token for provider-restricted metadata
            session: requests session (a new one if omitted)
            cursor_options: Retry settings for the collection listing cursor
        """
        self.base_url = base_url.rstrip("/")
        self.provider = provider
        self.page_size = page_size
        self.limit = limit
        self.session = session or requests.Session()
        self.headers = {"Authorization": token} if token else {}
        self.cursor_options = cursor_options or {}

        logger.info(f"Initialized CmrCatalog for provider {provider} at {self.base_url}")

    def _search_url(self, concept: str) -> str:
        return f"{self.base_url}/search/{concept}.umm_json"

    async def list_collection_ids(self, request) -> List[str]:
        """All collection ids of the provider, up to the configured limit."""
        source = CmrSearchSource(
            self.session,
            self._search_url("collections"),
            {"provider_short_name": self.provider, "sort_key": ["short_name", "version"]},
            self.page_size,
            headers=self.headers,
            limit=self.limit,
            name="cmr:collections",
        )
        cursor = SortedCursor(source, **self.cursor_options)

        collection_ids = []
        while await cursor.peek() is not None:
            item = await cursor.shift()
            umm = item["umm"]
            collection_ids.append(construct_collection_id(umm["ShortName"], umm["Version"]))

        logger.info(f"Read {len(collection_ids)} collections from CMR")
        return collection_ids

    def granule_source(self, collection_id: str) -> PageSource:
        parts = deconstruct_collection_id(collection_id)
        return CmrSearchSource(
            self.session,
            self._search_url("granules"),
            {
                "provider": self.provider,
                "short_name": parts["name"],
                "version": parts["version"],
                "sort_key": ["granule_ur"],
            },
            self.page_size,
            headers=self.headers,
            name=f"cmr:granules:{collection_id}",
        )
