"""
Collaborator interfaces for holdings reconciliation.

The reconcilers never talk to a store directly. Each store is wrapped by a
concrete class in ``src.stores`` that implements one of these interfaces and
exposes its listings as sorted pages.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class Page:
    """
    One page of a sorted listing.

    Attributes:
        items: Entries on this page, in source order
        next_token: Opaque token for the following page, None on the last page
    """

    items: List[Any] = field(default_factory=list)
    next_token: Optional[Any] = None

    @property
    def is_last(self) -> bool:
        return self.next_token is None


@dataclass
class FetchFailure:
    """
    A page fetch that did not produce a page.

    Attributes:
        retryable: True if the same fetch may succeed later (e.g. read-after-write lag)
        message: Human-readable reason
        cause: Underlying driver exception, if any
    """

    retryable: bool
    message: str
    cause: Optional[BaseException] = None


PageResult = Union[Page, FetchFailure]


class PageSource(ABC):
    """A paginated listing that returns pages in a stable sort order."""

    name: str = "source"

    @abstractmethod
    async def fetch_page(self, token: Optional[Any]) -> PageResult:
        """
        Fetch one page.

        Args:
            token: None for the first page, otherwise the previous page's next_token

        Returns:
            A Page, or a FetchFailure describing why no page was produced
        """


class ObjectStore(ABC):
    """Raw object-storage listings."""

    @abstractmethod
    def listing_source(self, bucket: str) -> PageSource:
        """Objects in ``bucket`` sorted by key; items carry a ``Key`` field."""


class FileInventory(ABC):
    """The inventory's file records, scanned per bucket."""

    @abstractmethod
    def files_source(self, bucket: str) -> PageSource:
        """File records in ``bucket`` sorted by key; items carry ``key`` and ``granuleId``."""


class CatalogSource(ABC):
    """The remote metadata catalog."""

    @abstractmethod
    async def list_collection_ids(self, request) -> List[str]:
        """All catalog collection ids (``shortName___version``) visible to the request."""

    @abstractmethod
    def granule_source(self, collection_id: str) -> PageSource:
        """UMM granule items of one collection sorted by GranuleUR."""


class IndexSource(ABC):
    """The secondary search index."""

    @abstractmethod
    async def list_collection_ids(self, request) -> List[str]:
        """Collection ids in the index matching the request filters."""

    @abstractmethod
    def granule_source(self, collection_id: str, request) -> PageSource:
        """Granule records of one collection sorted by granuleId, filtered by the request."""


class InventorySource(ABC):
    """The inventory's collection and granule tables."""

    @abstractmethod
    async def list_collection_ids(self, request) -> List[str]:
        """Collection ids in the inventory matching the request filters."""

    @abstractmethod
    def granule_source(self, collection_id: str, request) -> PageSource:
        """Granule records of one collection sorted by granuleId, filtered by the request."""


class ReportStore(ABC):
    """Durable key/value storage for report documents."""

    @abstractmethod
    def location(self, key: str) -> str:
        """URI the document under ``key`` is (or will be) stored at."""

    @abstractmethod
    async def write_json(self, key: str, document: Dict[str, Any]) -> None:
        """Write ``document`` under ``key``, replacing any previous version."""

    @abstractmethod
    async def read_json(self, key: str) -> Dict[str, Any]:
        """Read the document under ``key``."""


class ReportRecordStore(ABC):
    """Tracking records for reports, keyed by report name."""

    @abstractmethod
    async def create(self, record: Dict[str, Any]) -> None:
        """Create a record; ``record['name']`` is the key."""

    @abstractmethod
    async def get(self, name: str) -> Dict[str, Any]:
        """
        Get a record by name.

        Raises:
            RecordDoesNotExist: If no record has that name
        """

    @abstractmethod
    async def update(self, name: str, updates: Dict[str, Any]) -> None:
        """Apply ``updates`` to the record named ``name``."""
