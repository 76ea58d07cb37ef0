"""
Pytest configuration and shared fakes for the unit tests.

The fakes implement the collaborator interfaces over in-memory data and
serve it in small pages, so every test also exercises page boundaries.
"""

import copy
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from src.reconciliation.cursor import SequencePageSource
from src.reconciliation.errors import DocumentNotFound, RecordDoesNotExist, ReportNameConflictError
from src.reconciliation.interfaces import (
    CatalogSource,
    FileInventory,
    IndexSource,
    InventorySource,
    ObjectStore,
    PageResult,
    PageSource,
    ReportRecordStore,
    ReportStore,
)


class FakeObjectStore(ObjectStore):
    """Bucket name -> object keys."""

    def __init__(self, buckets: Dict[str, Sequence[str]], page_size: int = 2):
        self.buckets = buckets
        self.page_size = page_size

    def listing_source(self, bucket: str) -> PageSource:
        items = [{"Key": key} for key in sorted(self.buckets.get(bucket, []))]
        return SequencePageSource(items, page_size=self.page_size, name=f"s3:{bucket}")


class FakeFileInventory(FileInventory):
    """Bucket name -> (key, granuleId) pairs."""

    def __init__(self, files: Dict[str, Sequence[Tuple[str, str]]], page_size: int = 2):
        self.files = files
        self.page_size = page_size

    def files_source(self, bucket: str) -> PageSource:
        items = [{"key": key, "granuleId": granule_id} for key, granule_id in sorted(self.files.get(bucket, []))]
        return SequencePageSource(items, page_size=self.page_size, name=f"inventory:{bucket}")


class FakeCatalog(CatalogSource):
    """Collection ids and per-collection UMM granules."""

    def __init__(
        self,
        collections: Sequence[str],
        granules: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        page_size: int = 2
    ):
        self.collections = list(collections)
        self.granules = granules or {}
        self.page_size = page_size

    async def list_collection_ids(self, request) -> List[str]:
        return list(self.collections)

    def granule_source(self, collection_id: str) -> PageSource:
        items = sorted(
            ({"umm": umm} for umm in self.granules.get(collection_id, [])),
            key=lambda item: item["umm"]["GranuleUR"],
        )
        return SequencePageSource(items, page_size=self.page_size, name=f"cmr:{collection_id}")


class FakeGranuleStore:
    """Collection ids and per-collection granule records, filterable by request."""

    def __init__(
        self,
        collections: Sequence[str],
        granules: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        page_size: int = 2
    ):
        self.collections = list(collections)
        self.granules = granules or {}
        self.page_size = page_size

    async def list_collection_ids(self, request) -> List[str]:
        if request.collection_ids:
            return [c for c in self.collections if c in request.collection_ids]
        return list(self.collections)

    def granule_source(self, collection_id: str, request) -> PageSource:
        items = sorted(self.granules.get(collection_id, []), key=lambda g: g["granuleId"])
        return SequencePageSource(items, page_size=self.page_size, name=f"granules:{collection_id}")


class FakeIndex(FakeGranuleStore, IndexSource):
    pass


class FakeInventory(FakeGranuleStore, InventorySource):
    pass


class ScriptedSource(PageSource):
    """Returns the scripted results in order, then repeats the last one."""

    def __init__(self, results: Sequence[PageResult], name: str = "scripted"):
        self.results = list(results)
        self.name = name
        self.calls: List[Any] = []

    async def fetch_page(self, token):
        self.calls.append(token)
        index = min(len(self.calls) - 1, len(self.results) - 1)
        return self.results[index]


class InMemoryReportStore(ReportStore):
    """Keeps every written version of every document."""

    def __init__(self, bucket: str = "system-bucket"):
        self.bucket = bucket
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.history: List[Tuple[str, Dict[str, Any]]] = []

    def location(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"

    async def write_json(self, key: str, document: Dict[str, Any]) -> None:
        # Round-trip through JSON so non-serializable documents fail the test
        stored = json.loads(json.dumps(document))
        self.documents[key] = stored
        self.history.append((key, stored))

    async def read_json(self, key: str) -> Dict[str, Any]:
        if key not in self.documents:
            raise DocumentNotFound(key)
        return copy.deepcopy(self.documents[key])


class InMemoryRecordStore(ReportRecordStore):
    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    async def create(self, record: Dict[str, Any]) -> None:
        if record["name"] in self.records:
            raise ReportNameConflictError(record["name"])
        self.records[record["name"]] = dict(record)
        self.events.append(("create", record["name"], dict(record)))

    async def get(self, name: str) -> Dict[str, Any]:
        if name not in self.records:
            raise RecordDoesNotExist(name)
        return dict(self.records[name])

    async def update(self, name: str, updates: Dict[str, Any]) -> None:
        self.records[name].update(updates)
        self.events.append(("update", name, dict(updates)))


def umm_granule(granule_ur: str, short_name: str, version: str, urls: Sequence[Tuple[str, str]] = ()):
    """UMM granule metadata with (URL, Type) related URLs."""
    return {
        "GranuleUR": granule_ur,
        "CollectionReference": {"ShortName": short_name, "Version": version},
        "RelatedUrls": [{"URL": url, "Type": url_type} for url, url_type in urls],
    }


@pytest.fixture
def fake_object_store():
    return FakeObjectStore


@pytest.fixture
def fake_file_inventory():
    return FakeFileInventory


@pytest.fixture
def fake_catalog():
    return FakeCatalog


@pytest.fixture
def fake_index():
    return FakeIndex


@pytest.fixture
def fake_inventory():
    return FakeInventory


@pytest.fixture
def scripted_source():
    return ScriptedSource


@pytest.fixture
def make_umm_granule():
    return umm_granule


@pytest.fixture
def report_store():
    return InMemoryReportStore()


@pytest.fixture
def record_store():
    return InMemoryRecordStore()


@pytest.fixture
def buckets_config():
    """Buckets config with one bucket of each visibility class."""
    from src.stores.buckets_config import BucketsConfig
    return BucketsConfig({
        "internal": {"name": "stack-internal", "type": "internal"},
        "private": {"name": "stack-private", "type": "private"},
        "protected": {"name": "stack-protected", "type": "protected"},
        "public": {"name": "stack-public", "type": "public"},
    })


@pytest.fixture
def url_builder(buckets_config):
    from src.stores.buckets_config import AccessUrlBuilder
    return AccessUrlBuilder(
        "https://data.example.com/",
        buckets_config,
        {"stack-protected": "protected-path"},
    )
