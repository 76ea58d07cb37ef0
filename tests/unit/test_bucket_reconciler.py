"""
Unit tests for the bucket reconciler.
"""

import pytest

from src.reconciliation.bucket_reconciler import BucketReconciler
from src.reconciliation.errors import FetchAbortError
from src.reconciliation.interfaces import FetchFailure, FileInventory


class TestBucketReconciler:
    """Test storage-vs-inventory comparison of one bucket."""

    @pytest.mark.asyncio
    async def test_single_bucket_scenario(self, fake_object_store, fake_file_inventory):
        reconciler = BucketReconciler(
            fake_object_store({"bkt": ["a", "b", "d"]}),
            fake_file_inventory({"bkt": [("a", "g1"), ("c", "g2"), ("d", "g1")]}),
        )

        report = await reconciler.reconcile("bkt")

        assert report.ok_count == 2
        assert report.only_in_a == ["s3://bkt/b"]
        assert report.only_in_b == [{"uri": "s3://bkt/c", "granuleId": "g2"}]
        assert report.ok_count_by_group == {"g1": 2}

    @pytest.mark.asyncio
    async def test_serialized_labels(self, fake_object_store, fake_file_inventory):
        from src.reconciliation.bucket_reconciler import OK_COUNT_BY_GRANULE, ONLY_IN_INVENTORY, ONLY_IN_STORAGE

        reconciler = BucketReconciler(
            fake_object_store({"bkt": ["a"]}),
            fake_file_inventory({"bkt": [("a", "g1")]}),
        )
        report = await reconciler.reconcile("bkt")

        assert report.to_dict(ONLY_IN_STORAGE, ONLY_IN_INVENTORY, OK_COUNT_BY_GRANULE) == {
            "okCount": 1,
            "okCountByGranule": {"g1": 1},
            "onlyInS3": [],
            "onlyInInventory": [],
        }

    @pytest.mark.asyncio
    async def test_drains_both_tails(self, fake_object_store, fake_file_inventory):
        reconciler = BucketReconciler(
            fake_object_store({"bkt": ["x", "y", "z"]}),
            fake_file_inventory({"bkt": [("a", "g1"), ("b", "g1")]}),
        )

        report = await reconciler.reconcile("bkt")

        assert report.ok_count == 0
        assert report.only_in_a == ["s3://bkt/x", "s3://bkt/y", "s3://bkt/z"]
        assert [entry["uri"] for entry in report.only_in_b] == ["s3://bkt/a", "s3://bkt/b"]

    @pytest.mark.asyncio
    async def test_page_size_does_not_change_result(self, fake_object_store, fake_file_inventory):
        keys = [f"file-{i:03d}" for i in range(0, 40, 2)]
        records = [(f"file-{i:03d}", f"g{i % 3}") for i in range(0, 40, 5)]

        results = []
        for page_size in (1, 3, 100):
            reconciler = BucketReconciler(
                fake_object_store({"bkt": keys}, page_size=page_size),
                fake_file_inventory({"bkt": records}, page_size=page_size),
            )
            results.append(await reconciler.reconcile("bkt"))

        assert results[0] == results[1] == results[2]

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, fake_object_store, scripted_source):
        failing = scripted_source([FetchFailure(retryable=False, message="table missing")])

        class BrokenInventory(FileInventory):
            def files_source(self, bucket):
                return failing

        reconciler = BucketReconciler(fake_object_store({"bkt": ["a"]}), BrokenInventory())

        with pytest.raises(FetchAbortError):
            await reconciler.reconcile("bkt")
