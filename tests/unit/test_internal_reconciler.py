"""
Unit tests for the internal (index vs inventory) reconciler.
"""

import pytest

from src.reconciliation.internal_reconciler import InternalReconciler
from src.reconciliation.request import ReportRequest


def granules(*ids):
    return [{"granuleId": granule_id} for granule_id in ids]


class TestInternalReconciler:
    """Test collection and granule comparison between index and inventory."""

    @pytest.fixture
    def reconciler(self, fake_index, fake_inventory):
        index = fake_index(
            ["A___1", "B___1", "C___1"],
            {"A___1": granules("a1", "a2", "a3"), "B___1": granules("b1")},
        )
        inventory = fake_inventory(
            ["B___1", "A___1", "D___1"],
            {"A___1": granules("a2", "a3", "a4", "a5"), "B___1": granules("b1")},
        )
        return InternalReconciler(index, inventory)

    @pytest.mark.asyncio
    async def test_collections(self, reconciler):
        report, shared = await reconciler.reconcile_collections(ReportRequest())

        assert shared == ["A___1", "B___1"]
        assert report.ok_count == 2
        assert report.only_in_a == ["C___1"]
        assert report.only_in_b == ["D___1"]

    @pytest.mark.asyncio
    async def test_collections_filtered(self, reconciler):
        request = ReportRequest(collection_ids=["A___1", "D___1"])

        report, shared = await reconciler.reconcile_collections(request)

        assert shared == ["A___1"]
        assert report.only_in_a == []
        assert report.only_in_b == ["D___1"]

    @pytest.mark.asyncio
    async def test_collections_always_two_way(self, reconciler):
        request = ReportRequest(start_timestamp="2020-01-01T00:00:00.000Z", one_way=True)

        report, _ = await reconciler.reconcile_collections(request)

        assert report.only_in_b == ["D___1"]

    @pytest.mark.asyncio
    async def test_granules(self, reconciler):
        report = await reconciler.reconcile_granules("A___1", ReportRequest())

        assert report.ok_count == 2
        assert report.only_in_a == [{"granuleId": "a1", "collectionId": "A___1"}]
        assert report.only_in_b == [
            {"granuleId": "a4", "collectionId": "A___1"},
            {"granuleId": "a5", "collectionId": "A___1"},
        ]

    @pytest.mark.asyncio
    async def test_granules_of_unknown_collection(self, reconciler):
        report = await reconciler.reconcile_granules("Z___1", ReportRequest())

        assert report.ok_count == 0
        assert report.drift_count == 0

    @pytest.mark.asyncio
    async def test_duplicate_collection_ids_are_reported(self, fake_index, fake_inventory):
        reconciler = InternalReconciler(fake_index(["A___1", "A___1"]), fake_inventory(["A___1"]))

        report, shared = await reconciler.reconcile_collections(ReportRequest())

        assert shared == ["A___1"]
        assert report.ok_count == 1
        assert report.only_in_a == ["A___1"]
        assert report.only_in_b == []
