"""
Unit tests for request normalization.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.reconciliation.request import ReportRequest, ReportType, iso_timestamp, normalize_request


class TestReportType:
    """Test report type parsing."""

    @pytest.mark.parametrize("value,expected", [
        (None, ReportType.INVENTORY),
        ("Inventory", ReportType.INVENTORY),
        ("internal", ReportType.INTERNAL),
        ("Granule Not Found", ReportType.GRANULE_NOT_FOUND),
        ("granulenotfound", ReportType.GRANULE_NOT_FOUND),
        (ReportType.INTERNAL, ReportType.INTERNAL),
    ])
    def test_parse(self, value, expected):
        assert ReportType.parse(value) is expected

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown report type"):
            ReportType.parse("Orphans")


class TestIsoTimestamp:
    """Test timestamp normalization."""

    def test_empty_values(self):
        assert iso_timestamp(None) is None
        assert iso_timestamp("") is None

    def test_iso_string(self):
        assert iso_timestamp("2020-10-14T10:50:45Z") == "2020-10-14T10:50:45.000Z"

    def test_offset_converted_to_utc(self):
        assert iso_timestamp("2020-10-14T12:50:45.500+02:00") == "2020-10-14T10:50:45.500Z"

    def test_epoch_millis(self):
        assert iso_timestamp(0) == "1970-01-01T00:00:00.000Z"
        assert iso_timestamp(1602672645123) == "2020-10-14T10:50:45.123Z"
        assert iso_timestamp(1602672645123.0) == "2020-10-14T10:50:45.123Z"

    def test_rfc_2822_string(self):
        assert iso_timestamp("Wed, 14 Oct 2020 10:50:45 GMT") == "2020-10-14T10:50:45.000Z"

    def test_slash_date(self):
        assert iso_timestamp("2020/10/14") == "2020-10-14T00:00:00.000Z"

    def test_month_name_date(self):
        assert iso_timestamp("Oct 14 2020") == "2020-10-14T00:00:00.000Z"
        assert iso_timestamp("14 October 2020 10:50") == "2020-10-14T10:50:00.000Z"

    def test_bare_year_is_a_year(self):
        assert iso_timestamp("2020") == "2020-01-01T00:00:00.000Z"

    def test_datetime(self):
        aware = datetime(2020, 10, 14, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert iso_timestamp(aware) == "2020-10-14T10:00:00.000Z"
        assert iso_timestamp(datetime(2020, 10, 14)) == "2020-10-14T00:00:00.000Z"

    @pytest.mark.parametrize("value", ["not a date", True, [2020], {"year": 2020}])
    def test_invalid(self, value):
        with pytest.raises(TypeError, match="not a valid input for a timestamp"):
            iso_timestamp(value)


class TestNormalizeRequest:
    """Test request payload normalization."""

    def test_defaults(self):
        request = normalize_request({})

        assert request == ReportRequest()
        assert not request.is_time_filtered
        assert request.filters() == {}

    def test_single_collection_id_becomes_list(self):
        request = normalize_request({"collectionId": "MOD09GQ___006"})
        assert request.collection_ids == ["MOD09GQ___006"]

    def test_collection_id_list(self):
        request = normalize_request({"collectionIds": ["A___1", "B___1"]})
        assert request.collection_ids == ["A___1", "B___1"]

    def test_both_collection_parameters(self):
        with pytest.raises(TypeError, match="not both"):
            normalize_request({"collectionId": "A___1", "collectionIds": ["B___1"]})

    def test_internal_requires_single_collection_id(self):
        with pytest.raises(TypeError, match="Internal"):
            normalize_request({"reportType": "Internal", "collectionId": ["A___1", "B___1"]})

    def test_invalid_collection_ids(self):
        with pytest.raises(TypeError):
            normalize_request({"collectionIds": ["A___1", ""]})

    def test_time_window_defaults_to_one_way(self):
        request = normalize_request({"endTimestamp": "2020-10-14T00:00:00Z"})

        assert request.is_time_filtered
        assert request.one_way is True
        assert request.filters() == {"endTimestamp": "2020-10-14T00:00:00.000Z"}

    def test_explicit_one_way_wins(self):
        request = normalize_request({"startTimestamp": "2020-10-14T00:00:00Z", "oneWay": False})
        assert request.one_way is False

        request = normalize_request({"oneWay": True})
        assert request.one_way is True

    def test_report_name(self):
        assert normalize_request({"reportName": "nightly"}).report_name == "nightly"
        assert normalize_request({"reportName": ""}).report_name is None
