"""
Report requests.

Turns the loosely-typed request payload into a ReportRequest, normalizing
timestamps to ISO-8601 and collection ids to a list. Anything malformed
raises before a report record is created.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from dateutil import parser as dtparser

logger = logging.getLogger(__name__)

PARSE_DEFAULT = datetime(1970, 1, 1)


class ReportType(Enum):
    """Supported report types."""

    INVENTORY = "Inventory"
    INTERNAL = "Internal"
    GRANULE_NOT_FOUND = "Granule Not Found"

    @classmethod
    def parse(cls, value: Any) -> "ReportType":
        """
        Parse a report type, ignoring case and spaces.

        The set of types is closed: a name outside the members is rejected
        here instead of being passed through to fail later in the run.

        Args:
            value: Report type name, a ReportType, or None for the default

        Returns:
            ReportType member

        Raises:
            ValueError: If the name is not a known report type
        """
        if value is None:
            return cls.INVENTORY
        if isinstance(value, cls):
            return value

        compact = str(value).replace(" ", "").lower()
        for member in cls:
            if member.value.replace(" ", "").lower() == compact:
                return member

        raise ValueError(f"Unknown report type: {value!r}. Must be one of {[m.value for m in cls]}")


@dataclass
class ReportRequest:
    """
    Normalized report request.

    Attributes:
        report_type: Which report to build
        start_timestamp: ISO-8601 lower bound on granule update time, or None
        end_timestamp: ISO-8601 upper bound on granule update time, or None
        collection_ids: Collections to restrict the report to, or None for all
        report_name: Explicit report name, or None to derive one
        one_way: Only report drift in the index-to-catalog direction
    """

    report_type: ReportType = ReportType.INVENTORY
    start_timestamp: Optional[str] = None
    end_timestamp: Optional[str] = None
    collection_ids: Optional[List[str]] = None
    report_name: Optional[str] = None
    one_way: bool = False

    @property
    def is_time_filtered(self) -> bool:
        return bool(self.start_timestamp or self.end_timestamp)

    def filters(self) -> Dict[str, Any]:
        """Request filters as they appear in the report header."""
        filters = {
            "startTimestamp": self.start_timestamp,
            "endTimestamp": self.end_timestamp,
            "collectionIds": self.collection_ids,
        }
        return {k: v for k, v in filters.items() if v is not None}


def iso_timestamp(value: Any) -> Optional[str]:
    """
    Convert a date-like value to an ISO-8601 UTC timestamp.

    Accepts datetimes, epoch milliseconds (int or float only) and any
    string dateutil can parse: ISO-8601, RFC 2822, "2020/10/14",
    "Oct 14 2020" or a bare year. Naive values are taken as UTC.

    Args:
        value: Date-like input, or None/empty

    Returns:
        Timestamp such as "2020-10-14T10:50:45.000Z", or None for empty input

    Raises:
        TypeError: If the value cannot be read as a date
    """
    if value is None or value == "":
        return None

    parsed = _parse_datetime(value)
    if parsed is None:
        raise TypeError(f"{value!r} is not a valid input for a timestamp.")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)

    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return _from_epoch_millis(value)

    if not isinstance(value, str):
        return None

    # Missing fields come from the default, so "2020" reads as 2020-01-01
    try:
        return dtparser.parse(value.strip(), default=PARSE_DEFAULT)
    except (ValueError, OverflowError):
        return None


def _from_epoch_millis(millis: float) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def normalize_request(event: Dict[str, Any]) -> ReportRequest:
    """
    Normalize a raw request payload.

    ``collectionId`` may be a string or a list and becomes ``collection_ids``.
    Supplying ``collectionId`` and ``collectionIds`` together is an error.
    When ``oneWay`` is not given it is inferred from the time window.

    Args:
        event: Request payload (camelCase keys)

    Returns:
        ReportRequest

    Raises:
        TypeError: On unparsable timestamps or invalid collection id parameters
        ValueError: On an unknown report type
    """
    report_type = ReportType.parse(event.get("reportType"))
    start_timestamp = iso_timestamp(event.get("startTimestamp"))
    end_timestamp = iso_timestamp(event.get("endTimestamp"))

    collection_id = event.get("collectionId")
    plural_ids = event.get("collectionIds")

    if collection_id and plural_ids:
        raise TypeError("Supply either `collectionId` or `collectionIds`, not both.")

    if collection_id and report_type is ReportType.INTERNAL and not isinstance(collection_id, str):
        raise TypeError(f"{collection_id!r} is not valid input for an 'Internal' report.")

    collection_ids = _as_id_list(collection_id or plural_ids)

    one_way = event.get("oneWay")
    if one_way is None:
        one_way = bool(start_timestamp or end_timestamp)

    request = ReportRequest(
        report_type=report_type,
        start_timestamp=start_timestamp,
        end_timestamp=end_timestamp,
        collection_ids=collection_ids,
        report_name=event.get("reportName") or None,
        one_way=bool(one_way),
    )

    logger.debug(f"Normalized report request: {request}")
    return request


def _as_id_list(value: Any) -> Optional[List[str]]:
    if not value:
        return None

    ids = [value] if isinstance(value, str) else list(value)
    invalid = [i for i in ids if not isinstance(i, str) or not i]
    if invalid:
        raise TypeError(f"Collection ids must be non-empty strings, got {invalid!r}")

    return ids
