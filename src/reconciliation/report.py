"""
Report documents.

A reconciliation report is one of a closed set of variants, chosen by report
type. All variants share a header (name, type, status, location, timing,
error and request filters) and carry their own fixed set of axis
sub-reports.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from src.reconciliation.bucket_reconciler import OK_COUNT_BY_GRANULE, ONLY_IN_INVENTORY, ONLY_IN_STORAGE
from src.reconciliation.collection_reconciler import ONLY_IN_CATALOG, ONLY_IN_INDEX
from src.reconciliation.differ import SubReport
from src.reconciliation.internal_reconciler import ONLY_IN_INDEX as INTERNAL_ONLY_IN_INDEX
from src.reconciliation.internal_reconciler import ONLY_IN_INVENTORY as INTERNAL_ONLY_IN_INVENTORY
from src.reconciliation.request import ReportRequest, ReportType, iso_timestamp


class ReportStatus(Enum):
    """Report lifecycle states. Generated and Failed are terminal."""

    PENDING = "Pending"
    GENERATED = "Generated"
    FAILED = "Failed"


def camel_case(text: str) -> str:
    """"Granule Not Found" -> "granuleNotFound"."""
    words = re.findall(r"[A-Za-z0-9]+", text)
    if not words:
        return ""
    return words[0].lower() + "".join(w[:1].upper() + w[1:].lower() for w in words[1:])


def build_report_name(report_type: ReportType, started_at: datetime) -> str:
    """
    Default report name, e.g. ``inventoryReport-20201014T105045123``.

    Args:
        report_type: Report type
        started_at: Report creation start time

    Returns:
        Report name
    """
    started_at = started_at.astimezone(timezone.utc)
    stamp = started_at.strftime("%Y%m%dT%H%M%S") + f"{started_at.microsecond // 1000:03d}"
    return f"{camel_case(report_type.value)}Report-{stamp}"


# (document field, attribute, only_in_a label, only_in_b label, group label)
AxisSpec = Tuple[str, str, str, str, Optional[str]]


@dataclass
class ReconciliationReport:
    """Header shared by every report variant."""

    name: str
    report_type: ReportType
    location: str
    create_start_time: str
    status: ReportStatus = ReportStatus.PENDING
    create_end_time: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    filters: Dict[str, Any] = field(default_factory=dict)

    AXES: ClassVar[Tuple[AxisSpec, ...]] = ()

    def axes(self) -> List[Tuple[str, SubReport]]:
        """(document field, SubReport) for every axis of this variant."""
        return [(spec[0], getattr(self, spec[1])) for spec in self.AXES]

    def mark_generated(self, now: Optional[datetime] = None) -> None:
        self.status = ReportStatus.GENERATED
        self.create_end_time = iso_timestamp(now or datetime.now(timezone.utc))

    def mark_failed(self, error: Dict[str, Any], now: Optional[datetime] = None) -> None:
        self.status = ReportStatus.FAILED
        self.error = error
        self.create_end_time = iso_timestamp(now or datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable report document."""
        document: Dict[str, Any] = {
            "name": self.name,
            "reportType": self.report_type.value,
            "status": self.status.value,
            "location": self.location,
            "createStartTime": self.create_start_time,
        }
        if self.create_end_time is not None:
            document["createEndTime"] = self.create_end_time
        if self.error is not None:
            document["error"] = self.error
        document.update(self.filters)

        for field_name, attribute, a_label, b_label, group_label in self.AXES:
            document[field_name] = getattr(self, attribute).to_dict(a_label, b_label, group_label)

        return document


@dataclass
class InventoryReport(ReconciliationReport):
    """
    Storage vs inventory, and inventory (via the index) vs catalog.

    Used for the Inventory and Granule Not Found report types.
    """

    files_in_cumulus: SubReport = field(default_factory=lambda: SubReport(ok_count_by_group={}))
    collections_in_cumulus_cmr: SubReport = field(default_factory=SubReport)
    granules_in_cumulus_cmr: SubReport = field(default_factory=SubReport)
    files_in_cumulus_cmr: SubReport = field(default_factory=SubReport)

    AXES = (
        ("filesInCumulus", "files_in_cumulus", ONLY_IN_STORAGE, ONLY_IN_INVENTORY, OK_COUNT_BY_GRANULE),
        ("collectionsInCumulusCmr", "collections_in_cumulus_cmr", ONLY_IN_INDEX, ONLY_IN_CATALOG, None),
        ("granulesInCumulusCmr", "granules_in_cumulus_cmr", ONLY_IN_INDEX, ONLY_IN_CATALOG, None),
        ("filesInCumulusCmr", "files_in_cumulus_cmr", ONLY_IN_INDEX, ONLY_IN_CATALOG, None),
    )


@dataclass
class InternalReport(ReconciliationReport):
    """Search index vs inventory tables."""

    collections: SubReport = field(default_factory=SubReport)
    granules: SubReport = field(default_factory=SubReport)

    AXES = (
        ("collections", "collections", INTERNAL_ONLY_IN_INDEX, INTERNAL_ONLY_IN_INVENTORY, None),
        ("granules", "granules", INTERNAL_ONLY_IN_INDEX, INTERNAL_ONLY_IN_INVENTORY, None),
    )


def new_report(request: ReportRequest, name: str, location: str, started_at: datetime) -> ReconciliationReport:
    """
    Build the zeroed report for a request.

    Args:
        request: Normalized report request
        name: Report name
        location: URI of the report document
        started_at: Report creation start time

    Returns:
        InternalReport for Internal requests, otherwise InventoryReport
    """
    report_class = InternalReport if request.report_type is ReportType.INTERNAL else InventoryReport
    return report_class(
        name=name,
        report_type=request.report_type,
        location=location,
        create_start_time=iso_timestamp(started_at),
        filters=request.filters(),
    )
