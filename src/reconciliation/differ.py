"""
Data Differ for Holdings Reconciliation

Sorted merge-join of two listings. Produces a SubReport counting matched
keys and collecting the entries found on only one side. Works either on two
in-memory sorted sequences or on two SortedCursors, in which case neither
listing is ever held in memory in full.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from src.reconciliation.comparer import KeyComparer
from src.reconciliation.cursor import SortedCursor

logger = logging.getLogger(__name__)


@dataclass
class SubReport:
    """
    Result of comparing one axis between store A and store B.

    Attributes:
        ok_count: Keys present in both stores
        only_in_a: Entries present only in store A, in the order they were seen
        only_in_b: Entries present only in store B, in the order they were seen
        ok_count_by_group: Optional matched counts per owning group (e.g. granule)
    """

    ok_count: int = 0
    only_in_a: List[Any] = field(default_factory=list)
    only_in_b: List[Any] = field(default_factory=list)
    ok_count_by_group: Optional[Dict[str, int]] = None

    @property
    def drift_count(self) -> int:
        return len(self.only_in_a) + len(self.only_in_b)

    def count_group(self, group: str, amount: int = 1) -> None:
        if self.ok_count_by_group is None:
            self.ok_count_by_group = {}
        self.ok_count_by_group[group] = self.ok_count_by_group.get(group, 0) + amount

    def merge(self, other: "SubReport") -> "SubReport":
        """
        Fold another sub-report into this one by addition and concatenation.

        Returns:
            self, for chaining
        """
        self.ok_count += other.ok_count
        self.only_in_a.extend(other.only_in_a)
        self.only_in_b.extend(other.only_in_b)

        if other.ok_count_by_group is not None:
            for group, count in other.ok_count_by_group.items():
                self.count_group(group, count)

        return self

    def to_dict(
        self,
        a_label: str,
        b_label: str,
        group_label: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Serialize with axis-specific labels.

        Args:
            a_label: Key for only_in_a (e.g. "onlyInS3")
            b_label: Key for only_in_b (e.g. "onlyInInventory")
            group_label: Key for ok_count_by_group, omitted if None

        Returns:
            JSON-serializable dictionary
        """
        data: Dict[str, Any] = {"okCount": self.ok_count}
        if group_label is not None:
            data[group_label] = dict(self.ok_count_by_group or {})
        data[a_label] = list(self.only_in_a)
        data[b_label] = list(self.only_in_b)
        return data


def _identity(item: Any) -> Any:
    return item


class DataDiffer:
    """
    Merge-join of two sorted listings.

    Store A is the side whose exclusive entries are always reported. Store B
    is the side that one-way mode suppresses: in one-way mode entries found
    only in B are skipped and B's tail is never read.
    """

    def __init__(self, comparer: Optional[KeyComparer] = None):
        """Initialize the data differ."""
        self.comparer = comparer or KeyComparer()
        logger.debug("Initialized DataDiffer")

    def diff_sorted(
        self,
        a_items: Sequence[Any],
        b_items: Sequence[Any],
        one_way: bool = False,
        key: Optional[Callable[[Any], Any]] = None,
        on_match: Optional[Callable[[Any, Any], None]] = None
    ) -> SubReport:
        """
        Merge-join two in-memory sorted sequences.

        Args:
            a_items: Sorted items from store A
            b_items: Sorted items from store B
            one_way: Suppress entries found only in B
            key: Extracts the comparison key (identity if omitted)
            on_match: Called with (a_item, b_item) for every match, in key order

        Returns:
            SubReport of the comparison
        """
        key = key or _identity
        report = SubReport()
        i = j = 0

        while i < len(a_items) and j < len(b_items):
            order = self.comparer.compare(key(a_items[i]), key(b_items[j]))

            if order < 0:
                report.only_in_a.append(a_items[i])
                i += 1
            elif order > 0:
                if not one_way:
                    report.only_in_b.append(b_items[j])
                j += 1
            else:
                report.ok_count += 1
                if on_match is not None:
                    on_match(a_items[i], b_items[j])
                i += 1
                j += 1

        report.only_in_a.extend(a_items[i:])
        if not one_way:
            report.only_in_b.extend(b_items[j:])

        logger.debug(
            f"In-memory diff: {report.ok_count} ok, {len(report.only_in_a)} only in A, "
            f"{len(report.only_in_b)} only in B"
        )
        return report

    async def diff_cursors(
        self,
        a_cursor: SortedCursor,
        b_cursor: SortedCursor,
        one_way: bool = False,
        a_entry: Optional[Callable[[Any], Any]] = None,
        b_entry: Optional[Callable[[Any], Any]] = None,
        group_of: Optional[Callable[[Any], str]] = None,
        on_match: Optional[Callable[[Any, Any], Awaitable[None]]] = None
    ) -> SubReport:
        """
        Merge-join two cursors.

        Comparisons and emissions happen strictly in the order keys are
        consumed. ``on_match`` is awaited before either cursor advances, so
        nothing from later keys is buffered while it runs.

        Args:
            a_cursor: Cursor over store A
            b_cursor: Cursor over store B
            one_way: Suppress entries found only in B and skip B's tail
            a_entry: Maps an A item to its report entry (identity if omitted)
            b_entry: Maps a B item to its report entry (identity if omitted)
            group_of: Maps a matched B item to its owning group for ok_count_by_group
            on_match: Coroutine called with (a_item, b_item) for every match

        Returns:
            SubReport of the comparison
        """
        a_entry = a_entry or _identity
        b_entry = b_entry or _identity
        report = SubReport(ok_count_by_group={} if group_of is not None else None)

        next_a, next_b = await asyncio.gather(a_cursor.peek(), b_cursor.peek())

        while next_a is not None and next_b is not None:
            order = self.comparer.compare(a_cursor.key(next_a), b_cursor.key(next_b))

            if order < 0:
                report.only_in_a.append(a_entry(next_a))
                await a_cursor.shift()
            elif order > 0:
                if not one_way:
                    report.only_in_b.append(b_entry(next_b))
                await b_cursor.shift()
            else:
                report.ok_count += 1
                if group_of is not None:
                    report.count_group(group_of(next_b))
                if on_match is not None:
                    await on_match(next_a, next_b)
                await a_cursor.shift()
                await b_cursor.shift()

            next_a, next_b = await asyncio.gather(a_cursor.peek(), b_cursor.peek())

        # Drain the tails
        while await a_cursor.peek() is not None:
            report.only_in_a.append(a_entry(await a_cursor.shift()))

        if not one_way:
            while await b_cursor.peek() is not None:
                report.only_in_b.append(b_entry(await b_cursor.shift()))

        logger.debug(
            f"Cursor diff {a_cursor.source.name} vs {b_cursor.source.name}: "
            f"{report.ok_count} ok, {len(report.only_in_a)} only in A, "
            f"{len(report.only_in_b)} only in B"
        )
        return report
