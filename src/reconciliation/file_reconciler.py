"""
File Reconciler

Compares the files the inventory knows for one granule with the access URLs
the catalog declares for it. A granule's URL list is small and unordered, so
this is a hash lookup by filename rather than a merge-join.
"""

import logging
import posixpath
from typing import Any, Callable, Dict, Optional

from src.reconciliation.comparer import build_s3_uri
from src.reconciliation.differ import SubReport

logger = logging.getLogger(__name__)

# Catalog URL types that point at downloadable granule files
DOWNLOAD_URL_TYPES = ("GET DATA", "GET RELATED VISUALIZATION")
# Catalog URL types for related material (documents etc.)
RELATED_URL_TYPES = ("VIEW RELATED INFORMATION",)

ACCESS_MODES = ("distribution", "s3")


def file_name_of(file: Dict[str, Any]) -> Optional[str]:
    """The file's name, taken from ``fileName`` or the last segment of its key."""
    if file.get("fileName"):
        return file["fileName"]
    if file.get("key"):
        return posixpath.basename(file["key"])
    return None


class FileReconciler:
    """
    File-level comparison for one matched granule.

    The resulting SubReport has only_in_a = files only in the inventory
    ("onlyInCumulus") and only_in_b = URLs only in the catalog ("onlyInCmr").
    """

    def __init__(self, buckets_config, url_builder: Callable[[Dict[str, Any], str], Optional[str]]):
        """
        Initialize the file reconciler.

        Args:
            buckets_config: BucketsConfig used for visibility lookups
            url_builder: Callable(file, mode) returning the expected URL or None
        """
        self.buckets_config = buckets_config
        self.url_builder = url_builder

    def reconcile(self, granule_in_db: Dict[str, Any], granule_in_cmr: Dict[str, Any]) -> SubReport:
        """
        Reconcile one granule's files.

        Args:
            granule_in_db: ``{"granuleId", "collectionId", "files": [...]}``
            granule_in_cmr: ``{"GranuleUR", "RelatedUrls": [...]}``

        Returns:
            SubReport for this granule's files
        """
        report = SubReport()
        granule_ur = granule_in_cmr.get("GranuleUR")

        local_files: Dict[str, Dict[str, Any]] = {}
        for file in granule_in_db.get("files") or []:
            name = file_name_of(file)
            if name:
                local_files[name] = file

        for related_url in granule_in_cmr.get("RelatedUrls") or []:
            url_type = related_url.get("Type")
            if url_type not in DOWNLOAD_URL_TYPES and url_type not in RELATED_URL_TYPES:
                continue

            url = related_url.get("URL") or ""
            url_file_name = url.rstrip("/").split("/")[-1]
            local_file = local_files.get(url_file_name)

            # A name hit at the wrong address is drift on both sides
            if local_file is not None and self._is_published(local_file):
                if self._url_matches(local_file, url):
                    report.ok_count += 1
                    del local_files[url_file_name]
                    continue

            if url_type in DOWNLOAD_URL_TYPES:
                report.only_in_b.append({"URL": url, "Type": url_type, "GranuleUR": granule_ur})

        for name, file in local_files.items():
            # The catalog is expected to omit private files
            if self.buckets_config.is_private(file.get("bucket")):
                report.ok_count += 1
                continue

            uri = file.get("source")
            if file.get("bucket") and file.get("key"):
                uri = build_s3_uri(file["bucket"], file["key"])

            report.only_in_a.append({
                "fileName": name,
                "uri": uri,
                "granuleId": granule_in_db.get("granuleId"),
            })

        if report.drift_count:
            logger.debug(
                f"Granule {granule_ur}: {report.ok_count} files ok, "
                f"{len(report.only_in_a)} only in inventory, {len(report.only_in_b)} only in catalog"
            )
        return report

    def _is_published(self, file: Dict[str, Any]) -> bool:
        bucket = file.get("bucket")
        return self.buckets_config.key(bucket) is not None and not self.buckets_config.is_private(bucket)

    def _url_matches(self, file: Dict[str, Any], url: str) -> bool:
        for mode in ACCESS_MODES:
            expected = self.url_builder(file, mode)
            if expected and expected == url:
                return True
        return False
