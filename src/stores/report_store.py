"""
Report document and tracking record storage.

S3ReportStore writes report documents to the system bucket. The local
stores keep documents and records as JSON files, for running reports
without a deployed stack.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Union

from botocore.exceptions import ClientError

from src.reconciliation.comparer import build_s3_uri
from src.reconciliation.errors import DocumentNotFound, RecordDoesNotExist, ReportNameConflictError
from src.reconciliation.interfaces import ReportRecordStore, ReportStore
from src.stores.object_store import client_error_code

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class S3ReportStore(ReportStore):
    """Report documents as JSON objects in one bucket."""

    def __init__(self, client, bucket: str):
        """
        Args:
            client: boto3 S3 client
            bucket: System bucket holding the reports
        """
        self.client = client
        self.bucket = bucket

    def location(self, key: str) -> str:
        return build_s3_uri(self.bucket, key)

    async def write_json(self, key: str, document: Dict[str, Any]) -> None:
        body = json.dumps(document).encode("utf-8")
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType="application/json",
        )
        logger.debug(f"Wrote {len(body)} bytes to {self.location(key)}")

    async def read_json(self, key: str) -> Dict[str, Any]:
        """
        Read a JSON document.

        Raises:
            DocumentNotFound: If no object exists under the key
        """
        try:
            response = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if client_error_code(e) in NOT_FOUND_CODES:
                raise DocumentNotFound(f"No document at {self.location(key)}") from e
            raise

        body = await asyncio.to_thread(response["Body"].read)
        return json.loads(body.decode("utf-8"))


def _write_json_file(path: Path, document: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w") as f:
        json.dump(document, f, indent=2)
    tmp_path.replace(path)


def _read_json_file(path: Path) -> Dict[str, Any]:
    with open(path, "r") as f:
        return json.load(f)


class LocalReportStore(ReportStore):
    """Report documents as JSON files under a base directory."""

    def __init__(self, base_dir: Union[str, Path] = ".reconciliation"):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Report directory: {self.base_dir}")

    def _path(self, key: str) -> Path:
        return self.base_dir / key

    def location(self, key: str) -> str:
        return self._path(key).resolve().as_uri()

    async def write_json(self, key: str, document: Dict[str, Any]) -> None:
        await asyncio.to_thread(_write_json_file, self._path(key), document)
        logger.debug(f"Report document saved: {self._path(key)}")

    async def read_json(self, key: str) -> Dict[str, Any]:
        """
        Read a JSON document.

        Raises:
            DocumentNotFound: If no file exists for the key
        """
        path = self._path(key)
        if not path.exists():
            raise DocumentNotFound(f"No document at {path}")
        return await asyncio.to_thread(_read_json_file, path)


class LocalReportRecordStore(ReportRecordStore):
    """Tracking records as one JSON file per report name."""

    def __init__(self, base_dir: Union[str, Path] = ".reconciliation/records"):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _path(self, name: str) -> Path:
        return self.base_dir / f"{name}.json"

    async def create(self, record: Dict[str, Any]) -> None:
        """
        Write a new record.

        Raises:
            ReportNameConflictError: If a record with the same name exists
        """
        now = datetime.now(timezone.utc).isoformat()
        record = {**record, "createdAt": now, "updatedAt": now}
        path = self._path(record["name"])
        async with self._lock:
            if path.exists():
                raise ReportNameConflictError(f"A reconciliation report named {record['name']!r} already exists")
            await asyncio.to_thread(_write_json_file, path, record)
        logger.info(f"Record created: {record['name']}")

    async def get(self, name: str) -> Dict[str, Any]:
        path = self._path(name)
        if not path.exists():
            raise RecordDoesNotExist(f"No reconciliation report record named {name!r}")
        return await asyncio.to_thread(_read_json_file, path)

    async def update(self, name: str, updates: Dict[str, Any]) -> None:
        async with self._lock:
            record = await self.get(name)
            record.update(updates)
            record["updatedAt"] = datetime.now(timezone.utc).isoformat()
            await asyncio.to_thread(_write_json_file, self._path(name), record)
        logger.debug(f"Record {name} updated: {sorted(updates)}")
