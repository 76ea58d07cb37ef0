#!/usr/bin/env python3
"""
Holdings Reconciliation Tool

Creates reconciliation reports that compare object storage, the inventory,
the search index and the CMR catalog, and inspects existing reports.

Usage:
    ./scripts/reconcile.py create
    ./scripts/reconcile.py create --type Internal --collection-id MOD09GQ___006
    ./scripts/reconcile.py create --start 2020-10-01T00:00:00Z --end 2020-10-14T00:00:00Z
    ./scripts/reconcile.py status --name inventoryReport-20201014T105045123
    ./scripts/reconcile.py show --name inventoryReport-20201014T105045123

Settings come from --config (YAML) and environment variables; see
src/utils/config.py. Set JSON_LOGGING=true for structured logs.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import boto3
from botocore.config import Config as BotoConfig

from src.monitoring import ReconciliationMetrics
from src.reconciliation import ReportOrchestrator
from src.reconciliation.errors import DocumentNotFound
from src.stores import (
    AccessUrlBuilder,
    BucketsConfig,
    CmrCatalog,
    ElasticsearchIndex,
    LocalReportRecordStore,
    LocalReportStore,
    PostgresInventory,
    S3ObjectListing,
    S3ReportStore,
    ScyllaFileInventory,
    ScyllaReportRecordStore,
)
from src.stores.scylla import connect_scylla
from src.utils.config import ReconciliationConfig
from src.utils.correlation import setup_correlation_logging
from src.utils.vault_client import VaultClient

logger = logging.getLogger("reconcile")


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter with correlation ID support."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', 'N/A'),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(verbose: bool = False) -> None:
    """Configure the root logger for console or JSON output."""
    handler = logging.StreamHandler()

    if os.getenv('JSON_LOGGING', 'false').lower() == 'true':
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(correlation_id)s] %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    setup_correlation_logging(handler)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Driver chatter
    for name in ("botocore", "boto3", "urllib3", "cassandra"):
        logging.getLogger(name).setLevel(logging.WARNING)


class ReconciliationTool:
    """Wires the configured stores into a ReportOrchestrator."""

    def __init__(self, config: ReconciliationConfig, local_dir: Optional[str] = None):
        """
        Initialize reconciliation tool.

        Args:
            config: Reconciliation settings
            local_dir: Keep report documents and records in this directory
                instead of the system bucket and ScyllaDB
        """
        self.config = config
        self.local_dir = local_dir
        self.metrics = ReconciliationMetrics()
        self._closers: List[Callable[[], None]] = []
        self._s3 = None
        self._scylla_session = None

        logger.info("ReconciliationTool initialized")

    def s3_client(self):
        if self._s3 is None:
            self._s3 = boto3.client(
                "s3",
                config=BotoConfig(retries={"max_attempts": 5, "mode": "standard"}),
            )
        return self._s3

    def scylla_session(self):
        if self._scylla_session is None:
            cluster, self._scylla_session = connect_scylla(
                self.config.scylla_hosts,
                port=self.config.scylla_port,
                keyspace=self.config.scylla_keyspace,
                username=self.config.scylla_user,
                password=self.config.scylla_password,
            )
            self._closers.append(cluster.shutdown)
        return self._scylla_session

    def report_store(self):
        if self.local_dir:
            return LocalReportStore(self.local_dir)
        return S3ReportStore(self.s3_client(), self.config.system_bucket)

    def record_store(self):
        if self.local_dir:
            return LocalReportRecordStore(Path(self.local_dir) / "records")
        return ScyllaReportRecordStore(self.scylla_session())

    async def load_buckets_config(self) -> BucketsConfig:
        """Read the buckets config from the system bucket."""
        system_store = S3ReportStore(self.s3_client(), self.config.system_bucket)
        buckets = await system_store.read_json(self.config.buckets_config_key())
        return BucketsConfig(buckets)

    async def load_distribution_bucket_map(self) -> Dict[str, str]:
        system_store = S3ReportStore(self.s3_client(), self.config.system_bucket)
        try:
            return await system_store.read_json(self.config.distribution_bucket_map_key())
        except DocumentNotFound:
            logger.info("No distribution bucket map; distribution paths default to bucket names")
            return {}

    async def build_orchestrator(self, report_type: str) -> ReportOrchestrator:
        cursor_options = self.config.cursor_options()
        index = ElasticsearchIndex(
            self.config.es_url,
            self.config.es_index,
            page_size=self.config.es_page_size,
            cursor_options=cursor_options,
        )
        stores: Dict[str, Any] = {"index": index}

        if report_type.replace(" ", "").lower() == "internal":
            inventory = PostgresInventory(
                host=self.config.postgres_host,
                port=self.config.postgres_port,
                database=self.config.postgres_db,
                user=self.config.postgres_user,
                password=self.config.postgres_password,
                schema=self.config.postgres_schema,
                page_size=self.config.inventory_page_size,
            )
            self._closers.append(inventory.close)
            stores["inventory"] = inventory
        else:
            buckets_config = await self.load_buckets_config()
            bucket_map = await self.load_distribution_bucket_map()
            stores.update(
                object_store=S3ObjectListing(self.s3_client()),
                file_inventory=ScyllaFileInventory(self.scylla_session(), page_size=self.config.inventory_page_size),
                catalog=CmrCatalog(
                    self.config.cmr_url,
                    self.config.cmr_provider,
                    page_size=self.config.cmr_page_size,
                    limit=self.config.cmr_limit,
                    token=self.config.cmr_token,
                    cursor_options=cursor_options,
                ),
                buckets_config=buckets_config,
                url_builder=AccessUrlBuilder(self.config.distribution_endpoint, buckets_config, bucket_map),
            )

        return ReportOrchestrator(
            self.config,
            self.report_store(),
            self.record_store(),
            metrics=self.metrics,
            **stores
        )

    async def create(self, event: Dict[str, Any]) -> Dict[str, Any]:
        orchestrator = await self.build_orchestrator(event.get("reportType") or "Inventory")
        record = await orchestrator.process_request(event)

        if self.config.metrics_gateway:
            self.metrics.push(self.config.metrics_gateway)

        return record

    async def status(self, name: str) -> Dict[str, Any]:
        return await self.record_store().get(name)

    async def show(self, name: str) -> Dict[str, Any]:
        return await self.report_store().read_json(self.config.report_key(name))

    def close(self) -> None:
        for close in reversed(self._closers):
            close()
        self._closers = []


def build_event(args) -> Dict[str, Any]:
    """Request payload from the create command's arguments."""
    event: Dict[str, Any] = {
        "reportType": args.type,
        "startTimestamp": args.start,
        "endTimestamp": args.end,
        "reportName": args.name,
    }
    if args.collection_id:
        event["collectionId"] = args.collection_id[0] if len(args.collection_id) == 1 else args.collection_id
    if args.one_way is not None:
        event["oneWay"] = args.one_way
    return {k: v for k, v in event.items() if v is not None}


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Holdings Reconciliation Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Create command
    create_parser = subparsers.add_parser("create", help="Create a reconciliation report")
    create_parser.add_argument("--type", default="Inventory", help="Inventory, Internal or 'Granule Not Found'")
    create_parser.add_argument("--start", help="Start of the granule update window")
    create_parser.add_argument("--end", help="End of the granule update window")
    create_parser.add_argument("--collection-id", nargs="+", help="Collection id(s), e.g. MOD09GQ___006")
    create_parser.add_argument("--name", help="Report name (derived from type and time if omitted)")
    way = create_parser.add_mutually_exclusive_group()
    way.add_argument("--one-way", dest="one_way", action="store_true", default=None,
                     help="Only report drift from the inventory side")
    way.add_argument("--two-way", dest="one_way", action="store_false",
                     help="Report drift in both directions even with a time window")
    create_parser.add_argument("--timeout", type=float, help="Wall-clock budget in seconds")

    # Status command
    status_parser = subparsers.add_parser("status", help="Show a report's tracking record")
    status_parser.add_argument("--name", required=True, help="Report name")

    # Show command
    show_parser = subparsers.add_parser("show", help="Print a stored report document")
    show_parser.add_argument("--name", required=True, help="Report name")

    # Shared options
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--local-dir", help="Keep reports and records in this directory")
    parser.add_argument("--vault", action="store_true", help="Read credentials from Vault")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    args = parser.parse_args()
    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 1

    overrides = {"timeout_seconds": getattr(args, "timeout", None)}
    tool = None

    try:
        if args.config:
            config = ReconciliationConfig.from_yaml(args.config, **overrides)
        else:
            config = ReconciliationConfig.from_env(**overrides)

        if args.vault:
            with VaultClient() as vault:
                config.apply_credentials(vault)

        tool = ReconciliationTool(config, local_dir=args.local_dir)

        if args.command == "create":
            result = asyncio.run(tool.create(build_event(args)))
        elif args.command == "status":
            result = asyncio.run(tool.status(args.name))
        else:
            result = asyncio.run(tool.show(args.name))

        print(json.dumps(result, indent=2, default=str))

        if args.command == "create" and result.get("status") == "Failed":
            return 1
        return 0

    except Exception as e:
        logger.error(f"Error: {e}", exc_info=args.verbose)
        return 1

    finally:
        if tool is not None:
            tool.close()


if __name__ == "__main__":
    sys.exit(main())
