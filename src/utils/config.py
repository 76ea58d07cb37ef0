"""
Configuration for Holdings Reconciliation

All tunables (page sizes, concurrency, retry policy, store endpoints) live in
one ReconciliationConfig that is built once and handed to the orchestrator.
Values come from explicit arguments, then a YAML file, then environment
variables, then defaults.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from hvac.exceptions import InvalidPath

logger = logging.getLogger(__name__)

# Environment variable for each field that can be set from the environment
ENV_VARS = {
    "stack_name": "STACK_NAME",
    "system_bucket": "SYSTEM_BUCKET",
    "distribution_endpoint": "DISTRIBUTION_ENDPOINT",
    "cmr_url": "CMR_URL",
    "cmr_provider": "CMR_PROVIDER",
    "cmr_token": "CMR_TOKEN",
    "cmr_page_size": "CMR_PAGE_SIZE",
    "cmr_limit": "CMR_LIMIT",
    "es_url": "ES_URL",
    "es_index": "ES_INDEX",
    "es_page_size": "ES_PAGE_SIZE",
    "inventory_page_size": "INVENTORY_PAGE_SIZE",
    "bucket_concurrency": "BUCKET_CONCURRENCY",
    "fetch_retries": "FETCH_RETRIES",
    "fetch_max_backoff_seconds": "FETCH_MAX_BACKOFF_SECONDS",
    "timeout_seconds": "RECONCILIATION_TIMEOUT_SECONDS",
    "postgres_host": "POSTGRES_HOST",
    "postgres_port": "POSTGRES_PORT",
    "postgres_db": "POSTGRES_DB",
    "postgres_schema": "POSTGRES_SCHEMA",
    "postgres_user": "POSTGRES_USER",
    "postgres_password": "POSTGRES_PASSWORD",
    "scylla_hosts": "SCYLLA_HOSTS",
    "scylla_port": "SCYLLA_PORT",
    "scylla_keyspace": "SCYLLA_KEYSPACE",
    "scylla_user": "SCYLLA_USER",
    "scylla_password": "SCYLLA_PASSWORD",
    "metrics_gateway": "PUSHGATEWAY_URL",
}


@dataclass
class ReconciliationConfig:
    """
    Settings for one reconciliation process.

    Attributes:
        stack_name: Deployment name; prefixes report keys
        system_bucket: Bucket holding buckets config, bucket map and reports
        distribution_endpoint: Base URL of the download service
        cmr_url: Catalog search base URL
        cmr_provider: Catalog provider id
        cmr_token: Catalog access token, sent as the Authorization header
        cmr_page_size: Catalog page size
        cmr_limit: Maximum collections read from the catalog
        es_url: Search index base URL
        es_index: Search index name
        es_page_size: Search index page size
        inventory_page_size: Inventory page size (Postgres and Scylla)
        bucket_concurrency: Bucket reconciliations allowed to run at once
        fetch_retries: Retries for a retryable page-fetch failure
        fetch_max_backoff_seconds: Cap on the wait between page-fetch retries
        timeout_seconds: Wall-clock budget for one report (None for no limit)
        metrics_gateway: Prometheus Pushgateway URL (None to skip pushing)
    """

    stack_name: str = "holdings"
    system_bucket: str = ""
    distribution_endpoint: str = ""
    report_prefix: str = "reconciliation-reports"

    cmr_url: str = "https://cmr.earthdata.nasa.gov"
    cmr_provider: str = ""
    cmr_token: Optional[str] = None
    cmr_page_size: int = 200
    cmr_limit: int = 5000

    es_url: str = "http://localhost:9200"
    es_index: str = "holdings"
    es_page_size: int = 1000

    inventory_page_size: int = 1000
    bucket_concurrency: int = 2
    fetch_retries: int = 0
    fetch_max_backoff_seconds: float = 10.0
    timeout_seconds: Optional[float] = None

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "inventory"
    postgres_schema: str = "public"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"

    scylla_hosts: List[str] = field(default_factory=lambda: ["localhost"])
    scylla_port: int = 9042
    scylla_keyspace: str = "holdings"
    scylla_user: Optional[str] = None
    scylla_password: Optional[str] = None

    metrics_gateway: Optional[str] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ValueError: If any setting is out of range
        """
        for name in ("cmr_page_size", "cmr_limit", "es_page_size", "inventory_page_size", "bucket_concurrency"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1, got {getattr(self, name)}")

        if self.fetch_retries < 0:
            raise ValueError(f"fetch_retries must be >= 0, got {self.fetch_retries}")

        if self.fetch_max_backoff_seconds < 0:
            raise ValueError("fetch_max_backoff_seconds must be >= 0")

        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive when set")

    def cursor_options(self) -> Dict[str, Any]:
        """Keyword arguments for SortedCursor's retry policy."""
        return {
            "retries": self.fetch_retries,
            "max_backoff_seconds": self.fetch_max_backoff_seconds,
        }

    def report_key(self, report_name: str) -> str:
        """Storage key of a report document."""
        return f"{self.stack_name}/{self.report_prefix}/{report_name}.json"

    def buckets_config_key(self) -> str:
        return f"{self.stack_name}/workflows/buckets.json"

    def distribution_bucket_map_key(self) -> str:
        return f"{self.stack_name}/distribution_bucket_map.json"

    def apply_credentials(self, vault_client) -> None:
        """
        Replace database credentials with the ones stored in Vault.

        Args:
            vault_client: VaultClient instance
        """
        postgres = vault_client.get_postgres_credentials()
        self.postgres_user = postgres.get("username", self.postgres_user)
        self.postgres_password = postgres.get("password", self.postgres_password)

        scylla = vault_client.get_scylla_credentials()
        self.scylla_user = scylla.get("username", self.scylla_user)
        self.scylla_password = scylla.get("password", self.scylla_password)

        try:
            self.cmr_token = vault_client.get_cmr_credentials().get("token", self.cmr_token)
        except InvalidPath:
            logger.info("No catalog credentials in Vault; using unauthenticated catalog access")

        logger.info("Applied credentials from Vault")

    @classmethod
    def from_env(cls, **overrides: Any) -> "ReconciliationConfig":
        """
        Build a config from environment variables.

        Args:
            **overrides: Values that take precedence over the environment

        Returns:
            ReconciliationConfig instance
        """
        values = _values_from_env()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], **overrides: Any) -> "ReconciliationConfig":
        """
        Build a config from a YAML file, falling back to the environment.

        Args:
            path: YAML file with a mapping of field names to values
            **overrides: Values that take precedence over the file

        Returns:
            ReconciliationConfig instance

        Raises:
            ValueError: If the file is not a mapping or names unknown fields
        """
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config fields in {path}: {unknown}")

        values = _values_from_env()
        values.update(data)
        values.update({k: v for k, v in overrides.items() if v is not None})

        logger.info(f"Loaded reconciliation config from {path}")
        return cls(**values)


def _values_from_env() -> Dict[str, Any]:
    types = {f.name: f.type for f in fields(ReconciliationConfig)}
    values: Dict[str, Any] = {}

    for name, env_var in ENV_VARS.items():
        raw = os.getenv(env_var)
        if raw is None or raw == "":
            continue
        values[name] = _coerce(raw, types[name])

    return values


def _coerce(raw: str, annotation: Any) -> Any:
    if annotation in (int, "int"):
        return int(raw)
    if annotation in (float, "float", Optional[float]):
        return float(raw)
    if annotation in (List[str], "List[str]"):
        return [part.strip() for part in raw.split(",") if part.strip()]
    return raw
