"""
Vault Client Utility for Holdings Reconciliation

Reads the database and catalog credentials used by the reconciliation stores
from HashiCorp Vault's KV v2 engine.
"""

import logging
import os
from typing import Any, Dict, Optional

import hvac
from hvac.exceptions import InvalidPath, VaultError

logger = logging.getLogger(__name__)

# Secret path for each named credential set
CREDENTIAL_PATHS = {
    "scylla": "scylla-credentials",
    "postgres": "postgres-credentials",
    "cmr": "cmr-credentials",
}


class VaultClient:
    """
    Client for interacting with HashiCorp Vault.

    Provides methods to securely retrieve the credentials required by the
    inventory, record and catalog stores.
    """

    def __init__(
        self,
        vault_url: Optional[str] = None,
        vault_token: Optional[str] = None,
        verify_ssl: bool = True,
        mount_point: str = "secret"
    ):
        """
        Initialize Vault client.

        Args:
            vault_url: Vault server URL (defaults to VAULT_ADDR env var)
            vault_token: Vault authentication token (defaults to VAULT_TOKEN env var)
            verify_ssl: Whether to verify SSL certificates
            mount_point: KV secrets engine mount point

        Raises:
            ValueError: If required parameters are missing
            VaultError: If connection to Vault fails
        """
        self.vault_url = vault_url or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.mount_point = mount_point

        if not self.vault_url:
            raise ValueError("Vault URL must be provided via parameter or VAULT_ADDR environment variable")

        if not self.vault_token:
            raise ValueError("Vault token must be provided via parameter or VAULT_TOKEN environment variable")

        try:
            self.client = hvac.Client(
                url=self.vault_url,
                token=self.vault_token,
                verify=verify_ssl
            )
            authenticated = self.client.is_authenticated()
        except Exception as e:
            logger.error(f"Failed to initialize Vault client: {e}")
            raise VaultError(f"Vault initialization failed: {e}") from e

        if not authenticated:
            raise VaultError("Failed to authenticate with Vault")

        logger.info(f"Connected to Vault at {self.vault_url}")

    def get_secret(self, path: str) -> Dict[str, Any]:
        """
        Retrieve a secret from Vault.

        Args:
            path: Secret path (e.g., "postgres-credentials")

        Returns:
            Dictionary containing secret data

        Raises:
            InvalidPath: If secret path does not exist
            VaultError: If retrieval fails
        """
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self.mount_point
            )
        except InvalidPath:
            logger.error(f"Secret not found at path: {path}")
            raise
        except Exception as e:
            logger.error(f"Failed to retrieve secret from {path}: {e}")
            raise VaultError(f"Secret retrieval failed: {e}") from e

        if not response or "data" not in response:
            raise InvalidPath(f"No data found at path: {path}")

        logger.debug(f"Retrieved secret from {path}")
        return response["data"].get("data", {})

    def get_credentials(self, name: str) -> Dict[str, str]:
        """
        Retrieve a named credential set.

        Args:
            name: One of "scylla", "postgres" or "cmr"

        Returns:
            Dictionary with the stored fields (username, password, token, ...)

        Raises:
            ValueError: If the name is not a known credential set
            VaultError: If retrieval fails
        """
        if name not in CREDENTIAL_PATHS:
            raise ValueError(f"Invalid credential set: {name}. Must be one of {sorted(CREDENTIAL_PATHS)}")

        credentials = self.get_secret(CREDENTIAL_PATHS[name])
        logger.info(f"Retrieved {name} credentials")
        return credentials

    def get_scylla_credentials(self) -> Dict[str, str]:
        return self.get_credentials("scylla")

    def get_postgres_credentials(self) -> Dict[str, str]:
        return self.get_credentials("postgres")

    def get_cmr_credentials(self) -> Dict[str, str]:
        """
        Retrieve catalog credentials.

        Returns:
            Dictionary with a ``token`` for the catalog search API
        """
        return self.get_credentials("cmr")

    def close(self):
        """Close the Vault client connection."""
        self.client = None
        logger.info("Vault client connection closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
