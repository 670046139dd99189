"""
HashiCorp Vault client for fetching database credentials

Reads secrets from the KV v2 engine over the HTTP API.
"""

import logging
import os
import re
from typing import Any

import requests

logger = logging.getLogger(__name__)

DEFAULT_SECRET_MOUNT = "secret"

_SECRET_PATH_RE = re.compile(r"^[a-zA-Z0-9/_-]+$")
_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


class VaultClient:
    """
    HashiCorp Vault client for secrets management

    Uses the KV v2 secrets engine; paths are given without the ``data``
    segment (``secret/database/reconciliation``) and it is inserted here.
    """

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_token: str | None = None,
        namespace: str | None = None,
        timeout: float = 10.0,
    ):
        """
        Initialize Vault client

        Args:
            vault_addr: Vault server address (default: VAULT_ADDR env var)
            vault_token: Authentication token (default: VAULT_TOKEN env var)
            namespace: Vault namespace (Vault Enterprise only)
            timeout: HTTP timeout in seconds

        Raises:
            ValueError: If the address or token is missing
        """
        vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        vault_token = vault_token or os.getenv("VAULT_TOKEN")

        if not vault_addr:
            raise ValueError(
                "Vault address not provided. Set VAULT_ADDR environment variable "
                "or pass vault_addr parameter."
            )
        if not vault_token:
            raise ValueError(
                "Vault token not provided. Set VAULT_TOKEN environment variable "
                "or pass vault_token parameter."
            )

        self.vault_addr = vault_addr.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "X-Vault-Token": vault_token,
            "Content-Type": "application/json",
        }
        if namespace:
            self.headers["X-Vault-Namespace"] = namespace

        logger.info(f"Initialized Vault client for {self.vault_addr}")

    @staticmethod
    def _kv2_path(secret_path: str) -> str:
        if not secret_path or not isinstance(secret_path, str):
            raise ValueError("secret_path must be a non-empty string")
        if ".." in secret_path or secret_path.startswith("/"):
            raise ValueError(
                f"Invalid secret_path: {secret_path}. "
                "Path traversal attempts are not allowed."
            )
        if not _SECRET_PATH_RE.match(secret_path):
            raise ValueError(
                f"Invalid secret_path: {secret_path}. Only alphanumeric characters, "
                "slashes, underscores, and hyphens are allowed."
            )

        if "/data/" in secret_path:
            return secret_path
        mount, _, rest = secret_path.partition("/")
        return f"{mount}/data/{rest}" if rest else f"{mount}/data"

    def get_secret(self, secret_path: str) -> dict[str, Any]:
        """
        Fetch secret data from the KV v2 engine

        Args:
            secret_path: Path to secret (e.g., "secret/database/reconciliation")

        Returns:
            Dictionary containing secret data

        Raises:
            ValueError: If the path is invalid, the secret is missing or empty
            requests.RequestException: If the Vault request fails
        """
        path = self._kv2_path(secret_path)
        url = f"{self.vault_addr}/v1/{path}"
        logger.debug(f"Fetching secret from: {url}")

        response = requests.get(url, headers=self.headers, timeout=self.timeout)
        if response.status_code == 404:
            raise ValueError(f"Secret not found at path: {path}")
        response.raise_for_status()

        secret_data = response.json().get("data", {}).get("data", {})
        if not secret_data:
            raise ValueError(f"No data found in secret at path: {path}")

        return secret_data

    def get_database_credentials(
        self,
        name: str = "reconciliation",
        mount: str = DEFAULT_SECRET_MOUNT,
    ) -> dict[str, Any]:
        """
        Fetch database credentials stored under ``<mount>/database/<name>``

        The secret holds either a ready ``dsn`` or the discrete fields host,
        database, username and password (port defaults to 5432).

        Args:
            name: Secret name under the database folder
            mount: KV v2 mount point

        Returns:
            Secret data with a default port filled in

        Raises:
            ValueError: If the name is invalid or required fields are missing
        """
        if not name or not _NAME_RE.match(name):
            raise ValueError(
                f"Invalid credentials name: {name!r}. Only alphanumeric characters, "
                "underscores, and hyphens are allowed."
            )

        secret = dict(self.get_secret(f"{mount}/database/{name}"))

        if not secret.get("dsn"):
            required = ("host", "database", "username", "password")
            missing = [field for field in required if field not in secret]
            if missing:
                raise ValueError(
                    f"Missing required fields in secret: {', '.join(missing)}"
                )
            secret.setdefault("port", 5432)

        logger.info(f"Fetched database credentials '{name}' from Vault")
        return secret
