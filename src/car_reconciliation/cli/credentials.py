"""
Connection string resolution and logging setup for the CLI.

The DSN comes from, in order: ``--use-vault``, ``--dsn``, the
DATABASE_CONNECTION_STRING environment variable.
"""

import argparse
import logging
import os

import requests

from utils.logging import configure_from_env
from utils.vault_client import VaultClient

from ..exceptions import ConfigurationError
from ..storage import build_dsn, normalize_dsn

logger = logging.getLogger(__name__)

DSN_ENV_VAR = "DATABASE_CONNECTION_STRING"


def setup_logging(args: argparse.Namespace) -> None:
    """
    Configure logging from LOG_* variables with CLI flags taking precedence

    Args:
        args: Parsed command-line arguments
    """
    configure_from_env(
        level=getattr(args, "log_level", None),
        log_file=getattr(args, "log_file", None),
        json_format=getattr(args, "json_logs", None),
    )


def get_dsn_from_vault(secret_name: str = "reconciliation") -> str:
    """
    Read the database connection string from Vault

    Args:
        secret_name: Secret under secret/database/

    Returns:
        Connection string, built from discrete fields if the secret has no dsn

    Raises:
        ConfigurationError: If Vault is not configured or the secret is unusable
    """
    try:
        creds = VaultClient().get_database_credentials(secret_name)
    except (ValueError, requests.RequestException) as e:
        raise ConfigurationError(f"Failed to fetch credentials from Vault: {e}") from e

    logger.info("Successfully fetched credentials from Vault")
    return creds["dsn"] if creds.get("dsn") else build_dsn(creds)


def resolve_dsn(args: argparse.Namespace) -> str:
    """
    Work out the connection string for a run

    Args:
        args: Parsed command-line arguments

    Returns:
        Validated connection string

    Raises:
        ConfigurationError: If no usable connection string is configured
    """
    if args.use_vault:
        dsn = get_dsn_from_vault(args.vault_secret)
    else:
        dsn = args.dsn or os.getenv(DSN_ENV_VAR, "")
    return normalize_dsn(dsn)
