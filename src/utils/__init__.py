"""
Shared infrastructure for the reconciliation tool

Provides:
- logging: console/JSON logging with bound context
- tracing: OpenTelemetry spans
- metrics: Prometheus metric registration and the HTTP exporter
- retry: exponential backoff for transient database errors
- vault_client: HashiCorp Vault integration for credentials
"""

__version__ = "1.0.0"
__all__ = ["logging", "tracing", "metrics", "retry", "vault_client"]
