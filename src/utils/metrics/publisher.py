"""
Metrics publisher for Prometheus HTTP server.

Starts the Prometheus HTTP server that exposes metrics on the /metrics
endpoint while a reconciliation run is in progress.
"""

import logging

from prometheus_client import REGISTRY, CollectorRegistry, start_http_server

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """
    Exposes a Prometheus registry over HTTP.
    """

    def __init__(
        self,
        port: int = 9091,
        addr: str = "0.0.0.0",
        registry: CollectorRegistry | None = None,
    ):
        """
        Initialize metrics publisher

        Args:
            port: Port to expose metrics on (default: 9091)
            addr: Address to bind (default: all interfaces)
            registry: Custom Prometheus registry (default: global REGISTRY)
        """
        self.port = port
        self.addr = addr
        self.registry = registry or REGISTRY
        self._server_started = False

    def start(self) -> None:
        """Start the metrics HTTP server"""
        if self._server_started:
            logger.warning(f"Metrics server already running on port {self.port}")
            return

        try:
            start_http_server(self.port, addr=self.addr, registry=self.registry)
        except OSError as e:
            if "Address already in use" in str(e):
                raise RuntimeError(
                    f"Metrics server port {self.port} is already in use. "
                    f"Stop the conflicting process or use a different port."
                ) from e
            raise

        self._server_started = True
        logger.info(f"Metrics server started on port {self.port}")
