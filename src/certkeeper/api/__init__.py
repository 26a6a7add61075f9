"""HTTP surface: Prometheus metrics and health probes."""

from certkeeper.api.app import MetricsServer, create_app

__all__ = ["MetricsServer", "create_app"]
