"""Logging subsystem for certkeeper.

Public API::

    from certkeeper.logging import configure_logging, reconcile_context

    configure_logging(settings.logging)
    with reconcile_context("default", "web-tls"):
        ...
"""

from certkeeper.logging.sanitize import sanitize_for_logs
from certkeeper.logging.setup import (
    ReconcileContextFilter,
    configure_logging,
    reconcile_context,
)

__all__ = [
    "ReconcileContextFilter",
    "configure_logging",
    "reconcile_context",
    "sanitize_for_logs",
]
