"""Structured logging configuration for certkeeper.

Provides JSON and text formatters, a reconcile-context filter that
injects the namespace and name of the certificate being reconciled
into every log record, and a one-call ``configure_logging`` function
driven by config settings.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from certkeeper.config.settings import LoggingSettings

# Attributes that are part of the standard LogRecord; everything
# else is considered "extra" and gets included in structured output.
_STANDARD_ATTRS = frozenset(
    {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
        # Context attributes (handled explicitly):
        "namespace",
        "certificate",
    }
)

_current_target: contextvars.ContextVar[tuple[str, str] | None] = contextvars.ContextVar(
    "certkeeper_reconcile_target",
    default=None,
)


@contextlib.contextmanager
def reconcile_context(namespace: str, name: str) -> Iterator[None]:
    """Tag every log record emitted inside the block with the certificate."""
    token = _current_target.set((namespace, name))
    try:
        yield
    finally:
        _current_target.reset(token)


def current_target() -> tuple[str, str] | None:
    return _current_target.get()


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter for production logging.

    Every record becomes a single JSON object on one line containing
    the standard fields plus any *extra* attributes passed by the
    caller or injected by filters.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        data: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created,
                tz=UTC,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }

        namespace = getattr(record, "namespace", None)
        if namespace not in (None, "-"):
            data["namespace"] = namespace

        certificate = getattr(record, "certificate", None)
        if certificate not in (None, "-"):
            data["certificate"] = certificate

        # Caller-supplied extra fields
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                data.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development / console use."""

    _FMT = "%(asctime)s %(levelname)-8s [%(namespace)s/%(certificate)s] %(name)s: %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class ReconcileContextFilter(logging.Filter):
    """Inject the certificate under reconciliation into every log record.

    Adds ``namespace`` and ``certificate`` from the active
    :func:`reconcile_context`, otherwise falls back to ``"-"``.
    Values passed explicitly through ``extra=`` win.
    """

    CONTEXT_ATTRS = frozenset({"namespace", "certificate"})

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        target = _current_target.get()
        namespace, name = target if target is not None else ("-", "-")
        if not hasattr(record, "namespace"):
            record.namespace = namespace  # type: ignore[attr-defined]
        if not hasattr(record, "certificate"):
            record.certificate = name  # type: ignore[attr-defined]
        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Configure the ``certkeeper`` logger hierarchy from settings.

    Replaces any bootstrap handlers with properly formatted output.
    The ``kopf`` hierarchy gets the same handler so operator-framework
    messages share the output format.

    Returns the root ``certkeeper`` logger.
    """
    level = getattr(logging, settings.level.upper(), logging.INFO)

    root = logging.getLogger("certkeeper")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    formatter: logging.Formatter
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(ReconcileContextFilter())
    root.addHandler(console)

    kopf_logger = logging.getLogger("kopf")
    kopf_logger.handlers.clear()
    kopf_logger.addHandler(console)
    kopf_logger.propagate = False

    # ── Quieten noisy third-party loggers ───────────────────────────
    for lib in ("kubernetes", "urllib3", "kopf", "werkzeug"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return root
