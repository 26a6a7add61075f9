"""In-process metrics collector.

Counters are keyed by metric name plus a sorted tuple of label pairs and
rendered in Prometheus text exposition format on demand.  Known
counters carry ``# HELP`` lines; any other name is exported as a bare
counter.  An uptime gauge is always included.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict

_HELP = {
    "certkeeper_reconciliations_total": "Reconciliations by result",
    "certkeeper_certificates_issued_total": "Certificates issued",
    "certkeeper_issuance_failures_total": "Failed issuances by reason",
    "certkeeper_workload_restarts_total": "Dependent workloads restarted",
    "certkeeper_workload_restart_failures_total": "Dependent workload restarts that failed",
}

_LabelKey = tuple[tuple[str, str], ...]


def _label_key(labels: dict | None) -> _LabelKey:
    return tuple(sorted((str(k), str(v)) for k, v in (labels or {}).items()))


def _series(name: str, labels: _LabelKey) -> str:
    if not labels:
        return name
    rendered = ",".join(f'{k}="{v}"' for k, v in labels)
    return f"{name}{{{rendered}}}"


class MetricsCollector:
    """Thread-safe counter registry shared by the reconciler and the HTTP app."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[tuple[str, _LabelKey], int] = defaultdict(int)
        self._started = time.monotonic()

    def increment(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        with self._lock:
            self._values[(name, _label_key(labels))] += amount

    def get(self, name: str, labels: dict | None = None) -> int:
        """Return the counter for *name* with exactly *labels* (0 if unseen)."""
        with self._lock:
            return self._values.get((name, _label_key(labels)), 0)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {_series(name, labels): value for (name, labels), value in self._values.items()}

    def export(self) -> str:
        """Render every series in Prometheus text format."""
        with self._lock:
            items = sorted(self._values.items())

        out = [
            "# HELP certkeeper_uptime_seconds Time since process start",
            "# TYPE certkeeper_uptime_seconds gauge",
            f"certkeeper_uptime_seconds {time.monotonic() - self._started:.1f}",
            "",
        ]
        current = None
        for (name, labels), value in items:
            if name != current:
                if current is not None:
                    out.append("")
                if name in _HELP:
                    out.append(f"# HELP {name} {_HELP[name]}")
                out.append(f"# TYPE {name} counter")
                current = name
            out.append(f"{_series(name, labels)} {value}")
        if current is not None:
            out.append("")
        return "\n".join(out) + "\n"
