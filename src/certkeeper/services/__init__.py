"""Services used by the reconciler: renewal policy, secret sync and workload restarts."""

from certkeeper.services.renewal import (
    compute_renewal_time,
    compute_requeue_delay,
    needs_renewal,
)
from certkeeper.services.secret_sync import SecretSynchronizer
from certkeeper.services.workload_restart import (
    DependentWorkloadCorrelator,
    RestartOutcome,
    workload_uses_secret,
)

__all__ = [
    "DependentWorkloadCorrelator",
    "RestartOutcome",
    "SecretSynchronizer",
    "compute_renewal_time",
    "compute_requeue_delay",
    "needs_renewal",
    "workload_uses_secret",
]
