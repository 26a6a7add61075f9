"""Error hierarchy for the reconciliation core.

Fatal errors (:class:`GenerationError`, :class:`SecretSyncError`) abort
the current reconciliation and are surfaced to the scheduler, which
retries with its own backoff.  :class:`WorkloadUpdateError` is
non-fatal: the controller reports it and carries on.

Store-level failures live in :mod:`certkeeper.store.base`; duration
parse failures are :class:`certkeeper.core.durations.InvalidDuration`.
"""

from __future__ import annotations


class ReconcileError(Exception):
    """Base class for failures raised by the reconciliation core.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the scheduler should retry.

    """

    def __init__(self, detail: str, *, retryable: bool = True) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


class GenerationError(ReconcileError):
    """Key or certificate creation failed."""


class SecretSyncError(ReconcileError):
    """Reading or writing the TLS secret failed."""


class WorkloadUpdateError(ReconcileError):
    """Writing the restart annotation on a dependent workload failed."""

    def __init__(
        self,
        detail: str,
        *,
        workload: str | None = None,
        retryable: bool = True,
    ) -> None:
        self.workload = workload
        super().__init__(detail, retryable=retryable)
