"""Abstract object store used by the reconciler.

The reconciler never talks to the Kubernetes API directly.  It is handed
an :class:`ObjectStore` that performs get/create/update operations on
certificates, secrets and workloads.  Every update carries the object's
``resource_version``; a stale version raises :class:`ConflictError` and
the caller re-reads and re-applies (see :func:`retry_on_conflict`).
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from certkeeper.models.certificate import CertificateResource
    from certkeeper.models.secret import Secret
    from certkeeper.models.workload import Workload

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONFLICT_ATTEMPTS = 5


class StoreError(Exception):
    """Raised by stores on any read or write failure.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    status:
        HTTP-like status code reported by the backend, if any.

    """

    def __init__(self, detail: str, *, status: int | None = None) -> None:
        self.detail = detail
        self.status = status
        super().__init__(detail)


class NotFoundError(StoreError):
    """The requested object does not exist."""


class ConflictError(StoreError):
    """The object changed since it was read (stale ``resource_version``)."""


class ObjectStore(abc.ABC):
    """Base class for object store implementations."""

    # -- certificates ---------------------------------------------------------

    @abc.abstractmethod
    def get_certificate(self, namespace: str, name: str) -> CertificateResource:
        """Return the certificate or raise :class:`NotFoundError`."""

    @abc.abstractmethod
    def update_certificate(self, cert: CertificateResource) -> CertificateResource:
        """Replace metadata and spec; status is ignored.

        Returns the stored object with its new ``resource_version``.
        """

    @abc.abstractmethod
    def update_certificate_status(self, cert: CertificateResource) -> CertificateResource:
        """Replace the status sub-resource only."""

    # -- secrets --------------------------------------------------------------

    @abc.abstractmethod
    def get_secret(self, namespace: str, name: str) -> Secret:
        """Return the secret or raise :class:`NotFoundError`."""

    @abc.abstractmethod
    def create_secret(self, secret: Secret) -> Secret:
        """Create *secret*; raises :class:`ConflictError` if it already exists."""

    @abc.abstractmethod
    def update_secret(self, secret: Secret) -> Secret:
        """Replace *secret* guarded by its ``resource_version``."""

    # -- workloads ------------------------------------------------------------

    @abc.abstractmethod
    def list_workloads(self, namespace: str) -> list[Workload]:
        """Return every workload in *namespace*."""

    @abc.abstractmethod
    def update_workload(self, workload: Workload) -> Workload:
        """Replace *workload* guarded by its ``resource_version``."""

    def startup_check(self) -> None:
        """Optional connectivity check.  Default implementation is a no-op.

        Raises
        ------
        StoreError
            If the backend is unreachable or misconfigured.

        """


def retry_on_conflict(
    operation: Callable[[], T],
    *,
    attempts: int = DEFAULT_CONFLICT_ATTEMPTS,
    label: str = "update",
) -> T:
    """Run *operation* until it stops raising :class:`ConflictError`.

    *operation* must perform the whole read-modify-write cycle so a retry
    starts from fresh state.  The last conflict is re-raised after
    *attempts* tries.
    """
    if attempts < 1:
        msg = "attempts must be >= 1"
        raise ValueError(msg)
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ConflictError:
            if attempt == attempts:
                raise
            log.debug("Conflict during %s (attempt %d/%d), retrying", label, attempt, attempts)
    raise AssertionError("unreachable")  # pragma: no cover
