"""In-process object store.

Keeps certificates, secrets and workloads in dictionaries and mimics the
API server semantics the reconciler relies on: monotonically increasing
``resource_version`` values with optimistic-concurrency checks, a status
sub-resource that is written separately from metadata and spec,
finalizer-gated deletion, and owner-reference cascading of secrets.

Every write is recorded in :attr:`MemoryStore.operations` so callers can
assert exactly which mutations happened.
"""

from __future__ import annotations

import itertools
import logging
import threading
import uuid
from dataclasses import replace
from typing import TYPE_CHECKING

from certkeeper.core.timestamps import utcnow
from certkeeper.store.base import ConflictError, NotFoundError, ObjectStore

if TYPE_CHECKING:
    from certkeeper.models.certificate import CertificateResource
    from certkeeper.models.secret import Secret
    from certkeeper.models.workload import Workload

log = logging.getLogger(__name__)


class MemoryStore(ObjectStore):
    """Thread-safe dictionary-backed :class:`ObjectStore`."""

    def __init__(self, settings=None) -> None:
        self._settings = settings
        self._lock = threading.RLock()
        self._versions = itertools.count(1)
        self._certificates: dict[tuple[str, str], CertificateResource] = {}
        self._secrets: dict[tuple[str, str], Secret] = {}
        self._workloads: dict[tuple[str, str], Workload] = {}
        self.operations: list[tuple[str, str]] = []

    # -- helpers --------------------------------------------------------------

    def _next_version(self) -> str:
        return str(next(self._versions))

    def _record(self, op: str, namespace: str, name: str) -> None:
        self.operations.append((op, f"{namespace}/{name}"))

    @staticmethod
    def _check_version(kind: str, key: tuple[str, str], stored, incoming) -> None:
        if incoming.resource_version is None:
            return
        if stored.resource_version != incoming.resource_version:
            msg = (
                f"{kind} {key[0]}/{key[1]} has been modified "
                f"(have {incoming.resource_version}, stored {stored.resource_version})"
            )
            raise ConflictError(msg, status=409)

    def operations_of(self, op: str) -> list[str]:
        """Return the keys of every recorded operation named *op*."""
        return [key for name, key in self.operations if name == op]

    # -- seeding (bypasses the journal) ---------------------------------------

    def add_certificate(self, cert: CertificateResource) -> CertificateResource:
        with self._lock:
            stored = replace(
                cert,
                uid=cert.uid or str(uuid.uuid4()),
                resource_version=self._next_version(),
            )
            self._certificates[(cert.namespace, cert.name)] = stored
            return stored

    def add_secret(self, secret: Secret) -> Secret:
        with self._lock:
            stored = replace(secret, resource_version=self._next_version())
            self._secrets[(secret.namespace, secret.name)] = stored
            return stored

    def add_workload(self, workload: Workload) -> Workload:
        with self._lock:
            stored = replace(workload, resource_version=self._next_version())
            self._workloads[(workload.namespace, workload.name)] = stored
            return stored

    def delete_certificate(self, namespace: str, name: str) -> None:
        """Request deletion the way ``kubectl delete`` would.

        With finalizers present only the deletion timestamp is set;
        otherwise the object and the secrets it owns are removed.
        """
        with self._lock:
            key = (namespace, name)
            cert = self._certificates.get(key)
            if cert is None:
                msg = f"certificate {namespace}/{name} not found"
                raise NotFoundError(msg, status=404)
            if cert.finalizers:
                if cert.deletion_timestamp is None:
                    self._certificates[key] = replace(
                        cert,
                        deletion_timestamp=utcnow().replace(microsecond=0),
                        resource_version=self._next_version(),
                    )
                return
            self._remove_certificate(key)

    def _remove_certificate(self, key: tuple[str, str]) -> None:
        cert = self._certificates.pop(key)
        owned = [k for k, s in self._secrets.items() if cert.uid and s.has_owner(cert.uid)]
        for secret_key in owned:
            del self._secrets[secret_key]
        log.debug("Certificate %s/%s removed (%d owned secrets)", key[0], key[1], len(owned))

    def has_certificate(self, namespace: str, name: str) -> bool:
        with self._lock:
            return (namespace, name) in self._certificates

    # -- certificates ---------------------------------------------------------

    def get_certificate(self, namespace: str, name: str) -> CertificateResource:
        with self._lock:
            cert = self._certificates.get((namespace, name))
            if cert is None:
                msg = f"certificate {namespace}/{name} not found"
                raise NotFoundError(msg, status=404)
            return cert

    def update_certificate(self, cert: CertificateResource) -> CertificateResource:
        with self._lock:
            key = (cert.namespace, cert.name)
            stored = self.get_certificate(*key)
            self._check_version("certificate", key, stored, cert)
            updated = replace(
                cert,
                status=stored.status,
                uid=stored.uid,
                deletion_timestamp=stored.deletion_timestamp,
                resource_version=self._next_version(),
            )
            self._record("update_certificate", *key)
            if updated.deletion_timestamp is not None and not updated.finalizers:
                self._certificates[key] = updated
                self._remove_certificate(key)
                return updated
            self._certificates[key] = updated
            return updated

    def update_certificate_status(self, cert: CertificateResource) -> CertificateResource:
        with self._lock:
            key = (cert.namespace, cert.name)
            stored = self.get_certificate(*key)
            self._check_version("certificate", key, stored, cert)
            updated = replace(
                stored,
                status=cert.status,
                resource_version=self._next_version(),
            )
            self._certificates[key] = updated
            self._record("update_certificate_status", *key)
            return updated

    # -- secrets --------------------------------------------------------------

    def get_secret(self, namespace: str, name: str) -> Secret:
        with self._lock:
            secret = self._secrets.get((namespace, name))
            if secret is None:
                msg = f"secret {namespace}/{name} not found"
                raise NotFoundError(msg, status=404)
            return secret

    def create_secret(self, secret: Secret) -> Secret:
        with self._lock:
            key = (secret.namespace, secret.name)
            if key in self._secrets:
                msg = f"secret {key[0]}/{key[1]} already exists"
                raise ConflictError(msg, status=409)
            stored = replace(
                secret,
                uid=secret.uid or str(uuid.uuid4()),
                resource_version=self._next_version(),
            )
            self._secrets[key] = stored
            self._record("create_secret", *key)
            return stored

    def update_secret(self, secret: Secret) -> Secret:
        with self._lock:
            key = (secret.namespace, secret.name)
            stored = self.get_secret(*key)
            self._check_version("secret", key, stored, secret)
            updated = replace(secret, uid=stored.uid, resource_version=self._next_version())
            self._secrets[key] = updated
            self._record("update_secret", *key)
            return updated

    # -- workloads ------------------------------------------------------------

    def list_workloads(self, namespace: str) -> list[Workload]:
        with self._lock:
            return [w for (ns, _), w in sorted(self._workloads.items()) if ns == namespace]

    def get_workload(self, namespace: str, name: str) -> Workload:
        with self._lock:
            workload = self._workloads.get((namespace, name))
            if workload is None:
                msg = f"workload {namespace}/{name} not found"
                raise NotFoundError(msg, status=404)
            return workload

    def update_workload(self, workload: Workload) -> Workload:
        with self._lock:
            key = (workload.namespace, workload.name)
            stored = self.get_workload(*key)
            self._check_version("workload", key, stored, workload)
            updated = replace(workload, resource_version=self._next_version())
            self._workloads[key] = updated
            self._record("update_workload", *key)
            return updated
