"""Secret synchronizer: create-or-update the TLS secret of a certificate.

The secret carries exactly two payload keys (``tls.crt`` and
``tls.key``), the managed-by and owning-certificate labels, and a
controller owner reference back to the certificate so the API server
deletes it together with its owner.

An existing secret keeps its identity, type, annotations and any owner
references it already has; only the payload and labels are replaced.
When nothing would change no write is issued, so calling :meth:`sync`
twice with the same input is a no-op the second time.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from certkeeper.core.errors import SecretSyncError
from certkeeper.core.types import (
    CERTIFICATE_LABEL,
    MANAGED_BY_LABEL,
    MANAGED_BY_VALUE,
    TLS_CERT_KEY,
    TLS_PRIVATE_KEY_KEY,
    TLS_SECRET_TYPE,
    SyncOutcome,
)
from certkeeper.models.secret import Secret
from certkeeper.store.base import (
    DEFAULT_CONFLICT_ATTEMPTS,
    NotFoundError,
    StoreError,
    retry_on_conflict,
)

if TYPE_CHECKING:
    from certkeeper.models.certificate import CertificateResource
    from certkeeper.store.base import ObjectStore

log = logging.getLogger(__name__)


def secret_labels(cert: CertificateResource) -> dict[str, str]:
    return {
        MANAGED_BY_LABEL: MANAGED_BY_VALUE,
        CERTIFICATE_LABEL: cert.name,
    }


def build_secret(
    cert: CertificateResource,
    certificate_pem: bytes,
    private_key_pem: bytes,
) -> Secret:
    """Return the secret a certificate should own, before it exists."""
    return Secret(
        name=cert.spec.secret_name,
        namespace=cert.namespace,
        data={TLS_CERT_KEY: certificate_pem, TLS_PRIVATE_KEY_KEY: private_key_pem},
        type=TLS_SECRET_TYPE,
        labels=secret_labels(cert),
        owner_references=(cert.owner_reference(),),
    )


def merge_into_existing(existing: Secret, desired: Secret, owner_uid: str) -> Secret:
    """Apply *desired*'s payload and labels onto *existing*.

    Everything else on *existing* is preserved.  An owner reference to
    the certificate is appended when missing; it is only marked as the
    controller when no other controller reference exists.
    """
    owner_refs = existing.owner_references
    if owner_uid and not existing.has_owner(owner_uid):
        ref = dict(desired.owner_references[0])
        if any(r.get("controller") for r in owner_refs):
            ref["controller"] = False
        owner_refs = (*owner_refs, ref)
    return replace(
        existing,
        data=dict(desired.data),
        labels=dict(desired.labels),
        owner_references=owner_refs,
    )


class SecretSynchronizer:
    """Keep a certificate's TLS secret in line with the latest issuance.

    Parameters
    ----------
    store:
        Object store used for all reads and writes.
    conflict_retries:
        How many times a read-modify-write is replayed on a conflict.

    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        conflict_retries: int = DEFAULT_CONFLICT_ATTEMPTS,
    ) -> None:
        self._store = store
        self._conflict_retries = conflict_retries

    def sync(
        self,
        cert: CertificateResource,
        certificate_pem: bytes,
        private_key_pem: bytes,
    ) -> SyncOutcome:
        """Ensure the secret named by ``cert.spec.secret_name`` holds the PEMs.

        Raises
        ------
        SecretSyncError
            On any store failure (after conflict retries are exhausted).

        """
        desired = build_secret(cert, certificate_pem, private_key_pem)
        target = f"{desired.namespace}/{desired.name}"

        def attempt() -> SyncOutcome:
            try:
                existing = self._store.get_secret(desired.namespace, desired.name)
            except NotFoundError:
                self._store.create_secret(desired)
                return SyncOutcome.CREATED

            merged = merge_into_existing(existing, desired, cert.uid)
            if (
                merged.data == existing.data
                and merged.labels == existing.labels
                and merged.owner_references == existing.owner_references
            ):
                return SyncOutcome.UNCHANGED
            self._store.update_secret(merged)
            return SyncOutcome.UPDATED

        try:
            outcome = retry_on_conflict(
                attempt,
                attempts=self._conflict_retries,
                label=f"secret {target}",
            )
        except StoreError as exc:
            msg = f"failed to sync secret {target}: {exc.detail}"
            raise SecretSyncError(msg) from exc

        log.info("Secret %s %s", target, outcome.value)
        return outcome
