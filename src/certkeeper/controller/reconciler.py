"""Certificate reconciliation controller.

One call to :meth:`CertificateReconciler.reconcile` drives a single
certificate one step closer to its desired state:

1. Load the certificate; a missing object is treated as already deleted.
2. Add the finalizer if it is absent (and no deletion was requested),
   then continue with the object the store returned.
3. On deletion, drop the finalizer and stop.  The TLS secret is removed
   by owner-reference cascading, so no explicit cleanup is needed.
4. If the certificate does not need renewal, skip to step 8.
5. Generate a new key and certificate.  A failure sets ``Ready=False``
   (``GenerationFailed``) and re-raises.
6. Write the TLS secret.  A failure sets ``Ready=False``
   (``SecretUpdateFailed``) and re-raises.
7. Record the issuance in status and mark ``Ready``/``Available``; then
   roll dependent workloads if ``restartDeployments`` is set.  Restart
   failures are logged only.
8. Return the delay until the next reconciliation.

Every write is guarded by the object's resource version; conflicts are
replayed on a fresh read.  The reconciler keeps no state between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from certkeeper.controller.state import assert_transition, log_transition
from certkeeper.core.errors import GenerationError, SecretSyncError, WorkloadUpdateError
from certkeeper.core.timestamps import truncate_to_seconds, utcnow
from certkeeper.core.types import (
    FINALIZER,
    ConditionReason,
    ConditionStatus,
    ConditionType,
    LifecycleState,
)
from certkeeper.issuer.registry import load_issuer
from certkeeper.logging.setup import reconcile_context
from certkeeper.models.certificate import Condition
from certkeeper.services.renewal import (
    REQUEUE_HEADROOM,
    SHORT_REQUEUE,
    compute_renewal_time,
    compute_requeue_delay,
    needs_renewal,
)
from certkeeper.services.secret_sync import SecretSynchronizer
from certkeeper.services.workload_restart import DependentWorkloadCorrelator
from certkeeper.store.base import (
    DEFAULT_CONFLICT_ATTEMPTS,
    ConflictError,
    NotFoundError,
    StoreError,
    retry_on_conflict,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from certkeeper.config.settings import (
        CertkeeperSettings,
        ControllerSettings,
        IssuerSettings,
    )
    from certkeeper.issuer.base import IssuedCertificate
    from certkeeper.metrics.collector import MetricsCollector
    from certkeeper.models.certificate import CertificateResource, CertificateStatus
    from certkeeper.store.base import ObjectStore

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileRequest:
    namespace: str
    name: str

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciliation.

    ``requeue_after`` is ``None`` when the certificate needs no further
    scheduling (deleted or being deleted).
    """

    requeue_after: timedelta | None
    state: LifecycleState


class CertificateReconciler:
    """Reconcile ``Certificate`` objects against the object store.

    Parameters
    ----------
    store:
        Object store for certificates, secrets and workloads.
    issuer_settings:
        Settings handed to the issuer selected by ``spec.issuerRef``.
    controller_settings:
        Requeue tuning; defaults to one minute / one hour.
    conflict_retries:
        Attempts for every optimistic-concurrency write.
    metrics:
        Optional collector for reconciliation counters.
    clock:
        Returns the current UTC time; injectable for tests.

    """

    def __init__(
        self,
        store: ObjectStore,
        issuer_settings: IssuerSettings,
        *,
        controller_settings: ControllerSettings | None = None,
        conflict_retries: int = DEFAULT_CONFLICT_ATTEMPTS,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._issuer_settings = issuer_settings
        self._conflict_retries = conflict_retries
        self._metrics = metrics
        self._clock = clock
        if controller_settings is not None:
            self._short_requeue = timedelta(seconds=controller_settings.short_requeue_seconds)
            self._headroom = timedelta(seconds=controller_settings.requeue_headroom_seconds)
        else:
            self._short_requeue = SHORT_REQUEUE
            self._headroom = REQUEUE_HEADROOM
        self.secrets = SecretSynchronizer(store, conflict_retries=conflict_retries)
        self.workloads = DependentWorkloadCorrelator(
            store,
            conflict_retries=conflict_retries,
            metrics=metrics,
        )

    @classmethod
    def from_settings(
        cls,
        store: ObjectStore,
        settings: CertkeeperSettings,
        *,
        metrics: MetricsCollector | None = None,
    ) -> CertificateReconciler:
        return cls(
            store,
            settings.issuer,
            controller_settings=settings.controller,
            conflict_retries=settings.store.conflict_retries,
            metrics=metrics,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        """Run one reconciliation for *request*.

        Raises
        ------
        GenerationError
            If the certificate could not be generated.
        SecretSyncError
            If the TLS secret could not be written.
        StoreError
            If the certificate itself could not be read or updated.

        """
        with reconcile_context(request.namespace, request.name):
            try:
                result = self._reconcile(request)
            except (GenerationError, SecretSyncError, StoreError):
                self._count("error")
                raise
            self._count(result.state.value)
            return result

    def _reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        # 1. Load
        try:
            cert = self._store.get_certificate(request.namespace, request.name)
        except NotFoundError:
            log.info("Certificate %s not found; treating as deleted", request.key)
            return ReconcileResult(requeue_after=None, state=LifecycleState.REMOVED)

        state = cert.lifecycle_state
        log.debug("Reconciling certificate %s (state=%s)", cert.key, state.value)

        # 2. Finalizer
        if state is LifecycleState.INITIALIZING:
            cert = self._add_finalizer(cert)
            self._transition(cert.key, state, cert.lifecycle_state, "finalizer added")
            state = cert.lifecycle_state

        # 3. Deletion
        if state is LifecycleState.DELETING:
            return self._finalize(cert)

        # 4. Renewal check
        now = truncate_to_seconds(self._clock())
        if needs_renewal(cert.status, now=now):
            cert = self._issue(cert, now)

        # 8. Requeue
        delay = compute_requeue_delay(
            cert.status.renewal_time,
            now=now,
            short=self._short_requeue,
            headroom=self._headroom,
        )
        log.debug("Certificate %s requeued after %s", cert.key, delay)
        return ReconcileResult(requeue_after=delay, state=LifecycleState.ACTIVE)

    # ------------------------------------------------------------------
    # Finalizer handling
    # ------------------------------------------------------------------

    def _add_finalizer(self, cert: CertificateResource) -> CertificateResource:
        updated = self._update_certificate(
            cert,
            # Finalizers cannot be added once deletion has started.
            lambda c: c if c.is_deleting else c.with_finalizer(FINALIZER),
            self._store.update_certificate,
            "finalizer add",
        )
        log.info("Added finalizer to certificate %s", cert.key)
        return updated

    def _finalize(self, cert: CertificateResource) -> ReconcileResult:
        if not cert.has_finalizer(FINALIZER):
            log.debug("Certificate %s is being deleted by another owner", cert.key)
            return ReconcileResult(requeue_after=None, state=LifecycleState.DELETING)

        # Owned secrets are garbage-collected with the certificate.
        try:
            self._update_certificate(
                cert,
                lambda c: c.without_finalizer(FINALIZER),
                self._store.update_certificate,
                "finalizer removal",
            )
        except NotFoundError:
            log.debug("Certificate %s vanished during finalization", cert.key)
        self._transition(
            cert.key,
            LifecycleState.DELETING,
            LifecycleState.REMOVED,
            "finalizer removed",
        )
        return ReconcileResult(requeue_after=None, state=LifecycleState.REMOVED)

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def _issue(self, cert: CertificateResource, now: datetime) -> CertificateResource:
        # 5. Generate
        try:
            issuer = load_issuer(cert.spec.issuer_ref, self._issuer_settings)
            issued = issuer.generate(cert.spec, now=now)
        except GenerationError as exc:
            log.error("Failed to generate certificate %s: %s", cert.key, exc.detail)  # noqa: TRY400
            self._count_failure(ConditionReason.GENERATION_FAILED)
            self._record_failure(
                cert,
                ConditionReason.GENERATION_FAILED,
                f"Failed to generate certificate: {exc.detail}",
                now,
            )
            raise

        # 6. Secret
        try:
            self.secrets.sync(cert, issued.certificate_pem, issued.private_key_pem)
        except SecretSyncError as exc:
            log.error("Failed to update secret for %s: %s", cert.key, exc.detail)  # noqa: TRY400
            self._count_failure(ConditionReason.SECRET_UPDATE_FAILED)
            self._record_failure(
                cert,
                ConditionReason.SECRET_UPDATE_FAILED,
                f"Failed to update secret: {exc.detail}",
                now,
            )
            raise

        # 7. Status, then dependents
        cert = self._record_issuance(cert, issued, now)
        if self._metrics:
            self._metrics.increment("certkeeper_certificates_issued_total")
        log.info(
            "Certificate %s issued successfully (serial=%s, notAfter=%s)",
            cert.key,
            issued.serial_number,
            issued.not_after.isoformat(),
        )

        if cert.spec.restart_deployments:
            self._restart_dependents(cert, now)
        return cert

    def _record_issuance(
        self,
        cert: CertificateResource,
        issued: IssuedCertificate,
        now: datetime,
    ) -> CertificateResource:
        renewal_time = compute_renewal_time(issued.not_after, cert.spec.renew_before)
        if renewal_time <= issued.not_before:
            log.warning(
                "Renewal time %s for %s is not after notBefore %s; "
                "the certificate will be renewed on every reconciliation",
                renewal_time.isoformat(),
                cert.key,
                issued.not_before.isoformat(),
            )

        def apply(status: CertificateStatus, generation: int | None) -> CertificateStatus:
            return (
                status.with_issuance(
                    not_before=issued.not_before,
                    not_after=issued.not_after,
                    renewal_time=renewal_time,
                    serial_number=issued.serial_number,
                    last_renewal_time=now,
                )
                .with_condition(
                    Condition(
                        type=ConditionType.READY,
                        status=ConditionStatus.TRUE,
                        reason=ConditionReason.CERTIFICATE_ISSUED,
                        message="Certificate has been issued successfully",
                        last_transition_time=now,
                        observed_generation=generation,
                    ),
                )
                .with_condition(
                    Condition(
                        type=ConditionType.AVAILABLE,
                        status=ConditionStatus.TRUE,
                        reason=ConditionReason.RECONCILING,
                        message=f"Certificate for ({cert.name}) issued successfully",
                        last_transition_time=now,
                        observed_generation=generation,
                    ),
                )
            )

        return self._update_certificate(
            cert,
            lambda c: c.with_status(apply(c.status, c.generation)),
            self._store.update_certificate_status,
            "status update",
        )

    def _record_failure(
        self,
        cert: CertificateResource,
        reason: ConditionReason,
        message: str,
        now: datetime,
    ) -> None:
        """Best-effort ``Ready=False`` status write; the caller re-raises."""

        def apply(c: CertificateResource) -> CertificateResource:
            return c.with_status(
                c.status.with_condition(
                    Condition(
                        type=ConditionType.READY,
                        status=ConditionStatus.FALSE,
                        reason=reason,
                        message=message,
                        last_transition_time=now,
                        observed_generation=c.generation,
                    ),
                ),
            )

        try:
            self._update_certificate(
                cert,
                apply,
                self._store.update_certificate_status,
                "failure status update",
            )
        except StoreError as exc:
            log.warning(
                "Could not record %s condition on %s: %s",
                reason.value,
                cert.key,
                exc.detail,
            )

    def _restart_dependents(self, cert: CertificateResource, now: datetime) -> None:
        try:
            outcome = self.workloads.restart_dependents(
                cert.namespace,
                cert.spec.secret_name,
                now=now,
            )
        except WorkloadUpdateError as exc:
            log.error(  # noqa: TRY400
                "Failed to restart workloads using secret %s/%s: %s",
                cert.namespace,
                cert.spec.secret_name,
                exc.detail,
            )
            return
        log.info(
            "Restarted %d workload(s) using secret %s/%s (%d failed)",
            outcome.restarted,
            cert.namespace,
            cert.spec.secret_name,
            len(outcome.failures),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _update_certificate(
        self,
        cert: CertificateResource,
        mutate: Callable[[CertificateResource], CertificateResource],
        write: Callable[[CertificateResource], CertificateResource],
        label: str,
    ) -> CertificateResource:
        """Apply *mutate* and *write* the result, replaying on conflict.

        A mutation that changes nothing is not written.
        """
        current = cert

        def attempt() -> CertificateResource:
            nonlocal current
            desired = mutate(current)
            if desired is current:
                return current
            try:
                return write(desired)
            except ConflictError:
                current = self._store.get_certificate(cert.namespace, cert.name)
                raise

        return retry_on_conflict(
            attempt,
            attempts=self._conflict_retries,
            label=f"{label} {cert.key}",
        )

    @staticmethod
    def _transition(
        key: str,
        from_state: LifecycleState,
        to_state: LifecycleState,
        reason: str,
    ) -> None:
        assert_transition(from_state, to_state)
        log_transition(key, from_state, to_state, reason=reason)

    def _count(self, result: str) -> None:
        if self._metrics:
            self._metrics.increment("certkeeper_reconciliations_total", labels={"result": result})

    def _count_failure(self, reason: ConditionReason) -> None:
        if self._metrics:
            self._metrics.increment(
                "certkeeper_issuance_failures_total",
                labels={"reason": reason.value},
            )
