"""kopf wiring for the certificate reconciler.

kopf watches ``certificates.cert.example.com`` and keeps one daemon per
object.  The daemon calls :meth:`CertificateReconciler.reconcile`, then
sleeps for the returned requeue delay; a failed reconciliation is
raised to kopf, which restarts the daemon after its backoff.  kopf also
guarantees that only one daemon runs per object.

Deletion is picked up by an optional ``on.delete`` handler: the
reconciler's own finalizer keeps the object around until that handler
has removed it.

Handlers are registered on a dedicated :class:`kopf.OperatorRegistry`
built by :func:`build_registry`, so the module has no import-time side
effects.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import kopf

from certkeeper.controller.reconciler import CertificateReconciler, ReconcileRequest
from certkeeper.core.errors import ReconcileError
from certkeeper.core.types import API_GROUP, API_VERSION, CERTIFICATE_PLURAL
from certkeeper.store.base import StoreError

if TYPE_CHECKING:
    from certkeeper.api.app import MetricsServer
    from certkeeper.config.settings import CertkeeperSettings
    from certkeeper.metrics.collector import MetricsCollector
    from certkeeper.store.base import ObjectStore

log = logging.getLogger(__name__)

# kopf's own finalizer, used only while a daemon is still being stopped.
RUNTIME_FINALIZER = f"{API_GROUP}/runtime"


def run_certificate_daemon(
    reconciler: CertificateReconciler,
    stopped: Any,
    namespace: str,
    name: str,
    *,
    error_backoff: float,
) -> None:
    """Reconcile *namespace*/*name* until *stopped* is set.

    *stopped* is a :class:`kopf.DaemonStopped` (truthy once the daemon
    must exit, with a ``wait(seconds)`` method).
    """
    request = ReconcileRequest(namespace=namespace, name=name)
    while not stopped:
        try:
            result = reconciler.reconcile(request)
        except (ReconcileError, StoreError) as exc:
            detail = getattr(exc, "detail", str(exc))
            raise kopf.TemporaryError(detail, delay=error_backoff) from exc
        if result.requeue_after is None:
            log.debug("Daemon for %s/%s finished (state=%s)", namespace, name, result.state.value)
            return
        stopped.wait(result.requeue_after.total_seconds())


def build_registry(
    reconciler: CertificateReconciler,
    settings: CertkeeperSettings,
    *,
    metrics_server: MetricsServer | None = None,
) -> kopf.OperatorRegistry:
    """Register the startup, cleanup, daemon and delete handlers."""
    registry = kopf.OperatorRegistry()
    runtime = settings.runtime

    @kopf.on.startup(registry=registry)
    def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
        settings.persistence.finalizer = RUNTIME_FINALIZER
        settings.watching.server_timeout = runtime.server_timeout_seconds
        settings.posting.level = logging.WARNING
        if metrics_server is not None:
            metrics_server.start()
        log.info("certkeeper operator started")

    @kopf.on.cleanup(registry=registry)
    def shutdown(**_: Any) -> None:
        if metrics_server is not None:
            metrics_server.stop()
        log.info("certkeeper operator stopped")

    @kopf.daemon(
        API_GROUP,
        API_VERSION,
        CERTIFICATE_PLURAL,
        registry=registry,
        backoff=runtime.error_backoff_seconds,
        cancellation_timeout=runtime.cancellation_timeout_seconds,
    )
    def certificate_daemon(
        stopped: kopf.DaemonStopped,
        namespace: str,
        name: str,
        **_: Any,
    ) -> None:
        run_certificate_daemon(
            reconciler,
            stopped,
            namespace,
            name,
            error_backoff=runtime.error_backoff_seconds,
        )

    @kopf.on.delete(API_GROUP, API_VERSION, CERTIFICATE_PLURAL, registry=registry, optional=True)
    def certificate_deleted(namespace: str, name: str, **_: Any) -> None:
        try:
            reconciler.reconcile(ReconcileRequest(namespace=namespace, name=name))
        except (ReconcileError, StoreError) as exc:
            detail = getattr(exc, "detail", str(exc))
            raise kopf.TemporaryError(detail, delay=runtime.error_backoff_seconds) from exc

    return registry


def run_operator(
    settings: CertkeeperSettings,
    store: ObjectStore,
    *,
    metrics: MetricsCollector | None = None,
) -> None:
    """Run the operator until interrupted.  Blocks."""
    from certkeeper.api.app import MetricsServer  # noqa: PLC0415

    metrics_server = None
    if settings.metrics.enabled and metrics is not None:
        metrics_server = MetricsServer(settings.metrics, metrics, store=store)

    reconciler = CertificateReconciler.from_settings(store, settings, metrics=metrics)
    registry = build_registry(reconciler, settings, metrics_server=metrics_server)

    namespaces = list(settings.controller.namespaces)
    log.info(
        "Starting operator (%s)",
        f"namespaces={','.join(namespaces)}" if namespaces else "cluster-wide",
    )
    kopf.run(
        registry=registry,
        standalone=True,
        clusterwide=not namespaces,
        namespaces=namespaces,
        liveness_endpoint=settings.runtime.liveness_endpoint,
    )
