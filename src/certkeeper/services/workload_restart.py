"""Dependent workload correlator.

Finds the Deployments in a namespace whose pods consume a secret and
rolls them by stamping ``cert.example.com/restartedAt`` into the pod
template annotations.  A changed pod template is all the workload
controller needs to start a rolling update.

A workload consumes the secret when any of these reference it by name:

- a ``secret`` volume,
- a container ``envFrom[].secretRef``,
- a container ``env[].valueFrom.secretKeyRef``.

Init containers are checked too.  A failed write on one workload is
logged and counted but never stops the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from certkeeper.core.errors import WorkloadUpdateError
from certkeeper.core.timestamps import format_rfc3339, utcnow
from certkeeper.core.types import RESTARTED_AT_ANNOTATION
from certkeeper.store.base import (
    DEFAULT_CONFLICT_ATTEMPTS,
    ConflictError,
    NotFoundError,
    StoreError,
    retry_on_conflict,
)

if TYPE_CHECKING:
    from datetime import datetime

    from certkeeper.metrics.collector import MetricsCollector
    from certkeeper.models.workload import Workload
    from certkeeper.store.base import ObjectStore

log = logging.getLogger(__name__)


def workload_uses_secret(pod_spec: dict, secret_name: str) -> bool:
    """Return True if *pod_spec* references *secret_name*."""
    for volume in pod_spec.get("volumes") or ():
        secret = volume.get("secret") or {}
        if secret.get("secretName") == secret_name:
            return True

    containers = [
        *(pod_spec.get("initContainers") or ()),
        *(pod_spec.get("containers") or ()),
    ]
    for container in containers:
        for env_from in container.get("envFrom") or ():
            ref = env_from.get("secretRef") or {}
            if ref.get("name") == secret_name:
                return True
        for env in container.get("env") or ():
            ref = (env.get("valueFrom") or {}).get("secretKeyRef") or {}
            if ref.get("name") == secret_name:
                return True
    return False


@dataclass(frozen=True)
class RestartOutcome:
    """Result of one :meth:`DependentWorkloadCorrelator.restart_dependents` call."""

    restarted: int = 0
    failures: tuple[WorkloadUpdateError, ...] = ()


class DependentWorkloadCorrelator:
    """Restart workloads that consume a given secret.

    Parameters
    ----------
    store:
        Object store used to list and update workloads.
    conflict_retries:
        Attempts per workload when its update conflicts.
    metrics:
        Optional collector for restart counters.

    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        conflict_retries: int = DEFAULT_CONFLICT_ATTEMPTS,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._store = store
        self._conflict_retries = conflict_retries
        self._metrics = metrics

    def find_dependents(self, namespace: str, secret_name: str) -> list[Workload]:
        """Return the workloads in *namespace* that consume *secret_name*."""
        try:
            workloads = self._store.list_workloads(namespace)
        except StoreError as exc:
            msg = f"failed to list workloads in {namespace}: {exc.detail}"
            raise WorkloadUpdateError(msg) from exc
        return [w for w in workloads if workload_uses_secret(w.pod_spec, secret_name)]

    def restart_dependents(
        self,
        namespace: str,
        secret_name: str,
        *,
        now: datetime | None = None,
    ) -> RestartOutcome:
        """Annotate every dependent workload.

        The correlator is shared by concurrent reconciliations, so the
        per-call result is returned rather than kept on the instance.

        Raises
        ------
        WorkloadUpdateError
            Only if the workloads cannot be listed.  Per-workload write
            failures are reported in :attr:`RestartOutcome.failures`.

        """
        stamp = format_rfc3339(now or utcnow())
        failures: list[WorkloadUpdateError] = []
        restarted = 0

        for workload in self.find_dependents(namespace, secret_name):
            try:
                self._restart(workload, stamp)
            except WorkloadUpdateError as exc:
                failures.append(exc)
                log.error("Failed to restart workload %s: %s", workload.key, exc.detail)  # noqa: TRY400
                if self._metrics:
                    self._metrics.increment("certkeeper_workload_restart_failures_total")
                continue
            restarted += 1
            log.info("Restarted workload %s (secret %s)", workload.key, secret_name)
            if self._metrics:
                self._metrics.increment("certkeeper_workload_restarts_total")

        log.info(
            "Workload restart completed: %d restarted, %d failed (namespace=%s, secret=%s)",
            restarted,
            len(failures),
            namespace,
            secret_name,
        )
        return RestartOutcome(restarted=restarted, failures=tuple(failures))

    def _restart(self, workload: Workload, stamp: str) -> None:
        current = workload

        def attempt() -> None:
            nonlocal current
            try:
                self._store.update_workload(
                    current.with_template_annotation(RESTARTED_AT_ANNOTATION, stamp),
                )
            except ConflictError:
                # Replay on fresh state.
                current = self._reload(current)
                raise

        try:
            retry_on_conflict(
                attempt,
                attempts=self._conflict_retries,
                label=f"workload {workload.key}",
            )
        except StoreError as exc:
            msg = f"failed to restart {workload.key}: {exc.detail}"
            raise WorkloadUpdateError(msg, workload=workload.key) from exc

    def _reload(self, workload: Workload) -> Workload:
        for candidate in self._store.list_workloads(workload.namespace):
            if candidate.name == workload.name:
                return candidate
        msg = f"workload {workload.key} disappeared"
        raise NotFoundError(msg, status=404)
