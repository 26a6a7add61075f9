"""Tests for :mod:`certkeeper.controller.reconciler` against the memory store."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from cryptography import x509

from certkeeper.config.settings import build_settings
from certkeeper.controller.reconciler import CertificateReconciler, ReconcileRequest
from certkeeper.core.errors import GenerationError, SecretSyncError
from certkeeper.core.types import (
    FINALIZER,
    RESTARTED_AT_ANNOTATION,
    ConditionReason,
    ConditionStatus,
    ConditionType,
    IssuerKind,
    LifecycleState,
)
from certkeeper.models.certificate import IssuerRef
from certkeeper.store.base import ConflictError, StoreError

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)
REQUEST = ReconcileRequest("default", "web")

MOUNTS_WEB_TLS = {
    "containers": [{"name": "app"}],
    "volumes": [{"name": "tls", "secret": {"secretName": "web-tls"}}],
}


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture
def reconciler(store, issuer_settings, metrics, clock):
    return CertificateReconciler(store, issuer_settings, metrics=metrics, clock=clock)


@pytest.fixture
def active_cert(store, cert_factory):
    """A certificate that already carries the finalizer but was never issued."""
    return store.add_certificate(replace(cert_factory(), finalizers=(FINALIZER,)))


def _serial_in_secret(store) -> str:
    pem = store.get_secret("default", "web-tls").data["tls.crt"]
    return format(x509.load_pem_x509_certificate(pem).serial_number, "x")


# ---------------------------------------------------------------------------
# Initial issuance
# ---------------------------------------------------------------------------


class TestFirstReconcile:
    def test_adds_finalizer_and_issues_in_one_pass(self, store, reconciler, cert_factory):
        store.add_certificate(cert_factory())

        result = reconciler.reconcile(REQUEST)

        assert result.state is LifecycleState.ACTIVE
        cert = store.get_certificate("default", "web")
        assert cert.finalizers == (FINALIZER,)
        assert store.operations == [
            ("update_certificate", "default/web"),
            ("create_secret", "default/web-tls"),
            ("update_certificate_status", "default/web"),
        ]

    def test_status_describes_issuance(self, store, reconciler, active_cert):
        reconciler.reconcile(REQUEST)

        status = store.get_certificate("default", "web").status
        assert status.not_before == NOW
        assert status.not_after == NOW + timedelta(hours=2160)
        assert status.renewal_time == NOW + timedelta(hours=1440)
        assert status.last_renewal_time == NOW
        assert status.serial_number == _serial_in_secret(store)

    def test_conditions(self, store, reconciler, active_cert):
        reconciler.reconcile(REQUEST)

        conditions = store.get_certificate("default", "web").status.conditions
        ready = conditions.get(ConditionType.READY)
        assert ready.status is ConditionStatus.TRUE
        assert ready.reason == ConditionReason.CERTIFICATE_ISSUED
        assert ready.message == "Certificate has been issued successfully"
        assert ready.observed_generation == 1
        assert ready.last_transition_time == NOW
        available = conditions.get(ConditionType.AVAILABLE)
        assert available.is_true
        assert available.reason == ConditionReason.RECONCILING
        assert available.message == "Certificate for (web) issued successfully"

    def test_requeue_one_hour_before_renewal(self, reconciler, active_cert):
        result = reconciler.reconcile(REQUEST)
        assert result.requeue_after == timedelta(hours=1439)

    def test_invalid_renew_before_uses_default(self, store, reconciler, cert_factory):
        store.add_certificate(
            replace(cert_factory(renew_before="soon"), finalizers=(FINALIZER,)),
        )
        reconciler.reconcile(REQUEST)
        status = store.get_certificate("default", "web").status
        assert status.renewal_time == status.not_after - timedelta(hours=720)

    def test_custom_duration(self, store, reconciler, cert_factory):
        store.add_certificate(
            replace(
                cert_factory(duration="48h", renew_before="24h"),
                finalizers=(FINALIZER,),
            ),
        )
        result = reconciler.reconcile(REQUEST)
        status = store.get_certificate("default", "web").status
        assert status.not_after == NOW + timedelta(hours=48)
        assert status.renewal_time == NOW + timedelta(hours=24)
        assert result.requeue_after == timedelta(hours=23)


# ---------------------------------------------------------------------------
# Steady state and renewal
# ---------------------------------------------------------------------------


class TestSteadyState:
    def test_second_reconcile_makes_no_writes(self, store, reconciler, active_cert):
        reconciler.reconcile(REQUEST)
        before = list(store.operations)

        result = reconciler.reconcile(REQUEST)

        assert store.operations == before
        assert result.state is LifecycleState.ACTIVE
        assert result.requeue_after == timedelta(hours=1439)

    def test_renews_after_renewal_time(self, store, reconciler, active_cert, clock):
        reconciler.reconcile(REQUEST)
        first_serial = store.get_certificate("default", "web").status.serial_number

        clock.now = NOW + timedelta(hours=1440)
        reconciler.reconcile(REQUEST)

        status = store.get_certificate("default", "web").status
        assert status.serial_number != first_serial
        assert status.serial_number == _serial_in_secret(store)
        assert status.not_before == clock.now
        assert store.operations_of("update_secret") == ["default/web-tls"]

    def test_renewal_keeps_ready_transition_time(self, store, reconciler, active_cert, clock):
        reconciler.reconcile(REQUEST)
        clock.now = NOW + timedelta(hours=1500)
        reconciler.reconcile(REQUEST)

        ready = store.get_certificate("default", "web").status.conditions.get(
            ConditionType.READY,
        )
        assert ready.last_transition_time == NOW

    def test_inside_last_hour(self, reconciler, active_cert, clock):
        reconciler.reconcile(REQUEST)
        clock.now = NOW + timedelta(hours=1440) - timedelta(minutes=30)
        result = reconciler.reconcile(REQUEST)
        assert result.requeue_after == timedelta(minutes=15)

    def test_controller_settings_tune_requeue(self, store, active_cert, clock):
        settings = build_settings(
            {"controller": {"short_requeue_seconds": 5, "requeue_headroom_seconds": 7200}},
        )
        reconciler = CertificateReconciler.from_settings(store, settings)
        reconciler._clock = clock
        result = reconciler.reconcile(REQUEST)
        assert result.requeue_after == timedelta(hours=1438)


# ---------------------------------------------------------------------------
# Missing objects and deletion
# ---------------------------------------------------------------------------


class TestDeletion:
    def test_not_found(self, store, reconciler):
        result = reconciler.reconcile(REQUEST)
        assert result.requeue_after is None
        assert result.state is LifecycleState.REMOVED
        assert store.operations == []

    def test_removes_finalizer_only(self, store, reconciler, active_cert):
        reconciler.reconcile(REQUEST)
        store.delete_certificate("default", "web")
        store.operations.clear()

        result = reconciler.reconcile(REQUEST)

        assert result.state is LifecycleState.REMOVED
        assert result.requeue_after is None
        assert store.operations == [("update_certificate", "default/web")]
        assert not store.has_certificate("default", "web")

    def test_owned_secret_is_cascaded(self, store, reconciler, active_cert):
        reconciler.reconcile(REQUEST)
        store.delete_certificate("default", "web")
        reconciler.reconcile(REQUEST)
        with pytest.raises(StoreError):
            store.get_secret("default", "web-tls")

    def test_foreign_finalizer_left_alone(self, store, reconciler, cert_factory):
        store.add_certificate(replace(cert_factory(), finalizers=("example.com/other",)))
        store.delete_certificate("default", "web")

        result = reconciler.reconcile(REQUEST)

        assert result.state is LifecycleState.DELETING
        assert result.requeue_after is None
        assert store.operations == []

    def test_deleting_certificate_is_not_issued(self, store, reconciler, active_cert):
        store.delete_certificate("default", "web")
        reconciler.reconcile(REQUEST)
        assert store.operations_of("create_secret") == []
        assert store.operations_of("update_certificate_status") == []


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_invalid_duration_sets_generation_failed(self, store, reconciler, cert_factory):
        store.add_certificate(replace(cert_factory(duration="forever"), finalizers=(FINALIZER,)))

        with pytest.raises(GenerationError):
            reconciler.reconcile(REQUEST)

        ready = store.get_certificate("default", "web").status.conditions.get(
            ConditionType.READY,
        )
        assert ready.status is ConditionStatus.FALSE
        assert ready.reason == ConditionReason.GENERATION_FAILED
        assert ready.message.startswith("Failed to generate certificate: invalid duration")
        assert store.operations_of("create_secret") == []

    def test_unimplemented_issuer_kind(self, store, reconciler, cert_factory):
        cert = cert_factory(issuer_ref=IssuerRef(name="corp", kind=IssuerKind.CA.value))
        store.add_certificate(replace(cert, finalizers=(FINALIZER,)))

        with pytest.raises(GenerationError, match="not implemented"):
            reconciler.reconcile(REQUEST)

    def test_secret_failure_sets_secret_update_failed(self, store, reconciler, active_cert):
        reconciler.secrets = MagicMock()
        reconciler.secrets.sync.side_effect = SecretSyncError("quota exceeded")

        with pytest.raises(SecretSyncError):
            reconciler.reconcile(REQUEST)

        status = store.get_certificate("default", "web").status
        ready = status.conditions.get(ConditionType.READY)
        assert ready.reason == ConditionReason.SECRET_UPDATE_FAILED
        assert ready.message == "Failed to update secret: quota exceeded"
        # No issuance is recorded, so the next pass tries again.
        assert status.renewal_time is None

    def test_failure_status_write_is_best_effort(self, store, reconciler, cert_factory):
        store.add_certificate(replace(cert_factory(duration="forever"), finalizers=(FINALIZER,)))
        store.update_certificate_status = MagicMock(side_effect=StoreError("down"))

        with pytest.raises(GenerationError):
            reconciler.reconcile(REQUEST)

    def test_status_conflict_is_replayed(self, store, reconciler, active_cert):
        real = store.update_certificate_status
        calls = []

        def flaky(cert):
            calls.append(cert.resource_version)
            if len(calls) == 1:
                raise ConflictError("modified", status=409)
            return real(cert)

        store.update_certificate_status = flaky
        reconciler.reconcile(REQUEST)

        assert len(calls) == 2
        assert store.get_certificate("default", "web").status.conditions.is_true(
            ConditionType.READY,
        )


# ---------------------------------------------------------------------------
# Dependent workloads
# ---------------------------------------------------------------------------


class TestDependents:
    def test_restarts_consumers(self, store, reconciler, cert_factory, workload_factory):
        store.add_certificate(
            replace(cert_factory(restart_deployments=True), finalizers=(FINALIZER,)),
        )
        store.add_workload(workload_factory("api", pod_spec=MOUNTS_WEB_TLS))
        store.add_workload(workload_factory("batch"))

        reconciler.reconcile(REQUEST)

        assert store.get_workload("default", "api").template_annotations == {
            RESTARTED_AT_ANNOTATION: "2026-03-01T12:00:00Z",
        }
        assert store.get_workload("default", "batch").template_annotations == {}

    def test_disabled_by_default(self, store, reconciler, active_cert, workload_factory):
        store.add_workload(workload_factory("api", pod_spec=MOUNTS_WEB_TLS))
        reconciler.reconcile(REQUEST)
        assert store.operations_of("update_workload") == []

    def test_restart_failure_does_not_fail_reconcile(
        self,
        store,
        reconciler,
        cert_factory,
    ):
        store.add_certificate(
            replace(cert_factory(restart_deployments=True), finalizers=(FINALIZER,)),
        )
        store.list_workloads = MagicMock(side_effect=StoreError("forbidden", status=403))

        result = reconciler.reconcile(REQUEST)

        assert result.state is LifecycleState.ACTIVE
        assert store.get_certificate("default", "web").status.conditions.is_true(
            ConditionType.READY,
        )


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class TestMetrics:
    def test_success_counters(self, reconciler, metrics, active_cert):
        reconciler.reconcile(REQUEST)
        reconciler.reconcile(REQUEST)
        assert metrics.get("certkeeper_reconciliations_total", {"result": "active"}) == 2
        assert metrics.get("certkeeper_certificates_issued_total") == 1

    def test_failure_counters(self, store, reconciler, metrics, cert_factory):
        store.add_certificate(replace(cert_factory(duration="forever"), finalizers=(FINALIZER,)))
        with pytest.raises(GenerationError):
            reconciler.reconcile(REQUEST)
        assert metrics.get("certkeeper_reconciliations_total", {"result": "error"}) == 1
        assert (
            metrics.get(
                "certkeeper_issuance_failures_total",
                {"reason": "GenerationFailed"},
            )
            == 1
        )

    def test_removed_counter(self, reconciler, metrics):
        reconciler.reconcile(REQUEST)
        assert metrics.get("certkeeper_reconciliations_total", {"result": "removed"}) == 1
