"""Enumerated types shared across certkeeper.

All enums inherit from ``StrEnum`` so their ``.value`` is the exact
string written into Kubernetes objects (condition types, reasons,
issuer kinds).
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Resource coordinates
# ---------------------------------------------------------------------------

API_GROUP = "cert.example.com"
API_VERSION = "v1alpha1"
CERTIFICATE_KIND = "Certificate"
CERTIFICATE_PLURAL = "certificates"

FINALIZER = f"{API_GROUP}/finalizer"
RESTARTED_AT_ANNOTATION = f"{API_GROUP}/restartedAt"
CERTIFICATE_LABEL = f"{API_GROUP}/certificate"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "certificate-operator"

TLS_SECRET_TYPE = "kubernetes.io/tls"
TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"


# ---------------------------------------------------------------------------
# Status conditions
# ---------------------------------------------------------------------------


class ConditionType(StrEnum):
    READY = "Ready"
    AVAILABLE = "Available"


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionReason(StrEnum):
    CERTIFICATE_ISSUED = "CertificateIssued"
    RECONCILING = "Reconciling"
    GENERATION_FAILED = "GenerationFailed"
    SECRET_UPDATE_FAILED = "SecretUpdateFailed"


# ---------------------------------------------------------------------------
# Issuers
# ---------------------------------------------------------------------------


class IssuerKind(StrEnum):
    SELF_SIGNED = "SelfSigned"
    CA = "CA"
    EXTERNAL = "External"

    @classmethod
    def parse(cls, value: str | None) -> IssuerKind:
        """Parse an ``issuerRef.kind`` value; empty means self-signed.

        Matching ignores case and dashes, so ``self-signed`` and
        ``selfsigned`` are both accepted.

        Raises
        ------
        ValueError
            If *value* names no known issuer kind.

        """
        if not value:
            return cls.SELF_SIGNED
        folded = value.replace("-", "").replace("_", "").lower()
        for kind in cls:
            if kind.value.lower() == folded:
                return kind
        msg = f"Unknown issuer kind '{value}'; supported: {[k.value for k in cls]}"
        raise ValueError(msg)


# ---------------------------------------------------------------------------
# Reconciliation lifecycle
# ---------------------------------------------------------------------------


class LifecycleState(StrEnum):
    UNKNOWN = "unknown"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    DELETING = "deleting"
    REMOVED = "removed"


class SyncOutcome(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
