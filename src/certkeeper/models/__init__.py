"""Entities exchanged between the reconciler and the object store."""

from certkeeper.models.certificate import (
    CertificateResource,
    CertificateSpec,
    CertificateStatus,
    Condition,
    Conditions,
    IssuerRef,
)
from certkeeper.models.secret import Secret
from certkeeper.models.workload import Workload

__all__ = [
    "CertificateResource",
    "CertificateSpec",
    "CertificateStatus",
    "Condition",
    "Conditions",
    "IssuerRef",
    "Secret",
    "Workload",
]
