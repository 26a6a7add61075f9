"""Reconciliation controller for ``Certificate`` objects."""

from certkeeper.controller.reconciler import (
    CertificateReconciler,
    ReconcileRequest,
    ReconcileResult,
)

__all__ = ["CertificateReconciler", "ReconcileRequest", "ReconcileResult"]
