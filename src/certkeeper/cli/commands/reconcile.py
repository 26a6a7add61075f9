"""``reconcile NAMESPACE NAME``: run one reconciliation and report the outcome."""

from __future__ import annotations

import logging
import sys

log = logging.getLogger(__name__)


def run_reconcile(config, args) -> None:
    from certkeeper.controller import CertificateReconciler, ReconcileRequest
    from certkeeper.core.durations import format_duration
    from certkeeper.core.errors import ReconcileError
    from certkeeper.store import StoreError, load_store

    request = ReconcileRequest(namespace=args.namespace, name=args.name)
    try:
        store = load_store(config.settings.store)
        reconciler = CertificateReconciler.from_settings(store, config.settings)
        result = reconciler.reconcile(request)
    except (ReconcileError, StoreError) as exc:
        if args.debug:
            raise
        print(f"certkeeper: error: reconcile {request.key} failed: {exc.detail}", file=sys.stderr)
        sys.exit(1)

    print(f"{request.key}: {result.state.value}")
    if result.requeue_after is None:
        print("  requeue: none")
    else:
        print(f"  requeue after: {format_duration(result.requeue_after)}")
