"""``run``: start the kopf operator."""

from __future__ import annotations

import logging
import sys

log = logging.getLogger(__name__)


def run_operator_command(config, args) -> None:
    from certkeeper.metrics import MetricsCollector
    from certkeeper.runtime import run_operator
    from certkeeper.store import StoreError, load_store

    try:
        store = load_store(config.settings.store)
        store.startup_check()
    except StoreError as exc:
        if args.debug:
            raise
        print(f"certkeeper: error: object store unavailable: {exc.detail}", file=sys.stderr)
        sys.exit(1)

    run_operator(config.settings, store, metrics=MetricsCollector())
