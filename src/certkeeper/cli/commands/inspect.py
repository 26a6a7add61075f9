"""``inspect NAMESPACE NAME``: print the stored certificate and its status."""

from __future__ import annotations

import json
import logging
import sys

log = logging.getLogger(__name__)


def run_inspect(config, args) -> None:
    from certkeeper.store import NotFoundError, StoreError, load_store

    try:
        store = load_store(config.settings.store)
        cert = store.get_certificate(args.namespace, args.name)
    except NotFoundError:
        print(f"certkeeper: error: certificate {args.namespace}/{args.name} not found", file=sys.stderr)
        sys.exit(1)
    except StoreError as exc:
        if args.debug:
            raise
        print(f"certkeeper: error: {exc.detail}", file=sys.stderr)
        sys.exit(1)

    status = cert.status
    print(f"Certificate: {cert.key}")
    print(f"  State:        {cert.lifecycle_state.value}")
    print(f"  Common name:  {cert.spec.common_name}")
    print(f"  Secret:       {cert.spec.secret_name}")
    print(f"  Serial:       {status.serial_number or '-'}")
    for label, value in (
        ("Not before", status.not_before),
        ("Not after", status.not_after),
        ("Renewal time", status.renewal_time),
        ("Last renewal", status.last_renewal_time),
    ):
        print(f"  {label + ':':<14}{value.isoformat() if value else '-'}")
    if len(status.conditions):
        print("  Conditions:")
        print(json.dumps(status.conditions.to_list(), indent=4))
