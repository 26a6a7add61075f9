"""``test-issue``: generate a throw-away certificate with the configured issuer settings."""

from __future__ import annotations

import logging
import sys

log = logging.getLogger(__name__)


def run_test_issue(config, args) -> None:
    """Issue an ephemeral self-signed certificate and print its metadata."""
    from certkeeper.core.errors import GenerationError
    from certkeeper.issuer import SelfSignedIssuer
    from certkeeper.models import CertificateSpec

    spec = CertificateSpec(
        common_name=args.common_name,
        secret_name="certkeeper-test-issue",
        dns_names=(args.common_name,),
        duration=args.duration,
    )
    try:
        issued = SelfSignedIssuer(config.settings.issuer).generate(spec)
    except GenerationError as exc:
        if args.debug:
            raise
        print(f"certkeeper: error: test issuance failed: {exc.detail}", file=sys.stderr)
        sys.exit(1)

    print("Test issuance OK")
    print(f"  Common name:  {spec.common_name}")
    print(f"  Serial:       {issued.serial_number}")
    print(f"  Not before:   {issued.not_before.isoformat()}")
    print(f"  Not after:    {issued.not_after.isoformat()}")
    print(f"  Fingerprint:  {issued.fingerprint}")
