"""Renewal policy: when to re-issue and when to look again.

Three pure functions drive the schedule:

- :func:`needs_renewal` -- is a (re-)issuance due now?
- :func:`compute_renewal_time` -- ``not_after`` minus the lead time.
- :func:`compute_requeue_delay` -- how long until the next reconciliation.

The requeue delay wakes the controller one hour before the renewal time.
Inside that last hour it halves the remaining window on every pass, so
repeated reconciliations converge on the deadline without overshooting
it.  Overdue or never-issued certificates are re-checked after a short
fixed delay.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from certkeeper.core.durations import DEFAULT_RENEW_BEFORE, InvalidDuration, parse_duration
from certkeeper.core.timestamps import utcnow

if TYPE_CHECKING:
    from datetime import datetime

    from certkeeper.models.certificate import CertificateStatus

log = logging.getLogger(__name__)

SHORT_REQUEUE = timedelta(minutes=1)
REQUEUE_HEADROOM = timedelta(hours=1)


def needs_renewal(status: CertificateStatus, *, now: datetime | None = None) -> bool:
    """Return True if never issued or the renewal time has been reached."""
    if status.renewal_time is None:
        return True
    return (now or utcnow()) >= status.renewal_time


def renew_before_for(text: str | None) -> timedelta:
    """Parse a renewal lead time, falling back to 720h.

    Empty, unparsable and non-positive values all yield the default;
    a non-positive lead would put the renewal time at or after expiry.
    """
    if not text:
        return DEFAULT_RENEW_BEFORE
    try:
        lead = parse_duration(text)
    except InvalidDuration as exc:
        log.warning("Using default renewBefore %s: %s", DEFAULT_RENEW_BEFORE, exc)
        return DEFAULT_RENEW_BEFORE
    if lead <= timedelta(0):
        log.warning(
            "Using default renewBefore %s: %r is not positive",
            DEFAULT_RENEW_BEFORE,
            text,
        )
        return DEFAULT_RENEW_BEFORE
    return lead


def compute_renewal_time(not_after: datetime, renew_before: str | None) -> datetime:
    """Return ``not_after - renew_before`` (default lead 720h)."""
    return not_after - renew_before_for(renew_before)


def compute_requeue_delay(
    renewal_time: datetime | None,
    *,
    now: datetime | None = None,
    short: timedelta = SHORT_REQUEUE,
    headroom: timedelta = REQUEUE_HEADROOM,
) -> timedelta:
    """Return how long to wait before the next reconciliation.

    - no renewal time recorded, or already overdue: *short*
    - less than *headroom* remaining: half the remaining time
    - otherwise: remaining time minus *headroom*
    """
    if renewal_time is None:
        return short
    remaining = renewal_time - (now or utcnow())
    if remaining < timedelta(0):
        return short
    if remaining < headroom:
        return remaining / 2
    return remaining - headroom
