"""Tests for the renewal policy functions."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import pytest

from certkeeper.models.certificate import CertificateStatus
from certkeeper.services.renewal import (
    SHORT_REQUEUE,
    compute_renewal_time,
    compute_requeue_delay,
    needs_renewal,
    renew_before_for,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)
NOT_AFTER = datetime(2026, 6, 1, tzinfo=UTC)


# ---------------------------------------------------------------------------
# needs_renewal
# ---------------------------------------------------------------------------


class TestNeedsRenewal:
    def test_never_issued(self):
        assert needs_renewal(CertificateStatus(), now=NOW)

    def test_strictly_before_renewal_time(self):
        status = CertificateStatus(renewal_time=NOW + timedelta(seconds=1))
        assert not needs_renewal(status, now=NOW)

    def test_exactly_at_renewal_time(self):
        assert needs_renewal(CertificateStatus(renewal_time=NOW), now=NOW)

    def test_after_renewal_time(self):
        status = CertificateStatus(renewal_time=NOW - timedelta(days=1))
        assert needs_renewal(status, now=NOW)

    def test_defaults_to_wall_clock(self):
        status = CertificateStatus(renewal_time=datetime.now(UTC) + timedelta(days=1))
        assert not needs_renewal(status)


# ---------------------------------------------------------------------------
# compute_renewal_time
# ---------------------------------------------------------------------------


class TestComputeRenewalTime:
    def test_explicit_lead(self):
        assert compute_renewal_time(NOT_AFTER, "720h") == NOT_AFTER - timedelta(hours=720)

    @pytest.mark.parametrize("renew_before", ["", None, "whenever", "30"])
    def test_empty_or_invalid_uses_default(self, renew_before):
        assert compute_renewal_time(NOT_AFTER, renew_before) == NOT_AFTER - timedelta(hours=720)

    @pytest.mark.parametrize("renew_before", ["0", "-5h"])
    def test_non_positive_uses_default(self, renew_before):
        assert compute_renewal_time(NOT_AFTER, renew_before) == NOT_AFTER - timedelta(hours=720)

    def test_invalid_lead_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="certkeeper.services.renewal"):
            renew_before_for("whenever")
        assert "Using default renewBefore" in caplog.text

    def test_short_lead(self):
        assert compute_renewal_time(NOT_AFTER, "1h30m") == NOT_AFTER - timedelta(minutes=90)


# ---------------------------------------------------------------------------
# compute_requeue_delay
# ---------------------------------------------------------------------------


class TestComputeRequeueDelay:
    def test_no_renewal_time(self):
        assert compute_requeue_delay(None, now=NOW) == SHORT_REQUEUE == timedelta(minutes=1)

    def test_overdue(self):
        assert compute_requeue_delay(NOW - timedelta(hours=1), now=NOW) == timedelta(minutes=1)

    def test_inside_last_hour_halves_remaining(self):
        assert compute_requeue_delay(NOW + timedelta(minutes=30), now=NOW) == timedelta(minutes=15)

    def test_far_future_wakes_one_hour_early(self):
        assert compute_requeue_delay(NOW + timedelta(hours=5), now=NOW) == timedelta(hours=4)

    def test_exactly_one_hour_remaining(self):
        assert compute_requeue_delay(NOW + timedelta(hours=1), now=NOW) == timedelta(0)

    def test_due_now(self):
        assert compute_requeue_delay(NOW, now=NOW) == timedelta(0)

    def test_custom_short_and_headroom(self):
        delay = compute_requeue_delay(
            NOW + timedelta(hours=5),
            now=NOW,
            short=timedelta(seconds=5),
            headroom=timedelta(hours=2),
        )
        assert delay == timedelta(hours=3)
        assert compute_requeue_delay(None, now=NOW, short=timedelta(seconds=5)) == timedelta(
            seconds=5,
        )

    def test_converges_without_overshooting(self):
        now = NOW
        renewal = NOW + timedelta(minutes=40)
        for _ in range(10):
            now += compute_requeue_delay(renewal, now=now)
            assert now <= renewal
