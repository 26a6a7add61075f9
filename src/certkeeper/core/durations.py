"""Duration strings in the Go ``time.ParseDuration`` grammar.

Certificate resources express validity and renewal lead time as strings
such as ``"2160h"`` or ``"1h30m"``.  A duration is an optional sign
followed by one or more ``<decimal><unit>`` groups; the bare string
``"0"`` is also accepted.

Usage::

    from certkeeper.core.durations import parse_duration

    parse_duration("1h30m")   # timedelta(seconds=5400)
"""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal, InvalidOperation

DEFAULT_DURATION = timedelta(hours=2160)
DEFAULT_RENEW_BEFORE = timedelta(hours=720)

# Microseconds per unit.  timedelta cannot hold nanoseconds, so
# sub-microsecond parts are truncated.
_UNIT_MICROS: dict[str, Decimal] = {
    "ns": Decimal("0.001"),
    "us": Decimal(1),
    "µs": Decimal(1),
    "μs": Decimal(1),
    "ms": Decimal(1_000),
    "s": Decimal(1_000_000),
    "m": Decimal(60_000_000),
    "h": Decimal(3_600_000_000),
}

_COMPONENT_RE = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


class InvalidDuration(ValueError):
    """Raised when a duration string cannot be parsed."""

    def __init__(self, text: str, reason: str = "") -> None:
        self.text = text
        detail = f"invalid duration {text!r}"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail)


def parse_duration(text: str) -> timedelta:
    """Parse *text* into a :class:`~datetime.timedelta`.

    Raises
    ------
    InvalidDuration
        If *text* is empty or does not follow the grammar.

    """
    if not isinstance(text, str):
        raise InvalidDuration(repr(text), "not a string")
    s = text.strip()
    if not s:
        raise InvalidDuration(text, "empty")

    sign = 1
    if s[0] in "+-":
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if s == "0":
        return timedelta(0)
    if not s:
        raise InvalidDuration(text)

    total = Decimal(0)
    pos = 0
    while pos < len(s):
        match = _COMPONENT_RE.match(s, pos)
        if match is None:
            if s[pos].isdigit() or s[pos] == ".":
                raise InvalidDuration(text, "missing unit")
            raise InvalidDuration(text, f"unexpected {s[pos]!r}")
        try:
            total += Decimal(match.group(1)) * _UNIT_MICROS[match.group(2)]
        except InvalidOperation as exc:
            raise InvalidDuration(text) from exc
        pos = match.end()

    try:
        return timedelta(microseconds=sign * int(total))
    except OverflowError as exc:
        raise InvalidDuration(text, "out of range") from exc


def format_duration(value: timedelta) -> str:
    """Render *value* as ``XhYmZs`` (e.g. ``"2160h0m0s"``)."""
    micros = (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
    sign = "-" if micros < 0 else ""
    micros = abs(micros)
    if micros == 0:
        return "0s"
    hours, rem = divmod(micros, 3_600_000_000)
    minutes, rem = divmod(rem, 60_000_000)
    seconds, frac = divmod(rem, 1_000_000)
    sec_str = f"{seconds}.{frac:06d}".rstrip("0").rstrip(".") if frac else str(seconds)
    if hours:
        return f"{sign}{hours}h{minutes}m{sec_str}s"
    if minutes:
        return f"{sign}{minutes}m{sec_str}s"
    return f"{sign}{sec_str}s"
