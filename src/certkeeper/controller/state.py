"""Certificate lifecycle state machine.

A certificate moves through ``unknown -> initializing -> active ->
deleting -> removed``.  ``unknown`` is the state before the object has
been loaded; ``removed`` is terminal.  Transitions are checked with
:func:`assert_transition` and logged with :func:`log_transition`.

Usage::

    from certkeeper.controller.state import assert_transition, log_transition
    from certkeeper.core.types import LifecycleState

    assert_transition(LifecycleState.INITIALIZING, LifecycleState.ACTIVE)
    log_transition("default/web-tls", LifecycleState.INITIALIZING,
                   LifecycleState.ACTIVE, reason="finalizer added")
"""

from __future__ import annotations

import logging

from certkeeper.core.types import LifecycleState

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# unknown → any loaded state, initializing → active/deleting,
# active → deleting, deleting → removed.  removed is terminal.
# Any state may jump to removed when the object disappears.
# ---------------------------------------------------------------------------

LIFECYCLE_TRANSITIONS: dict[LifecycleState, frozenset[LifecycleState]] = {
    LifecycleState.UNKNOWN: frozenset(
        {
            LifecycleState.INITIALIZING,
            LifecycleState.ACTIVE,
            LifecycleState.DELETING,
            LifecycleState.REMOVED,
        }
    ),
    LifecycleState.INITIALIZING: frozenset(
        {
            LifecycleState.ACTIVE,
            LifecycleState.DELETING,
            LifecycleState.REMOVED,
        }
    ),
    LifecycleState.ACTIVE: frozenset({LifecycleState.DELETING, LifecycleState.REMOVED}),
    LifecycleState.DELETING: frozenset({LifecycleState.REMOVED}),
    LifecycleState.REMOVED: frozenset(),
}


def assert_transition(current: LifecycleState, target: LifecycleState) -> None:
    """Raise :class:`ValueError` if *current* → *target* is not allowed."""
    allowed = LIFECYCLE_TRANSITIONS.get(current)
    if allowed is None:
        msg = f"Unknown lifecycle state {current!r}"
        raise ValueError(msg)
    if target not in allowed:
        msg = (
            f"Invalid transition {current.value!r} -> {target.value!r}; "
            f"allowed targets: {sorted(s.value for s in allowed) or '(terminal)'}"
        )
        raise ValueError(msg)


def log_transition(
    resource_id: str,
    from_state: LifecycleState,
    to_state: LifecycleState,
    *,
    reason: str | None = None,
) -> None:
    """Emit a structured log entry for a lifecycle transition.

    Parameters
    ----------
    resource_id:
        ``namespace/name`` of the certificate.
    from_state:
        The previous state.
    to_state:
        The new state.
    reason:
        Optional human-readable reason for the transition.

    """
    extra = {
        "event": "state_transition",
        "resource_type": "certificate",
        "resource_id": resource_id,
        "from_state": from_state.value,
        "to_state": to_state.value,
    }
    if reason:
        extra["reason"] = reason
    log.info(
        "certificate %s: %s -> %s%s",
        resource_id,
        from_state.value,
        to_state.value,
        f" ({reason})" if reason else "",
        extra=extra,
    )
