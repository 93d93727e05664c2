"""Deterministic reconciliation policy.

This module intentionally contains *no* state; the store applies these rules.
"""

from __future__ import annotations


def remaining_needed(requested: int, dispatched: int) -> int:
    """Units still needed for one type, clamped at zero.

    The backend defines no semantics for over-dispatch, so a dispatched count
    above the requested one is reported as nothing left to send, never as a
    negative need.
    """
    return max(0, requested - dispatched)


def should_accept_poll(
    *,
    issued_at: float | None,
    last_applied_at: float | None,
    last_optimistic_at: float | None,
) -> bool:
    """Decide whether a polled result may overwrite local state.

    Policy:
    - Unstamped results are always accepted.
    - A result whose request was issued before the latest optimistic dispatch
      predates that dispatch and would roll it back: reject.
    - A result older than the last one applied for the same section arrived
      out of order: reject.
    """
    if issued_at is None:
        return True
    if last_optimistic_at is not None and issued_at < last_optimistic_at:
        return False
    return not (last_applied_at is not None and issued_at < last_applied_at)
