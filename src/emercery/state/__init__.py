"""State/reconciliation layer.

This package is the single source of truth for how polled authoritative data
and optimistic local dispatch effects are merged into one consistent view.
"""

from emercery.state.policy import remaining_needed, should_accept_poll
from emercery.state.store import DispatchOutcome, DispatchStateStore, EmergencyStats, StateSection

__all__ = [
    "DispatchOutcome",
    "DispatchStateStore",
    "EmergencyStats",
    "StateSection",
    "remaining_needed",
    "should_accept_poll",
]
