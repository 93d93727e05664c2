"""Session snapshot persisted for resume-after-restart."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field

from emercery._constants import SESSION_RESUME_WINDOW_SECONDS


class SessionSnapshot(BaseModel):
    """Local progress of an in-progress simulation.

    The backend does not keep client-side counters across client restarts,
    so this record is what lets a new process pick up where the last one
    stopped.

    Parameters
    ----------
    seed : str
        Seed the simulation was (re)started with.
    target_dispatches : int
        Dispatch goal passed to ``/control/reset``.
    max_active_calls : int
        Active-call ceiling passed to ``/control/reset``.
    dispatched_count : int
        Units dispatched locally so far.
    total_distance : float
        Cumulative distance credited to local dispatches.
    start_time : float
        Wall-clock epoch seconds when the simulation started.
    auto_dispatch : bool
        Whether the session runs through the auto-dispatch backend.
    last_updated : float
        Wall-clock epoch seconds of the last progress change.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    seed: str = "default"
    target_dispatches: int = Field(default=10000, gt=0)
    max_active_calls: int = Field(default=100, gt=0)
    dispatched_count: int = Field(default=0, ge=0)
    total_distance: float = Field(default=0.0, ge=0)
    start_time: float = Field(default_factory=time.time)
    auto_dispatch: bool = False
    last_updated: float = Field(default_factory=time.time)

    def age(self, now: float | None = None) -> float:
        """Seconds since the snapshot was last updated."""
        current = time.time() if now is None else now
        return current - self.last_updated

    def is_fresh(self, now: float | None = None, window: float = SESSION_RESUME_WINDOW_SECONDS) -> bool:
        """Whether the snapshot is young enough to be offered for resume."""
        return self.age(now) < window

    def touched(self, now: float | None = None, **changes: object) -> SessionSnapshot:
        """Copy with *changes* applied and ``last_updated`` bumped."""
        stamp = time.time() if now is None else now
        return self.model_copy(update={**changes, "last_updated": stamp})
