"""Session recovery: persist progress so a restart can offer to resume."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from pydantic import ValidationError

from emercery._constants import RESUME_OFFERED_KEY, SESSION_RESUME_WINDOW_SECONDS, SESSION_SNAPSHOT_KEY
from emercery.session import SessionSnapshot
from emercery.storage import KeyValueStore, MemoryStore

_logger = logging.getLogger(__name__)

ResumeDecision = Callable[[SessionSnapshot], Awaitable[bool]]


class SessionRecoveryManager:
    """Reads and writes the persisted :class:`SessionSnapshot`.

    ``store`` should outlive the process (e.g. a ``JsonFileStore``).
    ``session_store`` holds the "already offered" flag and is scoped to the
    current process by default, so each fresh start gets one prompt.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        session_store: KeyValueStore | None = None,
        window: float = SESSION_RESUME_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store: KeyValueStore = store if store is not None else MemoryStore(clock=clock)
        self._session_store: KeyValueStore = session_store if session_store is not None else MemoryStore(clock=clock)
        self._window = window
        self._clock = clock

    def load(self) -> SessionSnapshot | None:
        """Return the persisted snapshot regardless of age."""
        raw = self._store.get(SESSION_SNAPSHOT_KEY)
        if raw is None:
            return None
        try:
            return SessionSnapshot.model_validate(raw)
        except ValidationError:
            _logger.warning("Discarding unreadable session snapshot", exc_info=True)
            self._store.delete(SESSION_SNAPSHOT_KEY)
            return None

    def save(self, snapshot: SessionSnapshot) -> None:
        self._store.set(SESSION_SNAPSHOT_KEY, snapshot.model_dump(mode="json"))

    def start(
        self,
        *,
        seed: str,
        target_dispatches: int,
        max_active_calls: int,
        auto_dispatch: bool,
        start_time: float | None = None,
        dispatched_count: int = 0,
        total_distance: float = 0.0,
    ) -> SessionSnapshot:
        """Persist a snapshot for a simulation that is starting now."""
        now = self._clock()
        snapshot = SessionSnapshot(
            seed=seed,
            target_dispatches=target_dispatches,
            max_active_calls=max_active_calls,
            dispatched_count=dispatched_count,
            total_distance=total_distance,
            start_time=now if start_time is None else start_time,
            auto_dispatch=auto_dispatch,
            last_updated=now,
        )
        self.save(snapshot)
        return snapshot

    def record_progress(self, *, dispatched_count: int, total_distance: float) -> SessionSnapshot | None:
        """Update the counters after a dispatch; no-op without a snapshot."""
        snapshot = self.load()
        if snapshot is None:
            return None
        updated = snapshot.touched(self._clock(), dispatched_count=dispatched_count, total_distance=total_distance)
        self.save(updated)
        return updated

    def clear(self) -> None:
        self._store.delete(SESSION_SNAPSHOT_KEY)

    def pending_resume(self) -> SessionSnapshot | None:
        """The snapshot to offer for resume, at most once per process.

        Stale snapshots are deleted rather than offered.
        """
        snapshot = self.load()
        if snapshot is None:
            return None
        if self._session_store.get(RESUME_OFFERED_KEY):
            return None
        if not snapshot.is_fresh(self._clock(), self._window):
            _logger.info("Discarding session snapshot older than %.0fs", self._window)
            self.clear()
            return None
        self._session_store.set(RESUME_OFFERED_KEY, True)
        return snapshot

    async def offer_resume(self, decide: ResumeDecision, *, timeout: float) -> SessionSnapshot | None:
        """Ask *decide* whether to resume; return the snapshot if accepted.

        Declining, or not answering within *timeout* seconds, discards the
        snapshot.
        """
        snapshot = self.pending_resume()
        if snapshot is None:
            return None
        try:
            accepted = await asyncio.wait_for(decide(snapshot), timeout)
        except TimeoutError:
            _logger.info("Resume prompt expired after %.0fs", timeout)
            accepted = False
        if not accepted:
            self.clear()
            return None
        return snapshot
