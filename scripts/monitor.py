#!/usr/bin/env python3
"""Headless dispatch monitor.

Starts (or resumes) a simulation, keeps the pollers running and logs the
simulation status once per elapsed-time tick until the simulation ends or
Ctrl-C is pressed.  Progress is persisted to ``--state-file`` so an
interrupted run can be resumed by starting the script again.

Usage
-----
::

    python scripts/monitor.py --seed default --target 100 --max-active 5

Options::

    --seed SEED           Simulation seed (default: default)
    --target N            Target dispatches (default: 10000)
    --max-active N        Maximum active calls (default: 100)
    --auto                Run through the auto-dispatch backend
    --auto-fetch SECONDS  Pull new calls on a timer (manual mode, 1-30)
    --state-file FILE     Session, cache and log buffer file (default: ~/.emercery/state.json)
    --no-resume           Never offer to resume a previous session
    --health              Probe both backends before starting
    --verbose, -v         Enable debug logging

Environment variables ``EMERCERY_API_BASE_URL`` and
``EMERCERY_AUTO_API_BASE_URL`` point the monitor at other backends.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
import threading
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from emercery import (  # noqa: E402
    DashboardState,
    EmerceryApiError,
    EmerceryClient,
    EmerceryConfig,
    EmerceryValidationError,
    ErrorTracker,
    JsonFileStore,
    LogBuffer,
    PerformanceMonitor,
    PollingOrchestrator,
    ResourceCache,
    SessionRecoveryManager,
    SessionSnapshot,
)

_logger = logging.getLogger("emercery.monitor")


def _ask(question: str) -> asyncio.Future[str]:
    """Read one line from stdin without blocking the event loop.

    A daemon thread is used so an unanswered prompt never keeps the
    process alive.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def _resolve(answer: str) -> None:
        if not future.done():
            future.set_result(answer)

    def _reader() -> None:
        try:
            answer = input(question)
        except EOFError:
            answer = ""
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(_resolve, answer)

    threading.Thread(target=_reader, name="resume-prompt", daemon=True).start()
    return future


async def _console_decision(snapshot: SessionSnapshot) -> bool:
    print(
        f"Found a session from {snapshot.age():.0f}s ago: seed={snapshot.seed} "
        f"dispatched={snapshot.dispatched_count} distance={snapshot.total_distance:.2f} "
        f"mode={'auto' if snapshot.auto_dispatch else 'manual'}"
    )
    answer = await _ask("Resume it? [y/N] ")
    return answer.strip().lower() in {"y", "yes"}


class _StatusLogger:
    """Dashboard listener that prints one line per elapsed-time change."""

    def __init__(self) -> None:
        self._last_elapsed = ""

    def __call__(self, state: DashboardState) -> None:
        if state.elapsed == self._last_elapsed:
            return
        self._last_elapsed = state.elapsed
        status = state.status
        if status is None:
            print(f"[{state.elapsed}] status unavailable")
            return
        print(
            f"[{state.elapsed}] {status.status} "
            f"active={status.request_count}/{status.max_active_calls} "
            f"dispatches={status.total_dispatches}/{status.target_dispatches} "
            f"local={state.total_dispatched} distance={state.total_distance:.2f} "
            f"queue={len(state.emergencies)}"
        )


async def main() -> None:
    parser = argparse.ArgumentParser(description="Run and monitor an emergency-dispatch simulation")
    parser.add_argument("--seed", default="default", help="Simulation seed")
    parser.add_argument("--target", type=int, default=10000, help="Target dispatches")
    parser.add_argument("--max-active", type=int, default=100, help="Maximum active calls")
    parser.add_argument("--auto", action="store_true", help="Run through the auto-dispatch backend")
    parser.add_argument("--auto-fetch", type=float, metavar="SECONDS", help="Pull new calls on a timer")
    parser.add_argument(
        "--state-file",
        default=str(Path.home() / ".emercery" / "state.json"),
        help="Session and cache file",
    )
    parser.add_argument("--no-resume", action="store_true", help="Never offer to resume a previous session")
    parser.add_argument("--health", action="store_true", help="Probe both backends before starting")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    config = EmerceryConfig.from_env()
    store = JsonFileStore(args.state_file)
    cache = ResourceCache(store, ttl=config.cache_ttl)
    recovery = SessionRecoveryManager(store, window=config.session_resume_window)
    log_buffer = LogBuffer(config.log_buffer_size, store=store, level=logging.INFO)
    logging.getLogger("emercery").addHandler(log_buffer)
    monitor = PerformanceMonitor(config.perf_buffer_size, store=store)
    errors = ErrorTracker(config.error_buffer_size, store=store)

    async with EmerceryClient(config, cache=cache, monitor=monitor, error_tracker=errors) as client:
        if args.health:
            health = await client.check_health()
            print(f"main API: {health.main_api.status} ({health.main_api.message})")
            print(f"auto-dispatch API: {health.auto_dispatch_api.status} ({health.auto_dispatch_api.message})")

        orchestrator = PollingOrchestrator(client, recovery=recovery)
        orchestrator.subscribe(_StatusLogger())
        try:
            resumed = None
            if not args.no_resume:
                resumed = await orchestrator.recover(_console_decision)
            if resumed is None and not orchestrator.is_running:
                await orchestrator.start_simulation(args.seed, args.target, args.max_active, auto=args.auto)
            if args.auto_fetch is not None:
                orchestrator.set_auto_fetch(True, args.auto_fetch)

            while orchestrator.is_running:
                await asyncio.sleep(1)
            print("Simulation ended")
        except EmerceryValidationError as exc:
            _logger.error("Invalid simulation settings: %s", exc)
        except EmerceryApiError as exc:
            _logger.error("Simulation request failed: %s", exc)
        finally:
            await orchestrator.shutdown()
            failures = client.errors.errors()
            if failures:
                print(f"{len(failures)} API error(s) tracked; success rate {client.monitor.success_rate():.1f}%")
            log_buffer.flush()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nInterrupted; session kept for resume")
