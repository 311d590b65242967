"""
Check Scheduler.

Owns the registered CheckDefinitions and one timer task per enabled check.
Each timer fires immediately and then every ``check.interval`` seconds.
A firing spawns a tick task, so the timer keeps its cadence while a slow
probe is still running; if the previous tick for the same check has not
finished, the new firing is skipped (skip-if-busy).

Before every firing the maintenance predicate is consulted; suppressed
firings are dropped without running the tick.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional

from uptime_core.core.clock import SystemClock
from uptime_core.core.error_handling import ConfigurationError, DuplicateCheckError
from uptime_core.core.models import CheckDefinition

logger = logging.getLogger(__name__)

TickHandler = Callable[[CheckDefinition], Awaitable[None]]

_REARM_FIELDS = ("interval", "enabled")


class CheckScheduler:
    """Per-check recurring timers with skip-if-busy discipline."""

    def __init__(
        self,
        on_tick: TickHandler,
        is_suppressed: Optional[Callable[[str], bool]] = None,
        clock: Optional[Any] = None,
    ):
        self._on_tick = on_tick
        self._is_suppressed = is_suppressed or (lambda check_id: False)
        self._clock = clock or SystemClock()

        self._checks: Dict[str, CheckDefinition] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._running = False

        self._stats: Dict[str, Dict[str, int]] = defaultdict(
            lambda: {"fired": 0, "skipped_busy": 0, "suppressed": 0, "errors": 0}
        )

    @property
    def running(self) -> bool:
        return self._running

    # =========================================================
    # Registration
    # =========================================================

    def register(self, check: CheckDefinition) -> None:
        """Validate and store ``check``; arm its timer if the scheduler runs."""
        check.validate()
        if check.id in self._checks:
            raise DuplicateCheckError(check.id)

        self._checks[check.id] = check
        logger.info(f"[Scheduler] Registered {check.name} ({check.id}, every {check.interval}s)")

        if self._running and check.enabled:
            self._arm(check.id)

    def unregister(self, check_id: str) -> bool:
        """Cancel the timer and forget the check. An in-flight tick may finish."""
        if check_id not in self._checks:
            return False
        self._disarm(check_id)
        del self._checks[check_id]
        self._stats.pop(check_id, None)
        logger.info(f"[Scheduler] Unregistered {check_id}")
        return True

    def update(self, check_id: str, patch: Dict[str, Any]) -> bool:
        """
        Apply ``patch`` to the check in place.

        The patched definition is validated before anything changes. The
        timer is torn down and rearmed when ``interval`` or ``enabled`` is
        part of the patch.
        """
        check = self._checks.get(check_id)
        if check is None:
            return False

        known = {f.name for f in dataclasses.fields(CheckDefinition)}
        unknown = set(patch) - known
        if unknown:
            raise ConfigurationError(f"Unknown check field(s): {', '.join(sorted(unknown))}")
        for name in CheckDefinition.IMMUTABLE_FIELDS:
            if name in patch and patch[name] != getattr(check, name):
                raise ConfigurationError(f"Check {name} cannot be changed")

        dataclasses.replace(check, **patch).validate()

        for key, value in patch.items():
            setattr(check, key, value)

        if any(key in patch for key in _REARM_FIELDS):
            self._disarm(check_id)
            if self._running and check.enabled:
                self._arm(check_id)

        logger.info(f"[Scheduler] Updated {check.name}: {', '.join(sorted(patch))}")
        return True

    def get(self, check_id: str) -> Optional[CheckDefinition]:
        return self._checks.get(check_id)

    def checks(self) -> List[CheckDefinition]:
        return list(self._checks.values())

    def __contains__(self, check_id: str) -> bool:
        return check_id in self._checks

    # =========================================================
    # Lifecycle
    # =========================================================

    def start(self) -> None:
        """Arm every enabled check. Must be called from a running event loop."""
        if self._running:
            return
        self._running = True
        for check in self._checks.values():
            if check.enabled:
                self._arm(check.id)
        logger.info(f"[Scheduler] Started ({len(self._timers)} active timers)")

    async def stop(self) -> None:
        """Cancel all timers and in-flight ticks."""
        self._running = False
        tasks = list(self._timers.values()) + list(self._inflight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
        self._inflight.clear()
        logger.info("[Scheduler] Stopped")

    def is_armed(self, check_id: str) -> bool:
        task = self._timers.get(check_id)
        return task is not None and not task.done()

    def is_busy(self, check_id: str) -> bool:
        task = self._inflight.get(check_id)
        return task is not None and not task.done()

    async def wait_idle(self) -> None:
        """Wait until no tick is running."""
        while True:
            pending = [t for t in self._inflight.values() if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # =========================================================
    # Firing
    # =========================================================

    def trigger(self, check_id: str) -> bool:
        """Fire one tick now, through the same busy and maintenance guards."""
        if check_id not in self._checks:
            return False
        return self._fire(check_id)

    def _arm(self, check_id: str) -> None:
        self._disarm(check_id)
        self._timers[check_id] = asyncio.create_task(
            self._timer_loop(check_id), name=f"uptime-timer-{check_id}"
        )

    def _disarm(self, check_id: str) -> None:
        task = self._timers.pop(check_id, None)
        if task is not None and not task.done():
            task.cancel()

    async def _timer_loop(self, check_id: str) -> None:
        while True:
            check = self._checks.get(check_id)
            if check is None or not check.enabled:
                return
            self._fire(check_id)
            await self._clock.sleep(check.interval)

    def _fire(self, check_id: str) -> bool:
        stats = self._stats[check_id]

        if self._is_suppressed(check_id):
            stats["suppressed"] += 1
            logger.debug(f"[Scheduler] {check_id} suppressed by maintenance window")
            return False

        if self.is_busy(check_id):
            stats["skipped_busy"] += 1
            logger.debug(f"[Scheduler] {check_id} still running, skipping tick")
            return False

        stats["fired"] += 1
        self._inflight[check_id] = asyncio.create_task(
            self._run_tick(check_id), name=f"uptime-tick-{check_id}"
        )
        return True

    async def _run_tick(self, check_id: str) -> None:
        check = self._checks.get(check_id)
        try:
            if check is not None:
                await self._on_tick(check)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if check_id in self._stats:
                self._stats[check_id]["errors"] += 1
            logger.error(f"[Scheduler] Tick for {check_id} failed: {e}")
        finally:
            if self._inflight.get(check_id) is asyncio.current_task():
                del self._inflight[check_id]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "checks": len(self._checks),
            "active_timers": sum(1 for cid in self._timers if self.is_armed(cid)),
            "busy": [cid for cid in self._inflight if self.is_busy(cid)],
            "per_check": {cid: dict(self._stats[cid]) for cid in self._checks},
        }
