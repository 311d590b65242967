"""Shared fixtures for the uptime engine tests."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest

from uptime_core.config import MonitorConfig
from uptime_core.core.clock import ManualClock
from uptime_core.core.models import CheckDefinition, ProbeResult
from uptime_core.monitoring.engine import UptimeEngine

START = 1_700_000_000.0


class FakeProber:
    """
    Stand-in for HttpProber that returns scripted outcomes.

    Outcomes are queued per check id; an empty queue means success.
    Setting ``gate`` to an unset asyncio.Event blocks every probe until
    the event is set.
    """

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.outcomes: Dict[str, List[bool]] = {}
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    def script(self, check_id: str, *outcomes: bool) -> None:
        self.outcomes.setdefault(check_id, []).extend(outcomes)

    async def probe(self, check: CheckDefinition, location: str = "local") -> ProbeResult:
        self.calls.append((check.id, location))
        if self.gate is not None:
            await self.gate.wait()
        queue = self.outcomes.get(check.id)
        success = queue.pop(0) if queue else True
        return build_result(check.id, self.clock.now(), success, location=location)

    async def close(self) -> None:
        self.closed = True


def build_result(
    check_id: str,
    timestamp: float,
    success: bool = True,
    response_time: float = 120.0,
    location: str = "local",
) -> ProbeResult:
    return ProbeResult(
        check_id=check_id,
        timestamp=timestamp,
        success=success,
        response_time=response_time,
        status_code=200 if success else 500,
        error=None if success else "HTTP 500",
        location=location,
        details={} if success else {"attempts": 1, "error_category": "unexpected_status"},
    )


# =========================================================================
# Fixtures
# =========================================================================

@pytest.fixture
def clock():
    return ManualClock(start=START)


@pytest.fixture
def fake_prober(clock):
    return FakeProber(clock)


@pytest.fixture
def make_check():
    """Factory for valid CheckDefinitions."""
    def factory(check_id: str = "api-health", **overrides) -> CheckDefinition:
        fields = {
            "id": check_id,
            "name": overrides.pop("name", check_id.replace("-", " ").title()),
            "url": f"/{check_id}",
            "interval": 30.0,
            "timeout": 5.0,
            "retries": 0,
        }
        fields.update(overrides)
        return CheckDefinition(**fields)
    return factory


@pytest.fixture
def make_result(clock):
    """Factory for ProbeResults stamped with the manual clock's time."""
    def factory(check_id: str = "api-health", success: bool = True, **kwargs) -> ProbeResult:
        timestamp = kwargs.pop("timestamp", clock.now())
        return build_result(check_id, timestamp, success, **kwargs)
    return factory


@pytest.fixture
def engine(clock, fake_prober):
    """Engine with a manual clock, scripted prober and manual maintenance control."""
    config = MonitorConfig(auto_transition_maintenance=False)
    return UptimeEngine(config, clock=clock, prober=fake_prober)


@pytest.fixture
def settle():
    """Let spawned tasks run until the loop goes quiet."""
    async def run(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)
    return run
