"""Tests for per-check timers, skip-if-busy and rearming."""

import asyncio

import pytest

from uptime_core.core.error_handling import (
    CheckValidationError,
    ConfigurationError,
    DuplicateCheckError,
)
from uptime_core.monitoring.scheduler import CheckScheduler


class TickRecorder:
    """on_tick callback that records calls and can be held open."""

    def __init__(self):
        self.ticks = []
        self.gate = None
        self.fail = False

    async def __call__(self, check):
        self.ticks.append(check.id)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RuntimeError("probe exploded")


@pytest.fixture
def recorder():
    return TickRecorder()


@pytest.fixture
def suppressed():
    return set()


@pytest.fixture
def scheduler(recorder, suppressed, clock):
    return CheckScheduler(
        on_tick=recorder,
        is_suppressed=lambda check_id: check_id in suppressed,
        clock=clock,
    )


class TestRegistration:

    def test_register_and_lookup(self, scheduler, make_check):
        check = make_check()
        scheduler.register(check)
        assert scheduler.get(check.id) is check
        assert check.id in scheduler
        assert scheduler.checks() == [check]

    def test_duplicate_is_rejected(self, scheduler, make_check):
        scheduler.register(make_check())
        with pytest.raises(DuplicateCheckError):
            scheduler.register(make_check())

    def test_invalid_check_is_never_stored(self, scheduler, make_check):
        with pytest.raises(CheckValidationError):
            scheduler.register(make_check(interval=0))
        assert scheduler.checks() == []

    def test_unregister_unknown(self, scheduler):
        assert scheduler.unregister("nope") is False

    def test_update_rejects_unknown_fields_and_id_changes(self, scheduler, make_check):
        scheduler.register(make_check())
        with pytest.raises(ConfigurationError):
            scheduler.update("api-health", {"colour": "red"})
        with pytest.raises(ConfigurationError, match="id cannot be changed"):
            scheduler.update("api-health", {"id": "other"})
        assert scheduler.update("api-health", {"id": "api-health", "timeout": 2.0}) is True
        assert scheduler.get("api-health").timeout == 2.0

    def test_update_validates_before_applying(self, scheduler, make_check):
        check = make_check()
        scheduler.register(check)
        with pytest.raises(CheckValidationError):
            scheduler.update(check.id, {"timeout": -1})
        assert check.timeout == 5.0

    def test_update_unknown(self, scheduler):
        assert scheduler.update("nope", {"interval": 10}) is False


class TestTimers:
    """Timers fire immediately and then every interval."""

    @pytest.mark.asyncio
    async def test_fires_immediately_then_each_interval(self, scheduler, recorder, make_check, clock, settle):
        scheduler.register(make_check(interval=30))
        scheduler.start()
        try:
            await settle()
            assert recorder.ticks == ["api-health"]

            clock.advance(29)
            await settle()
            assert len(recorder.ticks) == 1

            clock.advance(1)
            await settle()
            assert len(recorder.ticks) == 2
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_disabled_checks_are_not_armed(self, scheduler, recorder, make_check, settle):
        scheduler.register(make_check(enabled=False))
        scheduler.start()
        try:
            await settle()
            assert recorder.ticks == []
            assert scheduler.is_armed("api-health") is False
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_register_while_running_arms_timer(self, scheduler, recorder, make_check, settle):
        scheduler.start()
        try:
            scheduler.register(make_check("late-check"))
            await settle()
            assert recorder.ticks == ["late-check"]
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_skip_if_busy(self, scheduler, recorder, make_check, clock, settle):
        recorder.gate = asyncio.Event()
        scheduler.register(make_check(interval=10))
        scheduler.start()
        try:
            await settle()
            assert scheduler.is_busy("api-health")

            clock.advance(10)
            await settle()
            clock.advance(10)
            await settle()

            assert recorder.ticks == ["api-health"]
            assert scheduler.get_stats()["per_check"]["api-health"]["skipped_busy"] == 2

            recorder.gate.set()
            await scheduler.wait_idle()
            clock.advance(10)
            await settle()
            assert len(recorder.ticks) == 2
        finally:
            recorder.gate.set()
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_suppressed_firings_are_dropped(self, scheduler, recorder, suppressed, make_check, clock, settle):
        suppressed.add("api-health")
        scheduler.register(make_check(interval=10))
        scheduler.start()
        try:
            await settle()
            clock.advance(10)
            await settle()
            assert recorder.ticks == []
            assert scheduler.get_stats()["per_check"]["api-health"]["suppressed"] == 2

            suppressed.clear()
            clock.advance(10)
            await settle()
            assert recorder.ticks == ["api-health"]
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_tick_errors_are_contained(self, scheduler, recorder, make_check, clock, settle):
        recorder.fail = True
        scheduler.register(make_check(interval=10))
        scheduler.start()
        try:
            await settle()
            clock.advance(10)
            await settle()
            assert len(recorder.ticks) == 2
            assert scheduler.get_stats()["per_check"]["api-health"]["errors"] == 2
        finally:
            await scheduler.stop()


class TestRearming:

    @pytest.mark.asyncio
    async def test_interval_update_rearms(self, scheduler, recorder, make_check, clock, settle):
        scheduler.register(make_check(interval=60))
        scheduler.start()
        try:
            await settle()
            assert len(recorder.ticks) == 1

            assert scheduler.update("api-health", {"interval": 10}) is True
            await settle()
            assert len(recorder.ticks) == 2

            clock.advance(10)
            await settle()
            assert len(recorder.ticks) == 3
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_disable_cancels_timer(self, scheduler, recorder, make_check, clock, settle):
        scheduler.register(make_check(interval=10))
        scheduler.start()
        try:
            await settle()
            scheduler.update("api-health", {"enabled": False})
            await settle()
            assert scheduler.is_armed("api-health") is False

            clock.advance(30)
            await settle()
            assert len(recorder.ticks) == 1
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_non_timing_update_keeps_timer(self, scheduler, recorder, make_check, clock, settle):
        scheduler.register(make_check(interval=10))
        scheduler.start()
        try:
            await settle()
            scheduler.update("api-health", {"name": "Renamed"})
            await settle()
            assert len(recorder.ticks) == 1
            assert scheduler.get("api-health").name == "Renamed"
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_unregister_cancels_timer(self, scheduler, recorder, make_check, clock, settle):
        scheduler.register(make_check(interval=10))
        scheduler.start()
        try:
            await settle()
            assert scheduler.unregister("api-health") is True
            clock.advance(30)
            await settle()
            assert len(recorder.ticks) == 1
            assert clock.pending_sleepers == 0
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_trigger(self, scheduler, recorder, make_check, settle):
        scheduler.register(make_check())
        assert scheduler.trigger("api-health") is True
        await scheduler.wait_idle()
        assert recorder.ticks == ["api-health"]
        assert scheduler.trigger("missing") is False
        await scheduler.stop()
