"""
Tests for FleetPoller and CountdownTicker.
"""

import asyncio

import pytest

from fleetwatch.services.fleet_console.clients.control_api import ControlApiError
from fleetwatch.services.fleet_console.core.fleet_poller import CountdownTicker, FleetPoller
from fleetwatch.services.fleet_console.core.fleet_state import FAST_INTERVAL_MS, SLOW_INTERVAL_MS
from fleetwatch.shared.models.core import FleetSnapshot


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def renders():
    return {"fleet": [], "errors": [], "labels": [], "countdowns": []}


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def poller(api, timers, renders, clock):
    return FleetPoller(
        api,
        render=renders["fleet"].append,
        render_error=renders["errors"].append,
        render_label=renders["labels"].append,
        timer_factory=timers,
        clock=clock,
    )


def fleet(make_world, *specs):
    return FleetSnapshot(worlds=[make_world(world_id, status, **extra) for world_id, status, extra in specs])


class TestFleetPollerLoad:
    @pytest.mark.asyncio
    async def test_load_renders_snapshot(self, poller, api, renders, make_world):
        api.get_fleet.return_value = fleet(make_world, (1, "RUNNING", {}), (2, "OFFLINE", {}))

        assert await poller.load() is True

        assert len(renders["fleet"]) == 1
        assert [w.id for w in renders["fleet"][0].worlds] == [1, 2]
        assert renders["labels"][-1] == "Updated just now"

    @pytest.mark.asyncio
    async def test_failure_renders_error_and_keeps_timer(self, poller, api, renders, timers):
        poller.start_auto_refresh(SLOW_INTERVAL_MS)
        api.get_fleet.side_effect = ControlApiError("Request failed with status 502", 502)

        poll_timer = timers.active_with(SLOW_INTERVAL_MS / 1000)[0]
        await poll_timer.fire()

        assert renders["errors"] == ["Request failed with status 502"]
        assert poll_timer.running
        assert poller.state.error == "Request failed with status 502"

    @pytest.mark.asyncio
    async def test_next_tick_after_failure_recovers(self, poller, api, renders, make_world):
        api.get_fleet.side_effect = [ControlApiError("boom"), fleet(make_world, (1, "RUNNING", {}))]

        assert await poller.load() is False
        assert await poller.load() is True
        assert poller.state.error is None
        assert len(renders["fleet"]) == 1


class TestAdaptiveRefresh:
    @pytest.mark.asyncio
    async def test_countdown_switches_to_fast_interval(self, poller, api, timers, make_world):
        poller.start_auto_refresh(SLOW_INTERVAL_MS)
        slow_timer = timers.active_with(SLOW_INTERVAL_MS / 1000)[0]

        api.get_fleet.return_value = fleet(make_world, (1, "COUNTDOWN", {"countdownRemaining": 90}))
        await poller.load()

        assert slow_timer.cancelled
        assert poller.current_interval_ms == FAST_INTERVAL_MS
        assert len(timers.active_with(FAST_INTERVAL_MS / 1000)) == 1

    @pytest.mark.asyncio
    async def test_unchanged_interval_does_not_restart_timer(self, poller, api, timers, make_world):
        poller.start_auto_refresh(SLOW_INTERVAL_MS)
        created = len(timers.timers)

        api.get_fleet.return_value = fleet(make_world, (1, "RUNNING", {}))
        await poller.load()
        await poller.load()

        assert len(timers.timers) == created
        assert poller.current_interval_ms == SLOW_INTERVAL_MS

    @pytest.mark.asyncio
    async def test_label_timer_is_independent_of_poll_timer(self, poller, api, timers, make_world):
        poller.start_auto_refresh(SLOW_INTERVAL_MS)
        label_timer = timers.active_with(1.0)[0]

        api.get_fleet.return_value = fleet(make_world, (1, "COUNTDOWN", {"countdownRemaining": 90}))
        await poller.load()

        assert label_timer.running
        assert not label_timer.cancelled

    @pytest.mark.asyncio
    async def test_label_advances_with_clock(self, poller, api, renders, clock, timers, make_world):
        api.get_fleet.return_value = fleet(make_world, (1, "RUNNING", {}))
        poller.start_auto_refresh(SLOW_INTERVAL_MS)
        await poller.load()

        clock.now += 7
        await timers.active_with(1.0)[0].fire()
        assert renders["labels"][-1] == "Updated 7s ago"

    @pytest.mark.asyncio
    async def test_load_after_stop_does_not_restart_timers(self, poller, api, timers, make_world):
        poller.start_auto_refresh(SLOW_INTERVAL_MS)
        poller.stop()
        assert timers.active() == []

        api.get_fleet.return_value = fleet(make_world, (1, "COUNTDOWN", {"countdownRemaining": 5}))
        await poller.load()

        assert timers.active() == []


class TestRequestVersioning:
    @pytest.mark.asyncio
    async def test_stale_response_is_discarded(self, poller, api, renders, make_world):
        slow_reply = asyncio.Event()
        old = fleet(make_world, (1, "OFFLINE", {}))
        new = fleet(make_world, (1, "RUNNING", {}))

        async def get_fleet():
            if api.get_fleet.await_count == 1:
                await slow_reply.wait()
                return old
            return new

        api.get_fleet.side_effect = get_fleet

        first = asyncio.create_task(poller.load())
        await asyncio.sleep(0)
        assert await poller.load() is True

        slow_reply.set()
        assert await first is False

        assert len(renders["fleet"]) == 1
        assert poller.state.worlds[0].status.value == "RUNNING"

    @pytest.mark.asyncio
    async def test_request_counter_increases(self, poller):
        await poller.load()
        await poller.load()
        assert poller.request_seq == 2


class TestBusyWorlds:
    @pytest.mark.asyncio
    async def test_busy_cleared_by_next_successful_load(self, poller, api, make_world):
        poller.mark_busy(3)
        assert poller.is_busy(3)

        api.get_fleet.return_value = fleet(make_world, (3, "RUNNING", {}))
        await poller.load()
        assert not poller.is_busy(3)

    @pytest.mark.asyncio
    async def test_busy_survives_failed_load(self, poller, api):
        poller.mark_busy(3)
        api.get_fleet.side_effect = ControlApiError("down")
        await poller.load()
        assert poller.is_busy(3)


class TestCountdownTicker:
    @pytest.mark.asyncio
    async def test_ticks_rerender_only_countdown_worlds(self, poller, api, renders, timers, make_world):
        api.get_fleet.return_value = fleet(
            make_world,
            (7, "COUNTDOWN", {"countdownRemaining": 125}),
            (8, "RUNNING", {}),
        )
        await poller.load()

        ticker = CountdownTicker(
            poller,
            render_countdown=lambda wid, text: renders["countdowns"].append((wid, text)),
            timer_factory=timers,
        )
        ticker.start()
        tick_timer = timers.timers[-1]
        for _ in range(65):
            await tick_timer.fire()

        assert renders["countdowns"][0] == (7, "COUNTDOWN 2:04")
        assert renders["countdowns"][-1] == (7, "COUNTDOWN 1:00")
        assert {wid for wid, _ in renders["countdowns"]} == {7}
        # Fleet cards were not re-rendered by the ticker.
        assert len(renders["fleet"]) == 1

    @pytest.mark.asyncio
    async def test_poll_replaces_prediction(self, poller, api, renders, timers, make_world):
        api.get_fleet.return_value = fleet(make_world, (7, "COUNTDOWN", {"countdownRemaining": 60}))
        await poller.load()
        ticker = CountdownTicker(poller, render_countdown=lambda *_: None, timer_factory=timers)
        for _ in range(20):
            ticker.tick()
        assert poller.state.countdowns[7] == 40

        api.get_fleet.return_value = fleet(make_world, (7, "COUNTDOWN", {"countdownRemaining": 45}))
        await poller.load()
        assert poller.state.countdowns[7] == 45

    def test_stop_cancels_timer(self, poller, timers):
        ticker = CountdownTicker(poller, render_countdown=lambda *_: None, timer_factory=timers)
        ticker.start()
        assert ticker.running
        ticker.stop()
        assert not ticker.running
        assert timers.timers[-1].cancelled
