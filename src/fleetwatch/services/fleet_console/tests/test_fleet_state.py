"""
Tests for the pure fleet view transitions and card formatters.
"""

from fleetwatch.services.fleet_console.core.fleet_state import (
    FAST_INTERVAL_MS,
    SLOW_INTERVAL_MS,
    FleetViewState,
    compute_refresh_interval,
    format_countdown,
    format_cpu,
    format_region,
    format_uptime,
    on_countdown_tick,
    on_poll_failed,
    on_poll_tick,
    refresh_label,
    status_pill_text,
)


class TestRefreshInterval:
    def test_any_countdown_world_selects_fast_interval(self, make_world):
        worlds = [make_world(1, "RUNNING"), make_world(2, "COUNTDOWN", countdownRemaining=30)]
        assert compute_refresh_interval(worlds) == FAST_INTERVAL_MS == 5000

    def test_no_countdown_selects_slow_interval(self, make_world):
        worlds = [make_world(1, "RUNNING"), make_world(2, "OFFLINE"), make_world(3, "UPDATING")]
        assert compute_refresh_interval(worlds) == SLOW_INTERVAL_MS == 15000

    def test_empty_fleet_is_slow(self):
        assert compute_refresh_interval([]) == SLOW_INTERVAL_MS


class TestPollTransitions:
    def test_poll_tick_replaces_worlds_and_records_time(self, make_world):
        state = on_poll_tick(FleetViewState(), [make_world(1)], now=100.0)

        assert [w.id for w in state.worlds] == [1]
        assert state.last_refresh_at == 100.0
        assert state.refresh_interval_ms == SLOW_INTERVAL_MS
        assert state.error is None

    def test_poll_tick_overwrites_local_prediction(self, make_world):
        state = on_poll_tick(FleetViewState(), [make_world(7, "COUNTDOWN", countdownRemaining=125)], now=0.0)
        for _ in range(10):
            state = on_countdown_tick(state)
        assert state.countdowns[7] == 115

        # Server says 120: the prediction is discarded, not merged.
        state = on_poll_tick(state, [make_world(7, "COUNTDOWN", countdownRemaining=120)], now=5.0)
        assert state.countdowns == {7: 120}

    def test_poll_tick_drops_countdowns_for_worlds_no_longer_counting(self, make_world):
        state = on_poll_tick(FleetViewState(), [make_world(7, "COUNTDOWN", countdownRemaining=10)], now=0.0)
        state = on_poll_tick(state, [make_world(7, "UPDATING")], now=5.0)
        assert state.countdowns == {}

    def test_poll_failure_keeps_last_worlds(self, make_world):
        state = on_poll_tick(FleetViewState(), [make_world(1)], now=0.0)
        failed = on_poll_failed(state, "Request timeout")

        assert failed.worlds == state.worlds
        assert failed.error == "Request timeout"

    def test_transitions_do_not_mutate_input(self, make_world):
        original = on_poll_tick(FleetViewState(), [make_world(7, "COUNTDOWN", countdownRemaining=3)], now=0.0)
        ticked = on_countdown_tick(original)

        assert original.countdowns == {7: 3}
        assert ticked.countdowns == {7: 2}


class TestCountdown:
    def test_countdown_never_goes_negative(self, make_world):
        state = on_poll_tick(FleetViewState(), [make_world(1, "COUNTDOWN", countdownRemaining=2)], now=0.0)
        for _ in range(5):
            state = on_countdown_tick(state)
        assert state.countdowns[1] == 0
        assert status_pill_text(state.world(1), state.countdowns[1]) == "COUNTDOWN 0:00"

    def test_125_seconds_after_65_ticks_reads_one_minute(self, make_world):
        world = make_world(7, "COUNTDOWN", countdownRemaining=125)
        state = on_poll_tick(FleetViewState(), [world], now=0.0)
        assert status_pill_text(world, state.countdowns[7]) == "COUNTDOWN 2:05"

        for _ in range(65):
            state = on_countdown_tick(state)
        assert status_pill_text(world, state.countdowns[7]) == "COUNTDOWN 1:00"

    def test_format_countdown(self):
        assert format_countdown(125) == "2:05"
        assert format_countdown(59) == "0:59"
        assert format_countdown(0) == "0:00"
        assert format_countdown(-4) == "0:00"
        assert format_countdown(None) == "0:00"

    def test_pill_for_non_countdown_status(self, make_world):
        assert status_pill_text(make_world(1, "RUNNING")) == "RUNNING"
        assert status_pill_text(make_world(1, "bogus")) == "UNREACHABLE"


class TestFormatting:
    def test_refresh_label(self):
        assert refresh_label(None, 10.0) == "Not updated yet"
        assert refresh_label(10.0, 12.9) == "Updated just now"
        assert refresh_label(10.0, 13.0) == "Updated 3s ago"
        assert refresh_label(10.0, 55.5) == "Updated 45s ago"

    def test_format_uptime(self):
        assert format_uptime(None) == "N/A"
        assert format_uptime(0) == "N/A"
        assert format_uptime(4_000) == "4s"
        assert format_uptime((86400 + 2 * 3600 + 3 * 60 + 4) * 1000) == "1d 2h 3m 4s"
        assert format_uptime(3600 * 1000) == "1h 0s"

    def test_format_region(self):
        assert format_region("NTL") == "Netherlands"
        assert format_region("XX") == "XX"
        assert format_region("") == "Unknown"

    def test_format_cpu(self):
        assert format_cpu(0.456) == "46%"
