"""
Fleet polling for the Fleet Console.

FleetPoller fetches the fleet snapshot on an adaptive cadence (fast while any
world is counting down, slow otherwise); CountdownTicker advances the local
countdown prediction once a second between polls.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Set

from fleetwatch.services.fleet_console.clients.control_api import ControlApiClient, ControlApiError
from fleetwatch.services.fleet_console.core.fleet_state import (
    FleetViewState,
    on_countdown_tick,
    on_poll_failed,
    on_poll_tick,
    refresh_label,
    status_pill_text,
)
from fleetwatch.services.fleet_console.core.timers import TimerFactory, TimerHandle, repeating_timer


logger = logging.getLogger(__name__)

LABEL_INTERVAL_S = 1.0
COUNTDOWN_INTERVAL_S = 1.0


def _noop(*_args) -> None:
    return None


class FleetPoller:
    """Poll the fleet snapshot and render world cards."""

    def __init__(
        self,
        api: ControlApiClient,
        *,
        render: Callable[[FleetViewState], None],
        render_error: Optional[Callable[[str], None]] = None,
        render_label: Optional[Callable[[str], None]] = None,
        timer_factory: TimerFactory = repeating_timer,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the poller.

        Args:
            api: Control API client
            render: Called with the new state after every successful load
            render_error: Called with a message when a load fails
            render_label: Called with the "updated N s ago" text
            timer_factory: Builds the repeating timers (injectable for tests)
            clock: Monotonic clock in seconds
        """
        self._api = api
        self._render = render
        self._render_error = render_error or _noop
        self._render_label = render_label or _noop
        self._timer_factory = timer_factory
        self._clock = clock

        self.state = FleetViewState()
        self._poll_timer: Optional[TimerHandle] = None
        self._label_timer: Optional[TimerHandle] = None
        self._current_interval_ms: Optional[int] = None
        self._active = False
        self._request_seq = 0
        self._busy: Set[int] = set()

    @property
    def current_interval_ms(self) -> Optional[int]:
        return self._current_interval_ms

    @property
    def request_seq(self) -> int:
        return self._request_seq

    @property
    def active(self) -> bool:
        return self._active

    def apply(self, transition: Callable[[FleetViewState], FleetViewState]) -> FleetViewState:
        self.state = transition(self.state)
        return self.state

    async def load(self) -> bool:
        """
        Fetch the snapshot and re-render.

        Returns:
            True when this response was applied; False on failure or when a
            newer request was issued while this one was in flight.
        """
        self._request_seq += 1
        seq = self._request_seq
        try:
            snapshot = await self._api.get_fleet()
        except ControlApiError as exc:
            if seq != self._request_seq:
                logger.debug("Ignoring failure of superseded fleet request #%d", seq)
                return False
            logger.warning("Failed to load worlds: %s", exc)
            self.state = on_poll_failed(self.state, str(exc))
            self._render_error(self.state.error or "")
            return False

        if seq != self._request_seq:
            logger.debug("Discarding stale fleet response #%d (latest #%d)", seq, self._request_seq)
            return False

        self.state = on_poll_tick(self.state, snapshot.worlds, self._clock())
        self._busy.clear()
        self._render(self.state)
        self.update_label()
        self._adjust_refresh_rate()
        return True

    # === Adaptive refresh rate ===

    def _adjust_refresh_rate(self) -> None:
        if not self._active:
            return
        interval_ms = self.state.refresh_interval_ms
        if interval_ms == self._current_interval_ms:
            return
        logger.info("Fleet poll interval %s ms -> %s ms", self._current_interval_ms, interval_ms)
        self._restart_poll_timer(interval_ms)

    def _restart_poll_timer(self, interval_ms: int) -> None:
        if self._poll_timer is not None:
            self._poll_timer.cancel()
        self._current_interval_ms = interval_ms
        self._poll_timer = self._timer_factory(interval_ms / 1000.0, self.load)
        self._poll_timer.start()

    def start_auto_refresh(self, interval_ms: int) -> None:
        self.stop()
        self._active = True
        self._restart_poll_timer(interval_ms)
        self._label_timer = self._timer_factory(LABEL_INTERVAL_S, self.update_label)
        self._label_timer.start()

    def stop(self) -> None:
        self._active = False
        self._current_interval_ms = None
        if self._poll_timer is not None:
            self._poll_timer.cancel()
            self._poll_timer = None
        if self._label_timer is not None:
            self._label_timer.cancel()
            self._label_timer = None

    def update_label(self) -> None:
        self._render_label(refresh_label(self.state.last_refresh_at, self._clock()))

    # === Per-world action buttons ===

    def mark_busy(self, world_id: int) -> None:
        self._busy.add(world_id)

    def is_busy(self, world_id: int) -> bool:
        return world_id in self._busy


class CountdownTicker:
    """1 Hz local predictor for worlds in COUNTDOWN.

    Only the pill text is re-rendered; the next poll replaces the prediction
    with the server value.
    """

    def __init__(
        self,
        poller: FleetPoller,
        *,
        render_countdown: Callable[[int, str], None],
        timer_factory: TimerFactory = repeating_timer,
    ):
        self._poller = poller
        self._render_countdown = render_countdown
        self._timer_factory = timer_factory
        self._timer: Optional[TimerHandle] = None

    @property
    def running(self) -> bool:
        return self._timer is not None and self._timer.running

    def start(self) -> None:
        self.stop()
        self._timer = self._timer_factory(COUNTDOWN_INTERVAL_S, self.tick)
        self._timer.start()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def tick(self) -> None:
        if not self._poller.state.countdowns:
            return
        state = self._poller.apply(on_countdown_tick)
        for world_id, remaining in state.countdowns.items():
            world = state.world(world_id)
            if world is None:
                continue
            self._render_countdown(world_id, status_pill_text(world, remaining))
