"""
Fleet view session.

Everything the fleet view schedules (poll timer, label timer, countdown
ticker, telemetry panels with their charts and refresh timers, delayed
reloads) is owned here and released by a single ``dispose()``.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol

from fleetwatch.services.fleet_console.clients.control_api import ControlApiClient
from fleetwatch.services.fleet_console.core.confirmation import Confirmer
from fleetwatch.services.fleet_console.core.fleet_poller import CountdownTicker, FleetPoller
from fleetwatch.services.fleet_console.core.fleet_state import FleetViewState
from fleetwatch.services.fleet_console.core.notifications import Notifier
from fleetwatch.services.fleet_console.core.telemetry import (
    DEFAULT_RANGE,
    ChartBackend,
    ChartHandle,
    TelemetryPanel,
    validate_range,
)
from fleetwatch.services.fleet_console.core.timers import TimerFactory, TimerHandle, repeating_timer
from fleetwatch.services.fleet_console.core.world_actions import (
    RELOAD_DELAY_S,
    WorldAction,
    WorldActionRunner,
    world_actions,
)
from fleetwatch.shared.models.core import WorldSnapshot


logger = logging.getLogger(__name__)


class FleetView(Protocol):
    """Render sink for the fleet view; implementations only consume state."""

    def render_fleet(self, state: FleetViewState) -> None: ...

    def render_error(self, message: str) -> None: ...

    def render_label(self, text: str) -> None: ...

    def render_countdown(self, world_id: int, text: str) -> None: ...

    def render_telemetry(self, panel: TelemetryPanel) -> None: ...


class FleetViewSession:
    def __init__(
        self,
        api: ControlApiClient,
        view: FleetView,
        *,
        notifier: Notifier,
        confirmer: Confirmer,
        chart_backend: Optional[ChartBackend] = None,
        can_manage: bool = True,
        can_update_agent: bool = False,
        timer_factory: TimerFactory = repeating_timer,
        reload_delay_s: float = RELOAD_DELAY_S,
    ):
        self._api = api
        self._view = view
        self._chart_backend = chart_backend
        self._timer_factory = timer_factory
        self.can_manage = can_manage
        self.can_update_agent = can_update_agent

        self.poller = FleetPoller(
            api,
            render=view.render_fleet,
            render_error=view.render_error,
            render_label=view.render_label,
            timer_factory=timer_factory,
        )
        self.ticker = CountdownTicker(self.poller, render_countdown=view.render_countdown, timer_factory=timer_factory)
        self.actions = WorldActionRunner(
            api,
            notifier=notifier,
            confirmer=confirmer,
            mark_busy=self._mark_busy,
            reload=self.poller.load,
            reload_delay_s=reload_delay_s,
        )
        self.panels: Dict[int, TelemetryPanel] = {}
        self.started = False
        self.disposed = False

    async def __aenter__(self) -> "FleetViewSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # ---- Ownership views ---------------------------------------------------
    @property
    def chart_handles(self) -> Dict[int, List[ChartHandle]]:
        return {world_id: panel.charts for world_id, panel in self.panels.items() if panel.charts}

    @property
    def refresh_timers(self) -> Dict[int, TimerHandle]:
        return {world_id: panel.timer for world_id, panel in self.panels.items() if panel.timer is not None}

    @property
    def open_world(self) -> Optional[int]:
        return next(iter(self.panels), None)

    def panel(self, world_id: Optional[int] = None) -> Optional[TelemetryPanel]:
        if world_id is None:
            world_id = self.open_world
        return self.panels.get(world_id) if world_id is not None else None

    # ---- Lifecycle ---------------------------------------------------------
    async def start(self) -> None:
        if self.disposed:
            raise RuntimeError("FleetViewSession has been disposed")
        if self.started:
            return
        self.started = True
        logger.info("Fleet view session started")
        await self.poller.load()
        self.poller.start_auto_refresh(self.poller.state.refresh_interval_ms)
        self.ticker.start()

    async def refresh(self) -> bool:
        return await self.poller.load()

    def dispose(self) -> None:
        """Cancel every timer and destroy every chart. Safe to call twice."""
        if self.disposed:
            return
        self.disposed = True
        self.poller.stop()
        self.ticker.stop()
        self.actions.cancel()
        for panel in list(self.panels.values()):
            panel.close()
        self.panels.clear()
        logger.info("Fleet view session disposed")

    # ---- Telemetry detail --------------------------------------------------
    async def toggle_detail(self, world_id: int, range_key: str = DEFAULT_RANGE) -> Optional[TelemetryPanel]:
        """Open the detail panel for ``world_id`` (closing any other) or close it if already open."""
        if world_id in self.panels:
            self.close_detail(world_id)
            return None
        range_key = validate_range(range_key)
        for other in list(self.panels):
            self.close_detail(other)
        panel = TelemetryPanel(
            world_id,
            self._api,
            self._chart_backend,
            timer_factory=self._timer_factory,
            on_change=self._view.render_telemetry,
        )
        self.panels[world_id] = panel
        await panel.open(range_key)
        return panel

    def close_detail(self, world_id: Optional[int] = None) -> bool:
        if world_id is None:
            world_id = self.open_world
        panel = self.panels.pop(world_id, None) if world_id is not None else None
        if panel is None:
            return False
        panel.close()
        return True

    # ---- World actions -----------------------------------------------------
    def _mark_busy(self, world_id: int) -> None:
        self.poller.mark_busy(world_id)
        self._view.render_fleet(self.poller.state)

    def actions_for(self, world: WorldSnapshot) -> List[WorldAction]:
        if not self.can_manage:
            return []
        return world_actions(world, busy=self.poller.is_busy(world.id), can_update_agent=self.can_update_agent)
