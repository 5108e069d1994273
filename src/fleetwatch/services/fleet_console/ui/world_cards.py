"""
World cards for the Fleet Console.
"""

from typing import Callable, Dict, List, Optional

from rich.columns import Columns
from rich.console import RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from textual.widgets import Static

from fleetwatch.services.fleet_console.core.fleet_state import (
    FleetViewState,
    format_cpu,
    format_region,
    format_uptime,
    status_pill_text,
)
from fleetwatch.services.fleet_console.core.world_actions import WorldAction
from fleetwatch.shared.models.core import WorldSnapshot, WorldStatus


STATUS_STYLES = {
    WorldStatus.RUNNING: "bold green",
    WorldStatus.OFFLINE: "bold red",
    WorldStatus.UPDATING: "bold cyan",
    WorldStatus.COUNTDOWN: "bold yellow",
    WorldStatus.UNREACHABLE: "bold magenta",
}

ActionsFor = Callable[[WorldSnapshot], List[WorldAction]]


def render_world_card(
    world: WorldSnapshot,
    pill: str,
    actions: List[WorldAction],
    *,
    selected: bool = False,
) -> Panel:
    stats = Table.grid(padding=(0, 2))
    stats.add_column(style="dim")
    stats.add_column()
    stats.add_row("Players", str(world.players))
    stats.add_row("Tick", f"{world.tick_ms:g}ms")
    stats.add_row("Memory", f"{world.memory_pct}%")
    stats.add_row("CPU", format_cpu(world.cpu_load))
    stats.add_row("Uptime", format_uptime(world.uptime_ms))
    stats.add_row("Region", format_region(world.region))

    buttons = Text()
    for action in actions:
        style = "reverse" if action.enabled else "dim strike"
        buttons.append(f" {action.label} ", style=style)
        buttons.append(" ")

    body = Table.grid()
    body.add_row(Text(pill, style=STATUS_STYLES.get(world.status, "bold")))
    body.add_row(stats)
    body.add_row(buttons)

    title = f"{world.label} · {world.type}"
    return Panel(body, title=title, border_style="bright_white" if selected else "blue", width=38)


class WorldGrid(Static):
    """Grid of world cards; countdown pills can be updated without a fresh snapshot."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._fleet_state: Optional[FleetViewState] = None
        self._actions_for: Optional[ActionsFor] = None
        self._pills: Dict[int, str] = {}
        self._fleet_error: Optional[str] = None
        self.selected_world: Optional[int] = None

    def show(self, state: FleetViewState, actions_for: ActionsFor) -> None:
        self._fleet_state = state
        self._actions_for = actions_for
        self._pills = {world.id: status_pill_text(world, state.countdowns.get(world.id)) for world in state.worlds}
        self._fleet_error = state.error
        self.refresh()

    def show_error(self, message: str) -> None:
        self._fleet_error = message
        self.refresh()

    def set_pill(self, world_id: int, text: str) -> None:
        if self._pills.get(world_id) == text:
            return
        self._pills[world_id] = text
        self.refresh()

    def pill(self, world_id: int) -> Optional[str]:
        return self._pills.get(world_id)

    def render(self) -> RenderableType:
        if self._fleet_state is None:
            return Text(self._fleet_error or "Loading worlds...", style="red" if self._fleet_error else "dim")
        worlds = self._fleet_state.worlds
        if not worlds:
            return Text(self._fleet_error or "No worlds reported", style="red" if self._fleet_error else "dim")

        cards = [
            render_world_card(
                world,
                self._pills.get(world.id, world.status.value),
                self._actions_for(world) if self._actions_for else [],
                selected=world.id == self.selected_world,
            )
            for world in worlds
        ]
        if not self._fleet_error:
            return Columns(cards)
        table = Table.grid()
        table.add_row(Text(f"⚠ {self._fleet_error}", style="bold red"))
        table.add_row(Columns(cards))
        return table
