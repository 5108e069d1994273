"""
Command browser and command log widgets.
"""

from typing import Optional

from rich.console import Group, RenderableType
from rich.text import Text
from textual.widgets import DataTable, Static

from fleetwatch.services.fleet_console.core.command_log import CommandLog, EntryStatus
from fleetwatch.services.fleet_console.core.commands import QUICK_ACTIONS, CommandConsole
from fleetwatch.services.fleet_console.core.confirmation import DANGEROUS_COMMANDS
from fleetwatch.shared.models.core import format_command_name


STATUS_STYLES = {
    EntryStatus.PENDING: "yellow",
    EntryStatus.SUCCESS: "green",
    EntryStatus.FAILED: "red",
}


class CommandBrowser(Static):
    """Quick actions, recent commands and the grouped catalog."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.command_console: Optional[CommandConsole] = None

    def show(self, console: CommandConsole) -> None:
        self.command_console = console
        self.refresh()

    def render(self) -> RenderableType:
        console = self.command_console
        if console is None:
            return Text("Loading commands...", style="dim")

        parts = []
        quick = Text("Quick: ", style="bold")
        for action in QUICK_ACTIONS:
            quick.append(f"[{format_command_name(action.name)}] ", style="cyan")
        parts.append(quick)

        recent = Text("Recent: ", style="bold")
        if not len(console.recent):
            recent.append("No recent commands", style="dim")
        for item in console.recent.items:
            recent.append(f"{format_command_name(item.name)} ({item.type})  ")
        parts.append(recent)

        if console.error:
            parts.append(Text(console.error, style="bold red"))

        groups = console.groups()
        if console.catalog is not None and not groups:
            parts.append(Text(f'No commands match "{console.search}"', style="dim"))

        open_key = console.form.key if console.form is not None else None
        for group in groups:
            parts.append(Text(f"▸ {group.category} ({len(group.commands)})", style="bold magenta"))
            for descriptor in group.commands:
                line = Text("   ")
                if descriptor.icon:
                    line.append(f"{descriptor.icon} ")
                line.append(descriptor.name, style="bold")
                if descriptor.dangerous or descriptor.name in DANGEROUS_COMMANDS:
                    line.append(" DANGEROUS", style="bold white on red")
                if descriptor.has_params:
                    line.append(" …", style="cyan")
                if descriptor.description:
                    line.append(f"  {descriptor.description}", style="dim")
                parts.append(line)
                if descriptor.key == open_key:
                    for index, param in enumerate(descriptor.params):
                        value = console.form.values.get(param.name, "")
                        marker = " *" if param.required else ""
                        parts.append(
                            Text(f"      [{index}] {param.name}{marker} ({param.type.value}) = {value!s}", style="cyan")
                        )
        return Group(*parts)


class CommandLogTable(DataTable):
    """Command log, most recent first."""

    def on_mount(self) -> None:
        self.add_columns("Time", "Command", "Target", "Status", "Message")
        self.cursor_type = "row"

    def show(self, log: CommandLog) -> None:
        self.clear()
        for entry in log:
            self.add_row(
                entry.time_label,
                format_command_name(entry.command),
                entry.target_label,
                Text(entry.status.value, style=STATUS_STYLES[entry.status]),
                entry.message,
                key=entry.correlation_id,
            )
