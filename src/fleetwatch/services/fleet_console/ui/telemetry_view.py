"""
Telemetry detail view: range bar, four charts and their Now/Avg/Peak summaries.
"""

from typing import Optional

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.text import Text
from textual.widgets import Static

from fleetwatch.services.fleet_console.core.telemetry import METRICS, RANGES, PanelPhase, TelemetryPanel


class TelemetryView(Static):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.panel: Optional[TelemetryPanel] = None

    def show(self, panel: Optional[TelemetryPanel]) -> None:
        self.panel = panel if panel is not None and panel.is_open else None
        self.display = self.panel is not None
        self.refresh()

    def _range_bar(self, panel: TelemetryPanel) -> Text:
        bar = Text()
        for range_key in RANGES:
            active = range_key == panel.state.range_key
            bar.append(f" {range_key} ", style="reverse bold" if active else "dim")
            bar.append(" ")
        if panel.refreshing:
            bar.append("↻", style="cyan")
        return bar

    def render(self) -> RenderableType:
        panel = self.panel
        if panel is None:
            return Text("")

        parts = [self._range_bar(panel)]
        phase = panel.state.phase
        if phase == PanelPhase.LOADING:
            parts.append(Text("Loading telemetry data...", style="dim"))
        elif phase in (PanelPhase.EMPTY, PanelPhase.ERROR):
            parts.append(Text(panel.state.message, style="red" if phase == PanelPhase.ERROR else "dim"))
        else:
            for metric in METRICS:
                handle = panel.handles.get(metric.key)
                if handle is None or handle.hidden or handle.destroyed:
                    continue
                summary = panel.summaries.get(metric.key)
                header = Text(metric.title, style="bold")
                if handle.expanded:
                    header.append("  [expanded]", style="cyan")
                parts.append(header)
                parts.append(handle.chart.render())
                if summary is not None:
                    parts.append(Text("   ".join(summary.labels(metric.unit)), style="dim"))

        return Panel(Group(*parts), title=f"World {panel.world_id} Telemetry", border_style="cyan")
