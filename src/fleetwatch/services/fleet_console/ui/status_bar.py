"""
Status bar for the Fleet Console.
Shows API endpoint, refresh age, poll cadence and the command target.
"""

from rich.console import RenderableType
from rich.text import Text
from textual.reactive import reactive
from textual.widgets import Static


class StatusBar(Static):
    """Single-line status bar."""

    refresh_text = reactive("Not updated yet")
    interval_ms = reactive(0)
    target_text = reactive("All Worlds")
    error_text = reactive("")

    def __init__(self, api_url: str = "", **kwargs):
        super().__init__(**kwargs)
        self.api_url = api_url

    def render(self) -> RenderableType:
        text = Text()
        text.append(f" API: {self.api_url} ", style="dim")
        text.append(" │ ", style="dim")
        if self.error_text:
            text.append(f"🔴 {self.error_text} ", style="bold red")
        else:
            text.append("🟢 ", style="green")
        text.append(self.refresh_text)
        if self.interval_ms:
            text.append(" │ ", style="dim")
            text.append(f"every {self.interval_ms // 1000}s", style="cyan")
        text.append(" │ ", style="dim")
        text.append(f"Target: {self.target_text}", style="bold")
        return text
