"""
Charts for the Fleet Console telemetry panel.

Terminal line charts rendered as block sparklines, coloured per value by the
metric's threshold bands.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from rich.text import Text

from fleetwatch.services.fleet_console.core.telemetry import MetricConfig


BAND_STYLES = {"green": "green", "yellow": "yellow", "red": "red"}


class Sparkline:
    """Create sparkline charts for time series data."""

    BARS = " ▁▂▃▄▅▆▇█"

    def __init__(self, data: Sequence[float], width: int = 20):
        """
        Initialize sparkline.

        Args:
            data: List of values to plot
            width: Width of the chart in characters (newest values win)
        """
        data_list = [float(val) for val in data]
        self.data: List[float] = data_list[-width:] if len(data_list) > width else data_list
        self.width = width

    def bars(self) -> List[str]:
        if not self.data:
            return []

        min_val = min(self.data)
        max_val = max(self.data)

        if max_val == min_val:
            # All values are the same
            return [self.BARS[4]] * len(self.data)

        # Normalize data to 0-8 range (for bar characters)
        return [self.BARS[int((val - min_val) / (max_val - min_val) * (len(self.BARS) - 1))] for val in self.data]

    def render(self) -> str:
        """Render sparkline as string."""
        if not self.data:
            return "─" * self.width
        return "".join(self.bars()).rjust(self.width)

    def __str__(self) -> str:
        """String representation."""
        return self.render()


class TerminalChart:
    """A chart instance: mutable data arrays plus update/resize/destroy."""

    def __init__(
        self,
        metric: MetricConfig,
        labels: List[datetime],
        values: List[float],
        *,
        width: int = 40,
        expanded_width: int = 96,
    ):
        self.metric = metric
        self.labels = labels
        self.values = values
        self.normal_width = width
        self.expanded_width = expanded_width
        self.width = width
        self.version = 0
        self.destroyed = False

    def update(self) -> None:
        self.version += 1

    def resize(self, expanded: bool) -> None:
        self.width = self.expanded_width if expanded else self.normal_width

    def destroy(self) -> None:
        self.destroyed = True
        self.labels = []
        self.values = []

    def _style_for(self, value: float) -> str:
        thresholds = self.metric.thresholds
        if thresholds is None:
            return self.metric.color
        return BAND_STYLES[thresholds.band(value)]

    def render(self) -> Text:
        if self.destroyed:
            return Text("")
        spark = Sparkline(self.values, width=self.width)
        text = Text()
        if not spark.data:
            text.append(spark.render(), style="dim")
            return text
        padding = self.width - len(spark.data)
        if padding > 0:
            text.append(" " * padding)
        for bar, value in zip(spark.bars(), spark.data):
            text.append(bar, style=self._style_for(value))
        return text

    def time_span(self) -> Optional[str]:
        if not self.labels:
            return None
        return f"{self.labels[0]:%H:%M} - {self.labels[-1]:%H:%M}"


class TerminalChartBackend:
    """Chart backend handed to telemetry panels."""

    def __init__(self, *, width: int = 40, expanded_width: int = 96):
        self.width = width
        self.expanded_width = expanded_width
        self.created = 0

    def create_chart(self, metric: MetricConfig, labels: List[datetime], values: List[float]) -> TerminalChart:
        self.created += 1
        return TerminalChart(metric, labels, values, width=self.width, expanded_width=self.expanded_width)
