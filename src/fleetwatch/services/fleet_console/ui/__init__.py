"""
UI components package for the Fleet Console.

Contains Textual widgets, modal screens and chart rendering for the TUI.
"""

from .charts import Sparkline, TerminalChart, TerminalChartBackend
from .command_views import CommandBrowser, CommandLogTable
from .screens import ConfirmScreen, TypedConfirmScreen, UpdateDelayScreen
from .status_bar import StatusBar
from .telemetry_view import TelemetryView
from .world_cards import WorldGrid, render_world_card

__all__ = [
    "Sparkline",
    "TerminalChart",
    "TerminalChartBackend",
    "CommandBrowser",
    "CommandLogTable",
    "ConfirmScreen",
    "TypedConfirmScreen",
    "UpdateDelayScreen",
    "StatusBar",
    "TelemetryView",
    "WorldGrid",
    "render_world_card",
]
