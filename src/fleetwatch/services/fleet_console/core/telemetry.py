"""
Telemetry detail panel for one world.

Four charts (CPU, memory, tick cycle time, players) built from the history
endpoint. A range change tears everything down and rebuilds; short ranges
get a 30 s in-place refresh that mutates the existing charts instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from fleetwatch.services.fleet_console.clients.control_api import ControlApiClient, ControlApiError
from fleetwatch.services.fleet_console.core.timers import TimerFactory, TimerHandle, repeating_timer
from fleetwatch.shared.models.core import TelemetrySample


logger = logging.getLogger(__name__)

RANGES = ("1h", "6h", "24h", "7d", "30d")
DEFAULT_RANGE = "1h"
SMOOTH_REFRESH_RANGES = frozenset({"1h", "6h"})
SMOOTH_REFRESH_INTERVAL_S = 30.0

NO_DATA_MESSAGE = "No telemetry data available for this range"
NO_BACKEND_MESSAGE = "Charts unavailable: no data"


# =============================================================================
#  Metric definitions
# =============================================================================
@dataclass(frozen=True)
class ThresholdBands:
    yellow: float
    red: float

    def band(self, value: float) -> str:
        if value >= self.red:
            return "red"
        if value >= self.yellow:
            return "yellow"
        return "green"


THRESHOLDS: Dict[str, ThresholdBands] = {
    "cpu": ThresholdBands(yellow=50, red=75),
    "memory": ThresholdBands(yellow=60, red=80),
    "cycleTime": ThresholdBands(yellow=300, red=450),
}


@dataclass(frozen=True)
class MetricConfig:
    key: str
    title: str
    unit: str
    field: str
    color: str
    threshold_key: Optional[str] = None

    @property
    def thresholds(self) -> Optional[ThresholdBands]:
        return THRESHOLDS.get(self.threshold_key) if self.threshold_key else None


METRICS = (
    MetricConfig("cpu", "CPU Usage", "%", "cpu", "#3b82f6", "cpu"),
    MetricConfig("memory", "Memory", "MB", "mem_mb", "#8b5cf6"),
    MetricConfig("tick", "Tick Cycle Time", "ms", "avg_cycle_ms", "#f59e0b", "cycleTime"),
    MetricConfig("players", "Players", "", "players", "#22c55e"),
)

METRIC_KEYS = tuple(metric.key for metric in METRICS)


def format_value(value: Optional[float], unit: str = "") -> str:
    if value is None:
        return "0"
    num = float(value)
    formatted = str(int(num)) if num.is_integer() else f"{num:.1f}"
    return f"{formatted}{unit}" if unit else formatted


@dataclass(frozen=True)
class MetricSummary:
    now: float = 0.0
    avg: float = 0.0
    peak: float = 0.0

    @classmethod
    def from_values(cls, values: Sequence[float]) -> "MetricSummary":
        if not values:
            return cls()
        return cls(now=values[-1], avg=sum(values) / len(values), peak=max(values))

    def labels(self, unit: str = "") -> List[str]:
        return [
            f"Now: {format_value(self.now, unit)}",
            f"Avg: {format_value(self.avg, unit)}",
            f"Peak: {format_value(self.peak, unit)}",
        ]


def series(samples: Sequence[TelemetrySample], metric: MetricConfig) -> List[float]:
    return [sample.value(metric.field) for sample in samples]


def validate_range(range_key: str) -> str:
    if range_key not in RANGES:
        raise ValueError(f"Invalid telemetry range {range_key!r}; expected one of {', '.join(RANGES)}")
    return range_key


# =============================================================================
#  Pure panel state
# =============================================================================
class PanelPhase(str, Enum):
    CLOSED = "closed"
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True)
class TelemetryViewState:
    phase: PanelPhase = PanelPhase.CLOSED
    range_key: str = DEFAULT_RANGE
    expanded: Optional[str] = None
    message: str = ""

    @property
    def smooth_refresh(self) -> bool:
        return self.phase == PanelPhase.READY and self.range_key in SMOOTH_REFRESH_RANGES


def on_open(state: TelemetryViewState, range_key: str) -> TelemetryViewState:
    return TelemetryViewState(phase=PanelPhase.LOADING, range_key=validate_range(range_key))


def on_range_change(state: TelemetryViewState, range_key: str) -> TelemetryViewState:
    """Any range change is a full rebuild and collapses the expanded chart."""
    return replace(state, phase=PanelPhase.LOADING, range_key=validate_range(range_key), expanded=None, message="")


def on_loaded(state: TelemetryViewState, sample_count: int, *, charts_available: bool = True) -> TelemetryViewState:
    if sample_count == 0:
        return replace(state, phase=PanelPhase.EMPTY, message=NO_DATA_MESSAGE)
    if not charts_available:
        return replace(state, phase=PanelPhase.EMPTY, message=NO_BACKEND_MESSAGE)
    return replace(state, phase=PanelPhase.READY, message="")


def on_load_failed(state: TelemetryViewState, message: str) -> TelemetryViewState:
    return replace(state, phase=PanelPhase.ERROR, message=f"Failed to load telemetry: {message}")


def on_toggle_expand(state: TelemetryViewState, key: str) -> TelemetryViewState:
    if key not in METRIC_KEYS:
        raise ValueError(f"Unknown metric {key!r}; expected one of {', '.join(METRIC_KEYS)}")
    return replace(state, expanded=None if state.expanded == key else key)


def on_close(state: TelemetryViewState) -> TelemetryViewState:
    return TelemetryViewState(phase=PanelPhase.CLOSED, range_key=state.range_key)


# =============================================================================
#  Chart backend seam
# =============================================================================
class ChartInstance(Protocol):
    labels: List[datetime]
    values: List[float]

    def update(self) -> None: ...

    def resize(self, expanded: bool) -> None: ...

    def destroy(self) -> None: ...


class ChartBackend(Protocol):
    def create_chart(self, metric: MetricConfig, labels: List[datetime], values: List[float]) -> ChartInstance: ...


class ChartHandle:
    """One live chart owned by a panel."""

    def __init__(self, metric: MetricConfig, chart: ChartInstance):
        self.metric = metric
        self.chart: Optional[ChartInstance] = chart
        self.expanded = False
        self.hidden = False

    @property
    def destroyed(self) -> bool:
        return self.chart is None

    def update(self, labels: List[datetime], values: List[float]) -> None:
        if self.chart is None:
            return
        # In place: same chart object, new arrays.
        self.chart.labels[:] = labels
        self.chart.values[:] = values
        self.chart.update()

    def resize(self) -> None:
        if self.chart is not None and not self.hidden:
            self.chart.resize(self.expanded)

    def destroy(self) -> None:
        chart, self.chart = self.chart, None
        if chart is not None:
            chart.destroy()


# =============================================================================
#  Panel
# =============================================================================
class TelemetryPanel:
    """Owns the charts and the smooth-refresh timer of one world's detail view."""

    def __init__(
        self,
        world_id: int,
        api: ControlApiClient,
        backend: Optional[ChartBackend],
        *,
        timer_factory: TimerFactory = repeating_timer,
        on_change: Optional[Callable[["TelemetryPanel"], None]] = None,
    ):
        self.world_id = world_id
        self._api = api
        self._backend = backend
        self._timer_factory = timer_factory
        self._on_change = on_change

        self.state = TelemetryViewState()
        self.handles: Dict[str, ChartHandle] = {}
        self.summaries: Dict[str, MetricSummary] = {}
        self.timer: Optional[TimerHandle] = None
        self.refreshing = False
        self._seq = 0

    @property
    def is_open(self) -> bool:
        return self.state.phase != PanelPhase.CLOSED

    @property
    def charts(self) -> List[ChartHandle]:
        return list(self.handles.values())

    @property
    def expanded_count(self) -> int:
        return sum(1 for handle in self.handles.values() if handle.expanded)

    async def open(self, range_key: str = DEFAULT_RANGE) -> None:
        """Full rebuild of the panel for ``range_key``."""
        state = on_open(self.state, range_key)
        self._teardown()
        self.state = state
        await self._load()

    async def change_range(self, range_key: str) -> None:
        state = on_range_change(self.state, range_key)
        self._teardown()
        self.state = state
        await self._load()

    async def _load(self) -> None:
        self._seq += 1
        seq = self._seq
        range_key = self.state.range_key
        self._changed()

        try:
            history = await self._api.get_telemetry(self.world_id, range_key)
        except ControlApiError as exc:
            if self._is_stale(seq):
                return
            logger.warning("World %s telemetry (%s) failed: %s", self.world_id, range_key, exc)
            self.state = on_load_failed(self.state, exc.message)
            self._changed()
            return

        if self._is_stale(seq):
            logger.debug("Discarding stale telemetry for world %s (%s)", self.world_id, range_key)
            return

        data = history.data
        self.summaries = {metric.key: MetricSummary.from_values(series(data, metric)) for metric in METRICS}
        if data and self._backend is not None:
            labels = [sample.t for sample in data]
            for metric in METRICS:
                chart = self._backend.create_chart(metric, list(labels), series(data, metric))
                self.handles[metric.key] = ChartHandle(metric, chart)
        elif data:
            logger.warning("No chart backend available; world %s telemetry shown as placeholder", self.world_id)

        self.state = on_loaded(self.state, len(data), charts_available=self._backend is not None)
        self._apply_expand()
        if self.state.smooth_refresh:
            self.timer = self._timer_factory(SMOOTH_REFRESH_INTERVAL_S, self.smooth_refresh)
            self.timer.start()
        self._changed()

    def _is_stale(self, seq: int) -> bool:
        return seq != self._seq or self.state.phase == PanelPhase.CLOSED

    async def smooth_refresh(self) -> None:
        """Refetch and mutate the existing charts in place."""
        if self.state.phase != PanelPhase.READY:
            return
        seq = self._seq
        range_key = self.state.range_key
        self.refreshing = True
        self._changed()
        try:
            history = await self._api.get_telemetry(self.world_id, range_key)
        except ControlApiError as exc:
            logger.warning("World %s telemetry refresh failed: %s", self.world_id, exc)
            history = None
        self.refreshing = False

        if history is None or self._is_stale(seq) or not history.data:
            self._changed()
            return

        data = history.data
        labels = [sample.t for sample in data]
        for metric in METRICS:
            values = series(data, metric)
            handle = self.handles.get(metric.key)
            if handle is not None:
                handle.update(list(labels), values)
            self.summaries[metric.key] = MetricSummary.from_values(values)
        self._changed()

    def toggle_expand(self, key: str) -> Optional[str]:
        """Expand ``key`` (collapsing any other) or collapse it if already expanded."""
        self.state = on_toggle_expand(self.state, key)
        self._apply_expand()
        self._changed()
        return self.state.expanded

    def _apply_expand(self) -> None:
        expanded = self.state.expanded
        for key, handle in self.handles.items():
            handle.expanded = expanded == key
            handle.hidden = expanded is not None and expanded != key
        for handle in self.handles.values():
            handle.resize()

    def close(self) -> None:
        # Bump the sequence so an in-flight fetch cannot build charts afterwards.
        self._seq += 1
        self._teardown()
        self.state = on_close(self.state)
        self._changed()

    def _teardown(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        for handle in self.handles.values():
            handle.destroy()
        self.handles = {}
        self.summaries = {}

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self)
