"""
Pure state transitions for the fleet view.

Every function takes a ``FleetViewState`` and returns a new one; nothing here
touches the network, timers or widgets, so the scheduler logic can be tested
without a UI.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Optional, Tuple

from fleetwatch.shared.models.core import WorldSnapshot, WorldStatus


FAST_INTERVAL_MS = 5000
SLOW_INTERVAL_MS = 15000

JUST_NOW_THRESHOLD_S = 3

REGION_NAMES = {
    "CAN": "Canada",
    "US": "United States",
    "NTL": "Netherlands",
    "UK": "United Kingdom",
    "EU": "Europe",
    "AU": "Australia",
}


@dataclass(frozen=True)
class FleetViewState:
    worlds: Tuple[WorldSnapshot, ...] = ()
    # Locally predicted seconds left, only for worlds in COUNTDOWN.
    countdowns: Dict[int, int] = field(default_factory=dict)
    refresh_interval_ms: int = SLOW_INTERVAL_MS
    last_refresh_at: Optional[float] = None
    error: Optional[str] = None

    def world(self, world_id: int) -> Optional[WorldSnapshot]:
        for world in self.worlds:
            if world.id == world_id:
                return world
        return None


def compute_refresh_interval(worlds: Iterable[WorldSnapshot]) -> int:
    if any(world.status == WorldStatus.COUNTDOWN for world in worlds):
        return FAST_INTERVAL_MS
    return SLOW_INTERVAL_MS


def _authoritative_countdowns(worlds: Iterable[WorldSnapshot]) -> Dict[int, int]:
    return {
        world.id: max(int(world.countdown_remaining_sec), 0)
        for world in worlds
        if world.status == WorldStatus.COUNTDOWN and world.countdown_remaining_sec is not None
    }


def on_poll_tick(state: FleetViewState, worlds: Iterable[WorldSnapshot], now: float) -> FleetViewState:
    """Apply a fresh snapshot. Local countdown predictions are replaced, not merged."""
    snapshot = tuple(worlds)
    return replace(
        state,
        worlds=snapshot,
        countdowns=_authoritative_countdowns(snapshot),
        refresh_interval_ms=compute_refresh_interval(snapshot),
        last_refresh_at=now,
        error=None,
    )


def on_poll_failed(state: FleetViewState, message: str) -> FleetViewState:
    return replace(state, error=message or "Failed to load worlds")


def on_countdown_tick(state: FleetViewState) -> FleetViewState:
    if not state.countdowns:
        return state
    return replace(state, countdowns={wid: max(sec - 1, 0) for wid, sec in state.countdowns.items()})


def format_countdown(seconds: Optional[int]) -> str:
    if not seconds or seconds <= 0:
        return "0:00"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def status_pill_text(world: WorldSnapshot, remaining: Optional[int] = None) -> str:
    if world.status == WorldStatus.COUNTDOWN:
        value = remaining if remaining is not None else world.countdown_remaining_sec
        if value is not None:
            return f"COUNTDOWN {format_countdown(value)}"
    return world.status.value


def refresh_label(last_refresh_at: Optional[float], now: float) -> str:
    if last_refresh_at is None:
        return "Not updated yet"
    elapsed = int(now - last_refresh_at)
    if elapsed < JUST_NOW_THRESHOLD_S:
        return "Updated just now"
    return f"Updated {elapsed}s ago"


def format_uptime(ms: Optional[int]) -> str:
    if not ms or ms <= 0:
        return "N/A"
    total = int(ms) // 1000
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")
    return " ".join(parts)


def format_region(region: Optional[str]) -> str:
    if not region:
        return "Unknown"
    return REGION_NAMES.get(region, region)


def format_cpu(load: float) -> str:
    return f"{round(load * 100)}%"
