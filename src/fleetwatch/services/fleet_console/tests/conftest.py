"""
Shared pytest fixtures for Fleet Console tests.
"""

import inspect
from unittest.mock import AsyncMock, MagicMock

import pytest

from fleetwatch.services.fleet_console.core.confirmation import ConfirmationResponse
from fleetwatch.shared.models.core import CommandCatalog, FleetSnapshot, WorldSnapshot


class FakeTimer:
    """Timer that only fires when a test says so."""

    def __init__(self, interval_s, callback):
        self.interval_s = interval_s
        self.callback = callback
        self.running = False
        self.cancelled = False

    def start(self):
        self.running = True

    def cancel(self):
        self.running = False
        self.cancelled = True

    async def fire(self):
        result = self.callback()
        if inspect.isawaitable(result):
            await result


class FakeTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval_s, callback):
        timer = FakeTimer(interval_s, callback)
        self.timers.append(timer)
        return timer

    def active(self):
        return [timer for timer in self.timers if timer.running]

    def active_with(self, interval_s):
        return [timer for timer in self.active() if timer.interval_s == interval_s]


class RecordingNotifier:
    def __init__(self):
        self.messages = []

    def success(self, message):
        self.messages.append(("success", message))

    def warning(self, message):
        self.messages.append(("warning", message))

    def error(self, message):
        self.messages.append(("error", message))


@pytest.fixture
def timers():
    """Injectable timer factory recording every timer it builds."""
    return FakeTimerFactory()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_world():
    """Build a WorldSnapshot from wire-style keyword arguments."""

    def _make(world_id=1, status="RUNNING", **fields):
        return WorldSnapshot.model_validate({"id": world_id, "status": status, **fields})

    return _make


@pytest.fixture
def api():
    """Control API double with async endpoints."""
    client = MagicMock()
    client.get_fleet = AsyncMock(return_value=FleetSnapshot(worlds=[]))
    client.get_commands = AsyncMock(return_value=CommandCatalog())
    client.execute_command = AsyncMock()
    client.get_telemetry = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def approve_all():
    """Confirmer that accepts every prompt, typing the expected text when asked."""
    prompts = []

    async def _confirm(policy):
        prompts.append(policy)
        return ConfirmationResponse(accepted=True, typed_text=policy.expected_text)

    _confirm.prompts = prompts
    return _confirm


@pytest.fixture
def decline_all():
    prompts = []

    async def _confirm(policy):
        prompts.append(policy)
        return ConfirmationResponse(accepted=False)

    _confirm.prompts = prompts
    return _confirm
