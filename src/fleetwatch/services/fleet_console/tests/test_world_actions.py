"""
Tests for world-card actions and the update delay picker.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from fleetwatch.services.fleet_console.clients.control_api import ControlApiError
from fleetwatch.services.fleet_console.core.confirmation import ConfirmationKind
from fleetwatch.services.fleet_console.core.world_actions import (
    UPDATE_DELAY_CHOICES,
    WorldActionRunner,
    resolve_update_delay,
    update_args,
    world_actions,
)
from fleetwatch.shared.models.core import CommandArg, CommandResult, FanOutResult


def enabled(actions):
    return {action.command for action in actions if action.enabled}


class TestAvailability:
    def test_offline_world_can_only_start_or_update(self, make_world):
        assert enabled(world_actions(make_world(1, "OFFLINE"))) == {"START", "UPDATE"}

    def test_running_world(self, make_world):
        assert enabled(world_actions(make_world(1, "RUNNING"))) == {"STOP", "RESTART", "UPDATE"}

    def test_updating_world_has_nothing_enabled(self, make_world):
        actions = world_actions(make_world(1, "UPDATING"))
        assert [a.command for a in actions] == ["START", "STOP", "RESTART", "UPDATE"]
        assert enabled(actions) == set()

    def test_countdown_world_only_offers_cancel(self, make_world):
        actions = world_actions(make_world(1, "COUNTDOWN", countdownRemaining=30))
        assert [(a.command, a.label, a.enabled) for a in actions] == [("CANCEL_UPDATE", "Cancel Update", True)]

    def test_busy_disables_everything(self, make_world):
        assert enabled(world_actions(make_world(1, "RUNNING"), busy=True)) == set()
        assert enabled(world_actions(make_world(1, "COUNTDOWN"), busy=True)) == set()

    def test_update_agent_needs_role(self, make_world):
        world = make_world(1, "RUNNING")
        assert "UPDATE_AGENT" not in {a.command for a in world_actions(world)}
        assert "UPDATE_AGENT" in enabled(world_actions(world, can_update_agent=True))


class TestUpdateDelay:
    def test_presets(self):
        assert [seconds for seconds, _, _ in UPDATE_DELAY_CHOICES] == [0, 60, 300, 600, 1800, 3600]
        assert resolve_update_delay(0) == 0
        assert resolve_update_delay("600") == 600

    @pytest.mark.parametrize("minutes, seconds", [(1, 60), ("15", 900), (60, 3600)])
    def test_custom_minutes(self, minutes, seconds):
        assert resolve_update_delay("custom", minutes) == seconds

    @pytest.mark.parametrize("minutes", [0, 61, "", None, "abc", -5])
    def test_custom_out_of_range(self, minutes):
        with pytest.raises(ValueError, match="between 1 and 60 minutes"):
            resolve_update_delay("custom", minutes)

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            resolve_update_delay(120)
        with pytest.raises(ValueError):
            resolve_update_delay("soon")

    def test_update_args(self):
        assert update_args(300) == [CommandArg(type="INT", value=300)]


@pytest.fixture
def busy():
    return MagicMock()


@pytest.fixture
def reload():
    return AsyncMock()


@pytest.fixture
def make_runner(api, notifier, busy, reload):
    def _make(confirmer, **kwargs):
        kwargs.setdefault("reload_delay_s", 0)
        return WorldActionRunner(api, notifier=notifier, confirmer=confirmer, mark_busy=busy, reload=reload, **kwargs)

    return _make


class TestRunner:
    @pytest.mark.asyncio
    async def test_confirmed_action_dispatches_to_agent(self, make_runner, approve_all, api, notifier, busy):
        api.execute_command.return_value = CommandResult(ok=True, message="restarting")
        runner = make_runner(approve_all)

        result = await runner.run(4, "RESTART")

        assert result.ok
        api.execute_command.assert_awaited_once_with(4, "agent", "RESTART", ())
        busy.assert_called_once_with(4)
        assert approve_all.prompts[0].prompt == "Execute Restart on World 4?"
        assert notifier.messages == [("success", "RESTART on World 4: restarting")]
        runner.cancel()

    @pytest.mark.asyncio
    async def test_declined_action_is_not_sent(self, make_runner, decline_all, api, busy, notifier):
        runner = make_runner(decline_all)

        assert await runner.run(4, "STOP") is None

        api.execute_command.assert_not_awaited()
        busy.assert_not_called()
        assert notifier.messages == []
        assert runner.pending_reloads == 0

    @pytest.mark.asyncio
    async def test_cancel_update_skips_confirmation(self, make_runner, decline_all, api, notifier):
        api.execute_command.return_value = CommandResult(ok=True)
        runner = make_runner(decline_all)

        await runner.run(2, "CANCEL_UPDATE")

        assert decline_all.prompts == []
        assert notifier.messages == [("success", "Update cancelled for World 2")]
        runner.cancel()

    @pytest.mark.asyncio
    async def test_schedule_update_sends_delay_arg(self, make_runner, decline_all, api, notifier):
        api.execute_command.return_value = CommandResult(ok=True)
        runner = make_runner(decline_all)

        await runner.schedule_update(3, 300)
        await runner.schedule_update(3, 0)

        first = api.execute_command.await_args_list[0]
        assert first.args == (3, "agent", "UPDATE", [CommandArg(type="INT", value=300)])
        assert decline_all.prompts == []
        assert notifier.messages == [
            ("success", "Update countdown started for World 3: 5 minutes"),
            ("success", "Instant update started for World 3"),
        ]
        runner.cancel()

    @pytest.mark.asyncio
    async def test_rejected_and_failed(self, make_runner, approve_all, api, notifier):
        runner = make_runner(approve_all)

        api.execute_command.return_value = CommandResult(ok=False, message="agent busy")
        await runner.run(1, "START")
        api.execute_command.side_effect = ControlApiError("Request timeout", 408)
        await runner.run(1, "START")

        assert notifier.messages == [
            ("error", "START on World 1: agent busy"),
            ("error", "START failed: Request timeout"),
        ]
        runner.cancel()

    @pytest.mark.asyncio
    async def test_fan_out_shape_is_reduced_to_one_result(self, make_runner, approve_all, api):
        api.execute_command.return_value = FanOutResult.model_validate(
            {"results": [{"worldId": 5, "ok": True, "message": "ok"}]}
        )
        runner = make_runner(approve_all)

        result = await runner.run(5, "RESTART")

        assert result == CommandResult(ok=True, message="ok")
        runner.cancel()

    @pytest.mark.asyncio
    async def test_dangerous_name_uses_typed_policy(self, make_runner, approve_all, api):
        api.execute_command.return_value = CommandResult(ok=True)
        runner = make_runner(approve_all)

        await runner.run(1, "GRACEFUL_SHUTDOWN")

        assert approve_all.prompts[0].kind == ConfirmationKind.TYPED
        runner.cancel()


class TestDelayedReload:
    @pytest.mark.asyncio
    async def test_reload_runs_after_action(self, make_runner, approve_all, api, reload):
        api.execute_command.return_value = CommandResult(ok=True)
        runner = make_runner(approve_all)

        await runner.run(1, "STOP")
        assert runner.pending_reloads == 1
        await asyncio.sleep(0.01)

        reload.assert_awaited_once()
        assert runner.pending_reloads == 0

    @pytest.mark.asyncio
    async def test_reload_runs_even_after_failure(self, make_runner, approve_all, api, reload):
        api.execute_command.side_effect = ControlApiError("boom")
        runner = make_runner(approve_all)

        await runner.run(1, "STOP")
        await asyncio.sleep(0.01)

        reload.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_drops_pending_reload(self, make_runner, approve_all, api, reload):
        api.execute_command.return_value = CommandResult(ok=True)
        runner = make_runner(approve_all, reload_delay_s=10)

        await runner.run(1, "STOP")
        runner.cancel()
        await asyncio.sleep(0)

        assert runner.pending_reloads == 0
        reload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reload_failure_is_logged(self, make_runner, approve_all, api, reload):
        api.execute_command.return_value = CommandResult(ok=True)
        reload.side_effect = ControlApiError("down")
        runner = make_runner(approve_all)

        await runner.run(1, "STOP")
        await asyncio.sleep(0.01)

        reload.assert_awaited_once()
        assert runner.pending_reloads == 0
