"""
Per-world lifecycle actions shown on the world cards.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Set, Tuple, Union

from fleetwatch.services.fleet_console.clients.control_api import ControlApiClient, ControlApiError
from fleetwatch.services.fleet_console.core.confirmation import (
    ConfirmationPolicy,
    Confirmer,
    confirmation_policy,
)
from fleetwatch.services.fleet_console.core.notifications import Notifier
from fleetwatch.shared.models.core import CommandArg, CommandResult, FanOutResult, WorldSnapshot, WorldStatus


logger = logging.getLogger(__name__)

RELOAD_DELAY_S = 1.5

CUSTOM_DELAY_MIN_MINUTES = 1
CUSTOM_DELAY_MAX_MINUTES = 60

# (seconds, label, description)
UPDATE_DELAY_CHOICES: Tuple[Tuple[int, str, str], ...] = (
    (0, "Instant", "Force-stop and update immediately"),
    (60, "1 minute", "Quick test countdown"),
    (300, "5 minutes", "Short warning for active players"),
    (600, "10 minutes", "Standard update window"),
    (1800, "30 minutes", "Extended warning for busy servers"),
    (3600, "60 minutes", "Maximum warning time"),
)


@dataclass(frozen=True)
class WorldAction:
    command: str
    label: str
    enabled: bool = True


def world_actions(world: WorldSnapshot, *, busy: bool = False, can_update_agent: bool = False) -> List[WorldAction]:
    """Buttons for one world card, in display order."""
    if world.status == WorldStatus.COUNTDOWN:
        return [WorldAction("CANCEL_UPDATE", "Cancel Update", not busy)]

    actions = [
        WorldAction("START", "Start", not busy and world.status == WorldStatus.OFFLINE),
        WorldAction("STOP", "Stop", not busy and world.status == WorldStatus.RUNNING),
        WorldAction("RESTART", "Restart", not busy and world.status == WorldStatus.RUNNING),
        WorldAction("UPDATE", "Update", not busy and world.status != WorldStatus.UPDATING),
    ]
    if can_update_agent:
        actions.append(WorldAction("UPDATE_AGENT", "Update Agent", not busy))
    return actions


def resolve_update_delay(choice: Union[int, str], custom_minutes: Union[int, str, None] = None) -> int:
    """
    Turn a delay picker selection into seconds.

    Args:
        choice: One of the preset second values, or ``"custom"``
        custom_minutes: Minutes for a custom delay (1-60)

    Raises:
        ValueError: Unknown preset or custom minutes out of range
    """
    if isinstance(choice, str) and choice.strip().lower() == "custom":
        try:
            minutes = int(str(custom_minutes).strip())
        except (TypeError, ValueError):
            minutes = 0
        if not CUSTOM_DELAY_MIN_MINUTES <= minutes <= CUSTOM_DELAY_MAX_MINUTES:
            raise ValueError("Custom delay must be between 1 and 60 minutes")
        return minutes * 60

    try:
        seconds = int(choice)
    except (TypeError, ValueError):
        raise ValueError(f"Unknown update delay: {choice!r}") from None
    if seconds not in {value for value, _, _ in UPDATE_DELAY_CHOICES}:
        raise ValueError(f"Unknown update delay: {choice!r}")
    return seconds


def update_args(delay_sec: int) -> List[CommandArg]:
    return [CommandArg(type="INT", value=int(delay_sec))]


class WorldActionRunner:
    """Confirm, dispatch and report a world-card action, then schedule a fleet reload."""

    def __init__(
        self,
        api: ControlApiClient,
        *,
        notifier: Notifier,
        confirmer: Confirmer,
        mark_busy: Callable[[int], None],
        reload: Callable[[], Awaitable[object]],
        reload_delay_s: float = RELOAD_DELAY_S,
    ):
        self._api = api
        self._notifier = notifier
        self._confirmer = confirmer
        self._mark_busy = mark_busy
        self._reload = reload
        self._reload_delay_s = reload_delay_s
        self._reload_tasks: Set[asyncio.Task] = set()

    @property
    def pending_reloads(self) -> int:
        return len(self._reload_tasks)

    async def run(self, world_id: int, command: str, args: Sequence[CommandArg] = ()) -> Optional[CommandResult]:
        label = f"World {world_id}"
        policy = confirmation_policy(command, label, allow_unconfirmed=True)
        if policy.requires_prompt:
            response = await self._confirmer(policy)
            if not policy.permits(response):
                logger.info("%s on %s not confirmed", command, label)
                return None
        return await self._dispatch(world_id, command, args, policy)

    async def schedule_update(self, world_id: int, delay_sec: int) -> Optional[CommandResult]:
        """UPDATE with a countdown. The delay picker is the confirmation step."""
        return await self._dispatch(world_id, "UPDATE", update_args(delay_sec), ConfirmationPolicy.none())

    async def _dispatch(
        self,
        world_id: int,
        command: str,
        args: Sequence[CommandArg],
        policy: ConfirmationPolicy,
    ) -> Optional[CommandResult]:
        label = f"World {world_id}"
        self._mark_busy(world_id)
        logger.info("%s on %s (confirmation: %s)", command, label, policy.kind.value)
        result: Optional[CommandResult] = None
        try:
            response = await self._api.execute_command(world_id, "agent", command, args)
        except ControlApiError as exc:
            logger.warning("%s on %s failed: %s", command, label, exc)
            self._notifier.error(_failure_prefix(command) + exc.message)
        else:
            result = _single_result(response)
            if result.ok:
                self._notifier.success(_success_message(command, label, args, result.message))
            else:
                self._notifier.error(_rejected_message(command, label, result.message))
        self._reload_later()
        return result

    def _reload_later(self) -> None:
        task = asyncio.get_running_loop().create_task(self._delayed_reload())
        self._reload_tasks.add(task)
        task.add_done_callback(self._reload_tasks.discard)

    async def _delayed_reload(self) -> None:
        await asyncio.sleep(self._reload_delay_s)
        try:
            await self._reload()
        except ControlApiError as exc:
            logger.warning("Reload after action failed: %s", exc)

    def cancel(self) -> None:
        for task in list(self._reload_tasks):
            task.cancel()
        self._reload_tasks.clear()


def _single_result(response) -> CommandResult:
    if isinstance(response, FanOutResult):
        row = response.results[0] if response.results else None
        return CommandResult(ok=bool(row and row.ok), message=row.message if row else "")
    return response


def _failure_prefix(command: str) -> str:
    if command == "CANCEL_UPDATE":
        return "Cancel failed: "
    if command == "UPDATE":
        return "Update failed: "
    return f"{command} failed: "


def _success_message(command: str, label: str, args: Sequence[CommandArg], message: str) -> str:
    if command == "CANCEL_UPDATE":
        return f"Update cancelled for {label}"
    if command == "UPDATE" and args:
        delay_sec = int(args[0].value or 0)
        if delay_sec > 0:
            minutes = delay_sec // 60
            return f"Update countdown started for {label}: {minutes} minute{'s' if minutes != 1 else ''}"
        return f"Instant update started for {label}"
    return f"{command} on {label}: {message or 'Success'}"


def _rejected_message(command: str, label: str, message: str) -> str:
    if command == "CANCEL_UPDATE":
        return f"Cancel failed for {label}: {message or 'Failed'}"
    if command == "UPDATE":
        return f"Update failed for {label}: {message or 'Failed'}"
    return f"{command} on {label}: {message or 'Failed'}"
