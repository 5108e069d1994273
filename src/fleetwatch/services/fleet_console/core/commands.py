"""
Command console: catalog browsing, parameter forms, recent commands and
dispatch against one world or the whole fleet.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from fleetwatch.services.fleet_console.clients.control_api import (
    ControlApiClient,
    ControlApiError,
    describe_args,
)
from fleetwatch.services.fleet_console.core.command_log import CommandLog, EntryStatus
from fleetwatch.services.fleet_console.core.confirmation import Confirmer, confirmation_policy
from fleetwatch.services.fleet_console.core.notifications import Notifier
from fleetwatch.shared.models.core import (
    ALL_WORLDS,
    CommandArg,
    CommandCatalog,
    CommandDescriptor,
    ExecuteResponse,
    FanOutResult,
    ParamSpec,
    ParamType,
    RecentCommand,
    Target,
    target_label,
)


logger = logging.getLogger(__name__)

RECENT_COMMANDS_KEY = "fleetwatch_recent_commands"
RECENT_COMMANDS_LIMIT = 5

AGENT_CATEGORY = "Agent Commands"

QUICK_ACTIONS: Tuple[RecentCommand, ...] = (
    RecentCommand(name="PING", type="game"),
    RecentCommand(name="BROADCAST", type="game"),
    RecentCommand(name="GET_STATUS", type="game"),
    RecentCommand(name="RESTART", type="agent"),
    RecentCommand(name="UPDATE", type="agent"),
)

AGENT_DESCRIPTIONS = {
    "START": "Start the game server process",
    "STOP": "Stop the game server process",
    "RESTART": "Restart the game server process",
    "UPDATE": "Download latest artifacts and update",
}

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_TRUE_TOKENS = frozenset({"true", "1", "yes", "on", "y"})


def parse_target(raw: Union[str, int]) -> Target:
    """``"all"`` or a positive world id."""
    if isinstance(raw, int):
        world_id = raw
    else:
        token = str(raw).strip().lower()
        if token == ALL_WORLDS:
            return ALL_WORLDS
        try:
            world_id = int(token)
        except ValueError:
            raise ValueError(f"Invalid target: {raw!r} (expected a world id or 'all')") from None
    if world_id <= 0:
        raise ValueError(f"Invalid world id: {world_id}")
    return world_id


# =============================================================================
#  Session persistence
# =============================================================================
class SessionStore:
    """JSON key/value file scoped to one console session directory."""

    FILENAME = "session.json"

    def __init__(self, session_dir: Union[str, Path]):
        self.path = Path(session_dir) / self.FILENAME

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Unreadable session store %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        try:
            os.makedirs(self.path.parent, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except OSError as e:
            logger.warning("Failed to persist session key %s: %s", key, e)


class RecentCommands:
    """Most-recent-first list of executed commands, deduplicated by (name, type)."""

    def __init__(self, store: SessionStore, *, key: str = RECENT_COMMANDS_KEY, limit: int = RECENT_COMMANDS_LIMIT):
        self._store = store
        self._key = key
        self._limit = limit
        self._items: List[RecentCommand] = self._load()

    def _load(self) -> List[RecentCommand]:
        raw = self._store.get(self._key, [])
        if not isinstance(raw, list):
            return []
        items: List[RecentCommand] = []
        for item in raw:
            try:
                items.append(RecentCommand.model_validate(item))
            except ValidationError:
                logger.debug("Dropping malformed recent command %r", item)
        return items[: self._limit]

    @property
    def items(self) -> List[RecentCommand]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def push(self, name: str, command_type: str) -> None:
        entry = RecentCommand(name=name, type=command_type)
        self._items = [entry] + [item for item in self._items if item != entry]
        del self._items[self._limit :]
        self._store.set(self._key, [item.model_dump() for item in self._items])


# =============================================================================
#  Parameter forms
# =============================================================================
def coerce_param(param_type: ParamType, raw: Any) -> Any:
    """Best-effort coercion; never rejects a value."""
    if param_type == ParamType.BOOLEAN:
        if isinstance(raw, bool):
            return raw
        return str(raw or "").strip().lower() in _TRUE_TOKENS
    if param_type in (ParamType.INT, ParamType.LONG):
        if isinstance(raw, bool):
            return int(raw)
        if isinstance(raw, int):
            return raw
        match = _LEADING_INT.match(str(raw or ""))
        return int(match.group(1)) if match else 0
    return "" if raw is None else str(raw)


def build_args(params: Sequence[ParamSpec], values: Dict[str, Any]) -> List[CommandArg]:
    return [
        CommandArg(type=param.type.value, value=coerce_param(param.type, values.get(param.name, param.default)))
        for param in params
    ]


class ParamForm:
    """Inline form values for one parameterized command."""

    def __init__(self, descriptor: CommandDescriptor):
        self.descriptor = descriptor
        self.values: Dict[str, Any] = {param.name: param.default or "" for param in descriptor.params}

    @property
    def key(self) -> str:
        return self.descriptor.key

    def set(self, field: Union[int, str], value: Any) -> None:
        if isinstance(field, int) or (isinstance(field, str) and field.isdigit()):
            index = int(field)
            if not 0 <= index < len(self.descriptor.params):
                raise ValueError(f"{self.descriptor.name} has no parameter #{index}")
            name = self.descriptor.params[index].name
        else:
            name = field
            if name not in self.values:
                raise ValueError(f"{self.descriptor.name} has no parameter {name!r}")
        self.values[name] = value

    def args(self) -> List[CommandArg]:
        return build_args(self.descriptor.params, self.values)


# =============================================================================
#  Browsing
# =============================================================================
@dataclass(frozen=True)
class CommandGroup:
    category: str
    commands: Tuple[CommandDescriptor, ...]


def agent_descriptor(name: str) -> CommandDescriptor:
    return CommandDescriptor(
        name=name,
        type="agent",
        category=AGENT_CATEGORY,
        description=AGENT_DESCRIPTIONS.get(name, ""),
    )


def browse(catalog: Optional[CommandCatalog], search: str = "") -> List[CommandGroup]:
    """Agent commands first, then game commands grouped by category in catalog order."""
    if catalog is None:
        return []
    needle = search.strip().lower()

    def matches(descriptor: CommandDescriptor) -> bool:
        if not needle:
            return True
        return needle in descriptor.name.lower() or needle in descriptor.description.lower()

    groups: List[CommandGroup] = []
    agents = tuple(d for d in (agent_descriptor(name) for name in catalog.agent_commands) if matches(d))
    if agents:
        groups.append(CommandGroup(AGENT_CATEGORY, agents))

    by_category: Dict[str, List[CommandDescriptor]] = {}
    for descriptor in catalog.game_commands:
        bucket = by_category.setdefault(descriptor.category or "Other", [])
        if matches(descriptor):
            bucket.append(descriptor)
    for category, commands in by_category.items():
        if commands:
            groups.append(CommandGroup(category, tuple(commands)))
    return groups


# =============================================================================
#  Console
# =============================================================================
class CommandConsole:
    """Catalog, forms, confirmation and dispatch for the Commands view."""

    def __init__(
        self,
        api: ControlApiClient,
        *,
        log: CommandLog,
        recent: RecentCommands,
        notifier: Notifier,
        confirmer: Confirmer,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self._api = api
        self.log = log
        self.recent = recent
        self._notifier = notifier
        self._confirmer = confirmer
        self._on_change = on_change

        self.catalog: Optional[CommandCatalog] = None
        self.error: Optional[str] = None
        self.target: Target = ALL_WORLDS
        self.search = ""
        self.form: Optional[ParamForm] = None

    async def load(self) -> bool:
        try:
            self.catalog = await self._api.get_commands()
        except ControlApiError as exc:
            logger.warning("Failed to load commands: %s", exc)
            self.error = f"Failed to load commands: {exc.message}"
            self._changed()
            return False
        self.error = None
        logger.info(
            "Loaded %d agent and %d game commands",
            len(self.catalog.agent_commands),
            len(self.catalog.game_commands),
        )
        self._changed()
        return True

    def set_target(self, raw: Union[str, int]) -> Target:
        self.target = parse_target(raw)
        self._changed()
        return self.target

    def set_search(self, text: str) -> None:
        self.search = text
        self._changed()

    def groups(self) -> List[CommandGroup]:
        return browse(self.catalog, self.search)

    def descriptor(self, command_type: str, name: str) -> CommandDescriptor:
        if command_type == "agent":
            return agent_descriptor(name)
        found = self.catalog.find(command_type, name) if self.catalog is not None else None
        return found or CommandDescriptor(name=name, type="game")

    def toggle_form(self, command_type: str, name: str) -> Optional[ParamForm]:
        """Open the form for a command; a second toggle (or another command) closes the current one."""
        descriptor = self.descriptor(command_type, name)
        if self.form is not None and self.form.key == descriptor.key:
            self.form = None
        else:
            self.form = ParamForm(descriptor)
        self._changed()
        return self.form

    async def execute_form(self) -> bool:
        if self.form is None:
            raise ValueError("No parameter form is open")
        descriptor = self.form.descriptor
        return await self.execute(descriptor.type, descriptor.name, self.form.args())

    async def execute(self, command_type: str, name: str, args: Optional[Sequence[CommandArg]] = None) -> bool:
        """Confirm per policy, then dispatch. Returns False when the operator declined."""
        target = self.target
        descriptor = self.descriptor(command_type, name)
        policy = confirmation_policy(name, target_label(target), dangerous=descriptor.dangerous)
        if policy.requires_prompt:
            response = await self._confirmer(policy)
            if not policy.permits(response):
                logger.info("Command %s on %s not confirmed", name, target_label(target))
                return False
        await self.dispatch(target, command_type, name, args or [])
        return True

    async def dispatch(
        self,
        target: Target,
        command_type: str,
        name: str,
        args: Sequence[CommandArg] = (),
    ) -> Optional[ExecuteResponse]:
        pending = self.log.append(name, target, EntryStatus.PENDING, "Executing...")
        self.recent.push(name, command_type)
        self._changed()
        logger.info(
            "[%s] %s %s -> %s args=%s",
            pending.correlation_id,
            command_type,
            name,
            target_label(target),
            describe_args(args),
        )

        try:
            result = await self._api.execute_command(target, command_type, name, args)
        except ControlApiError as exc:
            logger.warning("[%s] %s failed: %s", pending.correlation_id, name, exc)
            self.log.resolve(pending.correlation_id, False, exc.message)
            self._notifier.error(f"{name} failed: {exc.message}")
            self._changed()
            return None

        if target == ALL_WORLDS and isinstance(result, FanOutResult):
            for world_result in result.results:
                self.log.append(
                    name,
                    world_result.world_id,
                    EntryStatus.SUCCESS if world_result.ok else EntryStatus.FAILED,
                    world_result.message,
                )
            self.log.remove(pending.correlation_id)
            summary = f"{name}: {result.success_count}/{result.total} worlds succeeded"
            logger.info("[%s] %s", pending.correlation_id, summary)
            if result.success_count == result.total:
                self._notifier.success(summary)
            else:
                self._notifier.warning(summary)
        elif isinstance(result, FanOutResult):
            # A per-world target answered in fan-out shape; use its only row.
            row = result.results[0] if result.results else None
            ok = bool(row and row.ok)
            message = row.message if row else ""
            self.log.resolve(pending.correlation_id, ok, message)
            self._toast_single(name, ok, message)
        else:
            self.log.resolve(pending.correlation_id, result.ok, result.message)
            self._toast_single(name, result.ok, result.message)

        self._changed()
        return result

    def _toast_single(self, name: str, ok: bool, message: str) -> None:
        if ok:
            self._notifier.success(f"{name}: {message or 'Success'}")
        else:
            self._notifier.error(f"{name}: {message or 'Failed'}")

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
