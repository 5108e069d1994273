"""
Pydantic models for the fleet Control API.
Describe world snapshots, telemetry samples, the command catalog and
command execution results exactly as the control plane returns them.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


ALL_WORLDS = "all"

Target = Union[int, Literal["all"]]


# =============================================================================
#  Base model configuration
# =============================================================================
class ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )


# =============================================================================
#  Enums
# =============================================================================
class WorldStatus(str, Enum):
    OFFLINE = "OFFLINE"
    RUNNING = "RUNNING"
    UPDATING = "UPDATING"
    COUNTDOWN = "COUNTDOWN"
    UNREACHABLE = "UNREACHABLE"


class ParamType(str, Enum):
    STRING = "STRING"
    INT = "INT"
    LONG = "LONG"
    BOOLEAN = "BOOLEAN"


# =============================================================================
#  Fleet status
# =============================================================================
class WorldSnapshot(ConfigModel):
    model_config = ConfigDict(frozen=True)

    id: int
    status: WorldStatus = WorldStatus.UNREACHABLE
    type: str = "ECO"
    region: str = ""
    players: int = 0
    tick_ms: float = 0.0
    memory_pct: int = 0
    cpu_load: float = 0.0
    uptime_ms: int = Field(default=0, validation_alias=AliasChoices("uptimeMs", "uptime", "uptime_ms"))
    countdown_remaining_sec: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("countdownRemainingSec", "countdownRemaining", "countdown_remaining_sec"),
    )

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> WorldStatus:
        if isinstance(value, WorldStatus):
            return value
        token = str(value or "").strip().upper()
        if token in WorldStatus.__members__:
            return WorldStatus(token)
        return WorldStatus.UNREACHABLE

    @field_validator("type", "region", mode="before")
    @classmethod
    def _empty_string_if_missing(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("players", "memory_pct", "uptime_ms", mode="before")
    @classmethod
    def _round_counters(cls, value: Any) -> Any:
        if value is None:
            return 0
        if isinstance(value, float):
            return int(round(value))
        return value

    @field_validator("tick_ms", "cpu_load", mode="before")
    @classmethod
    def _zero_if_missing(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_validator("cpu_load")
    @classmethod
    def _clamp_load(cls, value: float) -> float:
        return min(max(value, 0.0), 1.0)

    @property
    def label(self) -> str:
        return f"World {self.id}"


class FleetSnapshot(ConfigModel):
    worlds: List[WorldSnapshot] = Field(default_factory=list)

    @field_validator("worlds", mode="before")
    @classmethod
    def _empty_if_missing(cls, value: Any) -> Any:
        return [] if value is None else value

    def has_status(self, status: WorldStatus) -> bool:
        return any(world.status == status for world in self.worlds)


# =============================================================================
#  Telemetry history
# =============================================================================
class TelemetrySample(ConfigModel):
    model_config = ConfigDict(frozen=True)

    t: datetime
    cpu: float = 0.0
    mem_mb: float = 0.0
    avg_cycle_ms: float = 0.0
    players: float = 0.0

    @field_validator("cpu", "mem_mb", "avg_cycle_ms", "players", mode="before")
    @classmethod
    def _zero_if_missing(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    def value(self, field: str) -> float:
        return float(getattr(self, field) or 0.0)


class TelemetryHistory(ConfigModel):
    data: List[TelemetrySample] = Field(default_factory=list)

    @field_validator("data", mode="before")
    @classmethod
    def _empty_if_missing(cls, value: Any) -> Any:
        return [] if value is None else value


# =============================================================================
#  Command catalog
# =============================================================================
class ParamSpec(ConfigModel):
    name: str
    type: ParamType = ParamType.STRING
    required: bool = False
    default: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> ParamType:
        if isinstance(value, ParamType):
            return value
        token = str(value or "").strip().upper()
        if token in ParamType.__members__:
            return ParamType(token)
        return ParamType.STRING

    @field_validator("default", mode="before")
    @classmethod
    def _stringify_default(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)


class CommandDescriptor(ConfigModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: Literal["agent", "game"] = "game"
    category: str = "Other"
    description: str = ""
    icon: str = ""
    params: List[ParamSpec] = Field(default_factory=list)
    dangerous: bool = False
    ipc_id: Optional[int] = None

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value: Any) -> str:
        return str(value) if value else "Other"

    @field_validator("description", "icon", mode="before")
    @classmethod
    def _empty_string_if_missing(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("params", mode="before")
    @classmethod
    def _empty_if_missing(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def key(self) -> str:
        return f"{self.type}:{self.name}"

    @property
    def has_params(self) -> bool:
        return bool(self.params)


class CommandCatalog(ConfigModel):
    agent_commands: List[str] = Field(default_factory=list)
    game_commands: List[CommandDescriptor] = Field(default_factory=list)

    @field_validator("agent_commands", "game_commands", mode="before")
    @classmethod
    def _empty_if_missing(cls, value: Any) -> Any:
        return [] if value is None else value

    def find(self, command_type: str, name: str) -> Optional[CommandDescriptor]:
        if command_type == "agent":
            if name in self.agent_commands:
                return CommandDescriptor(name=name, type="agent", category="Agent Commands")
            return None
        for descriptor in self.game_commands:
            if descriptor.name == name:
                return descriptor
        return None


class RecentCommand(ConfigModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: Literal["agent", "game"]


# =============================================================================
#  Command execution
# =============================================================================
class CommandArg(ConfigModel):
    type: str
    value: Any = None


class CommandResult(ConfigModel):
    ok: bool = False
    message: str = ""

    @field_validator("message", mode="before")
    @classmethod
    def _empty_string_if_missing(cls, value: Any) -> Any:
        return "" if value is None else str(value)


class WorldCommandResult(ConfigModel):
    world_id: int
    ok: bool = False
    message: str = ""

    @field_validator("message", mode="before")
    @classmethod
    def _empty_string_if_missing(cls, value: Any) -> Any:
        return "" if value is None else str(value)


class FanOutResult(ConfigModel):
    results: List[WorldCommandResult] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def total(self) -> int:
        return len(self.results)


ExecuteResponse = Union[CommandResult, FanOutResult]


def parse_execute_response(payload: Any) -> ExecuteResponse:
    """Pick the fan-out shape when the payload carries a ``results`` list."""
    if isinstance(payload, dict) and isinstance(payload.get("results"), list):
        return FanOutResult.model_validate(payload)
    return CommandResult.model_validate(payload if isinstance(payload, dict) else {})


def target_label(target: Target) -> str:
    if target == ALL_WORLDS:
        return "All Worlds"
    return f"World {target}"


def format_command_name(name: str) -> str:
    """``KILL_ALL`` -> ``Kill All``."""
    if not name:
        return ""
    return " ".join(word.capitalize() for word in name.split("_") if word)
