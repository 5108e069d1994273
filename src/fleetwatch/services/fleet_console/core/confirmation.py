"""
Confirmation policy for operator commands.

Every dispatch (console commands and world-card actions alike) asks
``confirmation_policy`` what the operator has to do before it goes out:
nothing, a yes/no answer, or typing the exact command name.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from fleetwatch.shared.models.core import format_command_name


DANGEROUS_COMMANDS = frozenset({"DISCONNECT_ALL", "KILL_ALL", "GRACEFUL_SHUTDOWN"})

NO_CONFIRM_COMMANDS = frozenset({"CANCEL_UPDATE"})


class ConfirmationKind(str, Enum):
    NONE = "none"
    SIMPLE = "simple"
    TYPED = "typed"


@dataclass(frozen=True)
class ConfirmationResponse:
    accepted: bool
    typed_text: Optional[str] = None


@dataclass(frozen=True)
class ConfirmationPolicy:
    kind: ConfirmationKind
    prompt: str = ""
    expected_text: Optional[str] = None

    @classmethod
    def none(cls) -> "ConfirmationPolicy":
        return cls(ConfirmationKind.NONE)

    @classmethod
    def simple(cls, prompt: str) -> "ConfirmationPolicy":
        return cls(ConfirmationKind.SIMPLE, prompt=prompt)

    @classmethod
    def typed(cls, expected_text: str, prompt: str = "") -> "ConfirmationPolicy":
        return cls(ConfirmationKind.TYPED, prompt=prompt, expected_text=expected_text)

    @property
    def requires_prompt(self) -> bool:
        return self.kind != ConfirmationKind.NONE

    def permits(self, response: Optional[ConfirmationResponse]) -> bool:
        if self.kind == ConfirmationKind.NONE:
            return True
        if response is None or not response.accepted:
            return False
        if self.kind == ConfirmationKind.TYPED:
            return response.typed_text == self.expected_text
        return True


Confirmer = Callable[[ConfirmationPolicy], Awaitable[ConfirmationResponse]]


def confirmation_policy(
    command: str,
    target_label: str,
    *,
    dangerous: bool = False,
    allow_unconfirmed: bool = False,
) -> ConfirmationPolicy:
    """Decide how ``command`` against ``target_label`` must be confirmed.

    Only world-card actions pass ``allow_unconfirmed``; from the command
    console every command gets at least a yes/no prompt.
    """
    if dangerous or command in DANGEROUS_COMMANDS:
        return ConfirmationPolicy.typed(
            command,
            prompt=f"You are about to execute {command} on {target_label.upper()}. Type the command name to confirm:",
        )
    if allow_unconfirmed and command in NO_CONFIRM_COMMANDS:
        return ConfirmationPolicy.none()
    return ConfirmationPolicy.simple(f"Execute {format_command_name(command)} on {target_label}?")


class TypedConfirmationGate:
    """Holds the operator's typed text for a TYPED policy."""

    def __init__(self, policy: ConfirmationPolicy):
        if policy.kind != ConfirmationKind.TYPED:
            raise ValueError(f"typed gate needs a TYPED policy, got {policy.kind.value}")
        self.policy = policy
        self.typed_text = ""

    def update(self, text: str) -> bool:
        self.typed_text = text
        return self.execute_enabled

    @property
    def execute_enabled(self) -> bool:
        # Exact, case-sensitive, no trimming.
        return self.typed_text == self.policy.expected_text

    def response(self) -> ConfirmationResponse:
        return ConfirmationResponse(accepted=self.execute_enabled, typed_text=self.typed_text)
