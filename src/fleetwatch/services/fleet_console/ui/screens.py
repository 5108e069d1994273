"""
Modal dialogs: yes/no confirmation, typed confirmation for destructive
commands, and the update delay picker.
"""

from typing import Optional

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, RadioButton, RadioSet

from fleetwatch.services.fleet_console.core.confirmation import (
    ConfirmationPolicy,
    ConfirmationResponse,
    TypedConfirmationGate,
)
from fleetwatch.services.fleet_console.core.world_actions import UPDATE_DELAY_CHOICES, resolve_update_delay


MODAL_CSS = """
ModalScreen { align: center middle; }
.modal-box { width: 64; height: auto; border: round $primary; padding: 1 2; background: $surface; }
.modal-box.danger { border: round $error; }
.modal-title { text-style: bold; margin-bottom: 1; }
.modal-buttons { height: auto; margin-top: 1; }
.modal-buttons Button { margin-right: 2; }
#delay-error { color: $error; height: auto; }
"""


class ConfirmScreen(ModalScreen[ConfirmationResponse]):
    """Yes/no confirmation."""

    DEFAULT_CSS = MODAL_CSS
    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, policy: ConfirmationPolicy):
        super().__init__()
        self.policy = policy

    def compose(self) -> ComposeResult:
        with Vertical(classes="modal-box"):
            yield Label("Confirm Command", classes="modal-title")
            yield Label(self.policy.prompt, id="confirm-prompt")
            with Horizontal(classes="modal-buttons"):
                yield Button("Execute", variant="primary", id="confirm-yes")
                yield Button("Cancel", id="confirm-no")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(ConfirmationResponse(accepted=event.button.id == "confirm-yes"))

    def action_cancel(self) -> None:
        self.dismiss(ConfirmationResponse(accepted=False))


class TypedConfirmScreen(ModalScreen[ConfirmationResponse]):
    """Execute stays disabled until the exact command name is typed."""

    DEFAULT_CSS = MODAL_CSS
    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, policy: ConfirmationPolicy):
        super().__init__()
        self.gate = TypedConfirmationGate(policy)

    def compose(self) -> ComposeResult:
        with Vertical(classes="modal-box danger"):
            yield Label("⚠ Dangerous Command", classes="modal-title")
            yield Label(self.gate.policy.prompt, id="typed-prompt")
            yield Input(placeholder=self.gate.policy.expected_text or "", id="typed-input")
            with Horizontal(classes="modal-buttons"):
                yield Button("Cancel", id="typed-cancel")
                yield Button("Execute", variant="error", id="typed-execute", disabled=True)

    def on_mount(self) -> None:
        self.query_one("#typed-input", Input).focus()

    def on_input_changed(self, event: Input.Changed) -> None:
        enabled = self.gate.update(event.value)
        self.query_one("#typed-execute", Button).disabled = not enabled

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if self.gate.execute_enabled:
            self.dismiss(self.gate.response())

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "typed-execute" and self.gate.execute_enabled:
            self.dismiss(self.gate.response())
        elif event.button.id == "typed-cancel":
            self.action_cancel()

    def action_cancel(self) -> None:
        self.dismiss(ConfirmationResponse(accepted=False, typed_text=self.gate.typed_text))


class UpdateDelayScreen(ModalScreen[Optional[int]]):
    """Pick the countdown before an update; dismisses with seconds or None."""

    DEFAULT_CSS = MODAL_CSS
    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, world_label: str):
        super().__init__()
        self.world_label = world_label

    def compose(self) -> ComposeResult:
        with Vertical(classes="modal-box"):
            yield Label("Schedule Server Update", classes="modal-title")
            yield Label(self.world_label)
            with RadioSet(id="delay-choices"):
                for index, (_, label, description) in enumerate(UPDATE_DELAY_CHOICES):
                    yield RadioButton(f"{label} - {description}", value=index == 0)
                yield RadioButton("Custom")
            yield Input(placeholder="minutes (1-60)", id="delay-custom", type="integer", disabled=True)
            yield Label("", id="delay-error")
            with Horizontal(classes="modal-buttons"):
                yield Button("Cancel", id="delay-cancel")
                yield Button("Execute Update", variant="warning", id="delay-execute")

    @property
    def custom_selected(self) -> bool:
        return self.query_one("#delay-choices", RadioSet).pressed_index == len(UPDATE_DELAY_CHOICES)

    def on_radio_set_changed(self, event: RadioSet.Changed) -> None:
        custom = self.query_one("#delay-custom", Input)
        custom.disabled = not self.custom_selected
        if not custom.disabled:
            custom.focus()

    def selected_delay(self) -> int:
        if self.custom_selected:
            return resolve_update_delay("custom", self.query_one("#delay-custom", Input).value)
        index = max(self.query_one("#delay-choices", RadioSet).pressed_index, 0)
        return resolve_update_delay(UPDATE_DELAY_CHOICES[index][0])

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "delay-cancel":
            self.action_cancel()
            return
        try:
            delay = self.selected_delay()
        except ValueError as e:
            self.query_one("#delay-error", Label).update(str(e))
            return
        self.dismiss(delay)

    def action_cancel(self) -> None:
        self.dismiss(None)
