#!/usr/bin/env python3
"""
Fleetwatch Console - Main Application.

Terminal operator console for a fleet of game worlds: live world cards,
per-world telemetry charts and remote command execution.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import shlex
import shutil
import tempfile
from dataclasses import replace
from typing import Awaitable, List, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.widgets import Footer, Header, Input

from fleetwatch.services.fleet_console.clients.control_api import ControlApiClient, ControlApiError
from fleetwatch.services.fleet_console.config import ConsoleConfig, validated_api_url
from fleetwatch.services.fleet_console.core.command_log import CommandLog
from fleetwatch.services.fleet_console.core.commands import (
    CommandConsole,
    RecentCommands,
    SessionStore,
    build_args,
    parse_target,
)
from fleetwatch.services.fleet_console.core.confirmation import (
    ConfirmationKind,
    ConfirmationPolicy,
    ConfirmationResponse,
)
from fleetwatch.services.fleet_console.core.fleet_state import FleetViewState
from fleetwatch.services.fleet_console.core.session import FleetViewSession
from fleetwatch.services.fleet_console.core.telemetry import TelemetryPanel
from fleetwatch.services.fleet_console.core.timers import TimerFactory, repeating_timer
from fleetwatch.services.fleet_console.core.world_actions import resolve_update_delay
from fleetwatch.services.fleet_console.logger import setup_logging
from fleetwatch.services.fleet_console.ui import (
    CommandBrowser,
    CommandLogTable,
    ConfirmScreen,
    StatusBar,
    TelemetryView,
    TerminalChartBackend,
    TypedConfirmScreen,
    UpdateDelayScreen,
    WorldGrid,
)
from fleetwatch.shared.models.core import target_label


logger = logging.getLogger(__name__)

HELP_TEXT = """\
refresh                      reload the fleet now (F5)
open <id> | close            toggle / close a world's telemetry panel (Esc closes)
range <1h|6h|24h|7d|30d>     change the telemetry range
expand <cpu|memory|tick|players>
target <id|all>              select the command target
run <agent|game> <NAME> [values...]
form <agent|game> <NAME>     open/close a parameter form
set <index|name> <value>     fill a form field;  exec  runs the open form
action <id> <COMMAND>        world card action (START, STOP, RESTART, UPDATE, CANCEL_UPDATE, UPDATE_AGENT)
update <id> [seconds | custom <minutes>]
search <text>                filter the command catalog
clear log | help"""


class AppNotifier:
    """Routes toasts to ``App.notify``."""

    def __init__(self, app: App):
        self._app = app

    def success(self, message: str) -> None:
        self._app.notify(message, severity="information")

    def warning(self, message: str) -> None:
        self._app.notify(message, severity="warning")

    def error(self, message: str) -> None:
        self._app.notify(message, severity="error", timeout=8)


class FleetConsoleApp(App):
    """Fleetwatch operator console."""

    TITLE = "Fleetwatch Console"
    SUB_TITLE = "World fleet operations"

    CSS = """
    #status-bar { dock: top; height: 1; background: $boost; }
    #main-layout { height: 1fr; }
    #fleet-column { width: 3fr; }
    #command-column { width: 2fr; border-left: solid $primary; }
    #world-grid { height: auto; padding: 0 1; }
    #telemetry-view { height: auto; padding: 0 1; }
    #command-browser { height: 1fr; padding: 0 1; }
    #command-log { height: 14; }
    #command-dock { dock: bottom; height: 3; border: round $primary; }
    """

    BINDINGS = [
        Binding("f5", "refresh", "Refresh"),
        Binding("escape", "close_panel", "Close panel"),
        Binding("f1", "help", "Help"),
        Binding("f10", "quit", "Quit"),
        Binding("ctrl+c", "quit", "Quit"),
    ]

    def __init__(
        self,
        config: Optional[ConsoleConfig] = None,
        *,
        api: Optional[ControlApiClient] = None,
        timer_factory: TimerFactory = repeating_timer,
    ):
        """
        Initialize the application.

        Args:
            config: Console configuration (environment by default)
            api: Control API client; built from ``config`` when omitted
            timer_factory: Timer builder for the session (tests pass a fake)
        """
        super().__init__()
        self.config = config or ConsoleConfig()
        self.api = api or ControlApiClient(
            self.config.api_url,
            token=self.config.api_token,
            timeout_s=self.config.request_timeout_s,
        )
        self.notifier = AppNotifier(self)
        self._private_session_dir: Optional[str] = None
        session_dir = self.config.session_dir
        if session_dir is None:
            session_dir = self._private_session_dir = tempfile.mkdtemp(prefix="fleetwatch-")
        self.command_log = CommandLog(on_change=self._render_command_log)
        self.session = FleetViewSession(
            self.api,
            self,
            notifier=self.notifier,
            confirmer=self.confirm,
            chart_backend=TerminalChartBackend(),
            can_manage=self.config.can_manage,
            can_update_agent=self.config.can_update_agent,
            timer_factory=timer_factory,
        )
        self.command_console = CommandConsole(
            self.api,
            log=self.command_log,
            recent=RecentCommands(SessionStore(session_dir)),
            notifier=self.notifier,
            confirmer=self.confirm,
            on_change=self._render_commands,
        )
        self._views_ready = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield StatusBar(api_url=self.config.api_url, id="status-bar")
        with Horizontal(id="main-layout"):
            with VerticalScroll(id="fleet-column"):
                yield WorldGrid(id="world-grid")
                yield TelemetryView(id="telemetry-view")
            with Vertical(id="command-column"):
                with VerticalScroll(id="command-browser-scroll"):
                    yield CommandBrowser(id="command-browser")
                yield CommandLogTable(id="command-log")
        yield Input(placeholder="command> help | open <id> | run <type> <NAME> | target <id|all>", id="command-dock")
        yield Footer()

    async def on_mount(self) -> None:
        self._views_ready = True
        self.query_one("#telemetry-view", TelemetryView).display = False
        self.query_one("#command-dock", Input).focus()
        logger.info("Fleet console started against %s", self.config.api_url)
        self._spawn(self._start_views())

    async def _start_views(self) -> None:
        await self.session.start()
        await self.command_console.load()

    async def on_unmount(self) -> None:
        self._views_ready = False
        self.session.dispose()
        self._drop_private_session()
        await self.api.aclose()

    def _drop_private_session(self) -> None:
        path, self._private_session_dir = self._private_session_dir, None
        if path is None:
            return
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning("Failed to remove session directory %s: %s", path, e)

    # ---- FleetView ---------------------------------------------------------
    def render_fleet(self, state: FleetViewState) -> None:
        if not self._views_ready:
            return
        self.query_one("#world-grid", WorldGrid).show(state, self.session.actions_for)
        status = self.query_one("#status-bar", StatusBar)
        status.error_text = ""
        status.interval_ms = self.session.poller.current_interval_ms or state.refresh_interval_ms

    def render_error(self, message: str) -> None:
        if not self._views_ready:
            return
        self.query_one("#world-grid", WorldGrid).show_error(message)
        self.query_one("#status-bar", StatusBar).error_text = message

    def render_label(self, text: str) -> None:
        if self._views_ready:
            self.query_one("#status-bar", StatusBar).refresh_text = text

    def render_countdown(self, world_id: int, text: str) -> None:
        if self._views_ready:
            self.query_one("#world-grid", WorldGrid).set_pill(world_id, text)

    def render_telemetry(self, panel: TelemetryPanel) -> None:
        if not self._views_ready:
            return
        grid = self.query_one("#world-grid", WorldGrid)
        current = self.session.panel()
        grid.selected_world = current.world_id if current is not None else None
        grid.refresh()
        self.query_one("#telemetry-view", TelemetryView).show(current)

    def _render_commands(self) -> None:
        if not self._views_ready:
            return
        self.query_one("#command-browser", CommandBrowser).show(self.command_console)
        self.query_one("#status-bar", StatusBar).target_text = target_label(self.command_console.target)

    def _render_command_log(self) -> None:
        if self._views_ready:
            self.query_one("#command-log", CommandLogTable).show(self.command_log)

    # ---- Confirmation ------------------------------------------------------
    async def confirm(self, policy: ConfirmationPolicy) -> ConfirmationResponse:
        if policy.kind == ConfirmationKind.NONE:
            return ConfirmationResponse(accepted=True)
        screen = TypedConfirmScreen(policy) if policy.kind == ConfirmationKind.TYPED else ConfirmScreen(policy)
        result = await self._wait_for_screen(screen)
        return result if result is not None else ConfirmationResponse(accepted=False)

    async def _wait_for_screen(self, screen):
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def _done(result) -> None:
            if not future.done():
                future.set_result(result)

        self.push_screen(screen, callback=_done)
        return await future

    # ---- Actions -----------------------------------------------------------
    def action_refresh(self) -> None:
        self._spawn(self.session.refresh())

    def action_close_panel(self) -> None:
        self.session.close_detail()

    def action_help(self) -> None:
        self.notify(HELP_TEXT, title="Commands", timeout=20)

    # ---- Command dock ------------------------------------------------------
    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "command-dock":
            return

        raw = (event.value or "").strip()
        event.input.value = ""
        if not raw:
            return

        self._spawn(self._run_command(raw))

    def _spawn(self, work: Awaitable) -> None:
        self.run_worker(self._guarded(work), group="operator", exit_on_error=False)

    async def _guarded(self, work: Awaitable) -> None:
        try:
            await work
        except ValueError as e:
            self.notifier.error(str(e))
        except ControlApiError as e:
            self.notifier.error(e.message)

    async def _run_command(self, raw: str) -> None:
        try:
            tokens = shlex.split(raw)
        except ValueError as e:
            raise ValueError(f"Cannot parse command: {e}") from None
        verb, args = tokens[0].lower(), tokens[1:]
        logger.debug("Operator command: %s %s", verb, args)

        if verb in {"help", "?", "h"}:
            self.action_help()
        elif verb == "refresh":
            await self.session.refresh()
        elif verb == "open":
            await self.session.toggle_detail(self._world_id(args))
        elif verb == "close":
            self.action_close_panel()
        elif verb == "range":
            await self._open_panel().change_range(self._arg(args, 0, "range"))
        elif verb == "expand":
            self._open_panel().toggle_expand(self._arg(args, 0, "metric").lower())
        elif verb == "target":
            self.command_console.set_target(self._arg(args, 0, "target"))
        elif verb == "search":
            self.command_console.set_search(" ".join(args))
        elif verb == "run":
            await self._run_console_command(args)
        elif verb == "form":
            self.command_console.toggle_form(self._command_type(args), self._arg(args, 1, "command").upper())
        elif verb == "set":
            if self.command_console.form is None:
                raise ValueError("No parameter form is open")
            self.command_console.form.set(self._arg(args, 0, "field"), " ".join(args[1:]))
            self._render_commands()
        elif verb == "exec":
            await self.command_console.execute_form()
        elif verb == "action":
            await self._run_world_action(self._world_id(args), self._arg(args, 1, "command").upper())
        elif verb == "update":
            await self._run_update(self._world_id(args), args[1:])
        elif verb == "clear" and args[:1] == ["log"]:
            self.command_log.clear()
        else:
            raise ValueError(f"Unknown command: {raw} (try 'help')")

    @staticmethod
    def _arg(args: List[str], index: int, name: str) -> str:
        if len(args) <= index:
            raise ValueError(f"Missing {name}")
        return args[index]

    def _world_id(self, args: List[str]) -> int:
        target = parse_target(self._arg(args, 0, "world id"))
        if not isinstance(target, int):
            raise ValueError("A single world id is required here")
        return target

    def _command_type(self, args: List[str]) -> str:
        command_type = self._arg(args, 0, "command type").lower()
        if command_type not in {"agent", "game"}:
            raise ValueError(f"Command type must be agent or game, got {command_type!r}")
        return command_type

    def _open_panel(self) -> TelemetryPanel:
        panel = self.session.panel()
        if panel is None:
            raise ValueError("No telemetry panel is open (use: open <id>)")
        return panel

    async def _run_console_command(self, args: List[str]) -> None:
        command_type = self._command_type(args)
        name = self._arg(args, 1, "command").upper()
        descriptor = self.command_console.descriptor(command_type, name)
        values = dict(zip((param.name for param in descriptor.params), args[2:]))
        await self.command_console.execute(command_type, name, build_args(descriptor.params, values))

    async def _run_world_action(self, world_id: int, command: str) -> None:
        world = self.session.poller.state.world(world_id)
        if world is None:
            raise ValueError(f"Unknown world {world_id}")
        action = next((a for a in self.session.actions_for(world) if a.command == command), None)
        if action is None or not action.enabled:
            raise ValueError(f"{command} is not available for {world.label}")
        if command == "UPDATE":
            await self._run_update(world_id, [])
            return
        await self.session.actions.run(world_id, command)

    async def _run_update(self, world_id: int, args: List[str]) -> None:
        if not args:
            delay: Optional[int] = await self._wait_for_screen(UpdateDelayScreen(f"World {world_id}"))
            if delay is None:
                return
        elif args[0].lower() == "custom":
            delay = resolve_update_delay("custom", args[1] if len(args) > 1 else None)
        else:
            delay = resolve_update_delay(args[0])
        await self.session.actions.schedule_update(world_id, delay)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="fleetwatch", description="Fleetwatch operator console")
    parser.add_argument("--api-url", help="Control API base URL (overrides FLEETWATCH_API_URL)")
    parser.add_argument("--token", help="Bearer token (overrides FLEETWATCH_API_TOKEN)")
    parser.add_argument("--log-file", help="Write logs to this file (overrides FLEETWATCH_LOG_FILE)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the application."""
    args = _parse_args(argv)
    config = ConsoleConfig()
    overrides = {}
    if args.api_url:
        overrides["api_url"] = validated_api_url(args.api_url)
    if args.token:
        overrides["api_token"] = args.token
    if args.log_file:
        overrides["log_file"] = args.log_file
    if overrides:
        config = replace(config, **overrides)

    setup_logging(
        default_path=config.log_cfg_path or os.path.join(os.path.dirname(__file__), "logging.yaml"),
        default_level=config.log_level,
        log_file=config.log_file,
    )
    FleetConsoleApp(config).run()


if __name__ == "__main__":
    main()
