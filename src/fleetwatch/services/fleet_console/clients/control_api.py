"""
Control API client for the Fleet Console.

Talks to the fleet control plane over REST: fleet snapshot, command
catalog, command execution and per-world telemetry history.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from fleetwatch.shared.models.core import (
    ALL_WORLDS,
    CommandArg,
    CommandCatalog,
    ExecuteResponse,
    FleetSnapshot,
    Target,
    TelemetryHistory,
    parse_execute_response,
)


logger = logging.getLogger(__name__)


class ControlApiError(Exception):
    """Raised for every failed Control API call (transport, HTTP or payload)."""

    def __init__(self, message: str, status: int = 0, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload or {}

    def __str__(self) -> str:
        return self.message


class ControlApiClient:
    """Async wrapper around the fleet control plane REST API."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout_s: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API root, e.g. ``http://control:8080/api``
            token: Optional bearer token sent with every request
            timeout_s: Total per-request timeout in seconds
            transport: Custom httpx transport (tests use ``httpx.MockTransport``)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ---- Session lifecycle -------------------------------------------------
    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout_s),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "ControlApiClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ---- Transport ---------------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        client = self._ensure_client()
        try:
            response = await client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out: %s", method, path, exc)
            raise ControlApiError("Request timeout", 408) from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ControlApiError(str(exc) or "Network error", 0) from exc

        if response.is_error:
            payload: Dict[str, Any] = {}
            try:
                decoded = response.json()
                if isinstance(decoded, dict):
                    payload = decoded
            except ValueError:
                pass
            message = payload.get("message") or f"Request failed with status {response.status_code}"
            logger.warning("%s %s -> HTTP %s: %s", method, path, response.status_code, message)
            raise ControlApiError(str(message), response.status_code, payload)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ControlApiError(f"Malformed response: {exc}", 0) from exc

    @staticmethod
    def _validate(model, payload: Any):
        try:
            return model.model_validate(payload if payload is not None else {})
        except ValidationError as exc:
            raise ControlApiError(f"Malformed response: {exc.error_count()} validation error(s)", 0) from exc

    # ---- Endpoints ---------------------------------------------------------
    async def get_fleet(self) -> FleetSnapshot:
        """Fetch the current status of every world."""
        return self._validate(FleetSnapshot, await self._request("GET", "/stats/worlds"))

    async def get_commands(self) -> CommandCatalog:
        """Fetch the agent + game command catalog."""
        return self._validate(CommandCatalog, await self._request("GET", "/commands"))

    async def execute_command(
        self,
        target: Target,
        command_type: str,
        command: str,
        args: Optional[Sequence[CommandArg]] = None,
    ) -> ExecuteResponse:
        """
        Execute a command on one world or on the whole fleet.

        Args:
            target: World id or ``"all"`` for a fan-out
            command_type: ``"agent"`` or ``"game"``
            command: Command name
            args: Typed args ``[{type, value}]``

        Returns:
            ``CommandResult`` for a single world, ``FanOutResult`` for the fleet
        """
        path = "/worlds/command" if target == ALL_WORLDS else f"/worlds/{int(target)}/command"
        body: Dict[str, Any] = {
            "type": command_type,
            "command": command,
            "args": [arg.model_dump() for arg in (args or [])],
            "confirm": True,
        }
        payload = await self._request("POST", path, json=body)
        try:
            return parse_execute_response(payload)
        except ValidationError as exc:
            raise ControlApiError(f"Malformed response: {exc.error_count()} validation error(s)", 0) from exc

    async def get_telemetry(self, world_id: int, range_key: str = "1h") -> TelemetryHistory:
        """Fetch the telemetry history of one world for a range (1h|6h|24h|7d|30d)."""
        payload = await self._request("GET", f"/telemetry/{int(world_id)}", params={"range": range_key})
        return self._validate(TelemetryHistory, payload)


def describe_args(args: Sequence[CommandArg]) -> List[str]:
    return [f"{arg.type}={arg.value!r}" for arg in args]
