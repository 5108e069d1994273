"""
Tests for the Control API client against an in-process httpx transport.
"""

import json

import httpx
import pytest

from fleetwatch.services.fleet_console.clients.control_api import (
    ControlApiClient,
    ControlApiError,
    describe_args,
)
from fleetwatch.shared.models.core import CommandArg, CommandResult, FanOutResult, WorldStatus


def make_client(handler, **kwargs):
    return ControlApiClient("http://control.test/api/", transport=httpx.MockTransport(handler), **kwargs)


class TestRequests:
    @pytest.mark.asyncio
    async def test_fleet_path_and_parsing(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "worlds": [
                        {"id": 1, "status": "RUNNING", "region": "NTL", "players": 120, "cpuLoad": 0.4},
                        {"id": 2, "status": "COUNTDOWN", "countdownRemaining": 90},
                    ]
                },
            )

        async with make_client(handler) as client:
            snapshot = await client.get_fleet()

        assert seen[0].method == "GET"
        assert seen[0].url.path == "/api/stats/worlds"
        assert [w.id for w in snapshot.worlds] == [1, 2]
        assert snapshot.worlds[1].status == WorldStatus.COUNTDOWN
        assert snapshot.worlds[1].countdown_remaining_sec == 90

    @pytest.mark.asyncio
    async def test_bearer_token_is_sent(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"agentCommands": [], "gameCommands": []})

        client = make_client(handler, token="s3cret")
        try:
            await client.get_commands()
        finally:
            await client.aclose()

        assert seen[0].headers["Authorization"] == "Bearer s3cret"
        assert seen[0].url.path == "/api/commands"

    @pytest.mark.asyncio
    async def test_no_token_no_authorization_header(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        async with make_client(handler) as client:
            await client.get_commands()

        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_execute_single_world_body(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"ok": True, "message": "done"})

        async with make_client(handler) as client:
            result = await client.execute_command(3, "game", "BROADCAST", [CommandArg(type="STRING", value="hi")])

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/api/worlds/3/command"
        assert json.loads(request.content) == {
            "type": "game",
            "command": "BROADCAST",
            "args": [{"type": "STRING", "value": "hi"}],
            "confirm": True,
        }
        assert isinstance(result, CommandResult)
        assert result.ok and result.message == "done"

    @pytest.mark.asyncio
    async def test_execute_fan_out(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "results": [
                        {"worldId": 1, "ok": True, "message": "ok"},
                        {"worldId": 2, "ok": False, "message": "offline"},
                        {"worldId": 3, "ok": True},
                    ]
                },
            )

        async with make_client(handler) as client:
            result = await client.execute_command("all", "game", "PING")

        assert seen[0].url.path == "/api/worlds/command"
        assert json.loads(seen[0].content)["args"] == []
        assert isinstance(result, FanOutResult)
        assert (result.success_count, result.total) == (2, 3)
        assert result.results[2].message == ""

    @pytest.mark.asyncio
    async def test_telemetry_range_param(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={"data": [{"t": "2024-05-01T10:00:00Z", "cpu": 12.5, "memMb": 900, "avgCycleMs": 210}]},
            )

        async with make_client(handler) as client:
            history = await client.get_telemetry(4, "6h")

        assert seen[0].url.path == "/api/telemetry/4"
        assert seen[0].url.params["range"] == "6h"
        assert history.data[0].mem_mb == 900
        assert history.data[0].players == 0.0


class TestErrors:
    @pytest.mark.asyncio
    async def test_server_message_is_surfaced(self):
        def handler(request):
            return httpx.Response(403, json={"message": "Insufficient role"})

        async with make_client(handler) as client:
            with pytest.raises(ControlApiError) as info:
                await client.get_fleet()

        assert str(info.value) == "Insufficient role"
        assert info.value.status == 403
        assert info.value.payload == {"message": "Insufficient role"}

    @pytest.mark.asyncio
    async def test_status_fallback_message(self):
        def handler(request):
            return httpx.Response(502, text="<html>bad gateway</html>")

        async with make_client(handler) as client:
            with pytest.raises(ControlApiError) as info:
                await client.get_fleet()

        assert str(info.value) == "Request failed with status 502"
        assert info.value.status == 502

    @pytest.mark.asyncio
    async def test_timeout_maps_to_408(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(ControlApiError) as info:
                await client.get_fleet()

        assert str(info.value) == "Request timeout"
        assert info.value.status == 408

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(ControlApiError) as info:
                await client.get_commands()

        assert info.value.status == 0
        assert "connection refused" in str(info.value)

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        def handler(request):
            return httpx.Response(200, content=b"{not json", headers={"Content-Type": "application/json"})

        async with make_client(handler) as client:
            with pytest.raises(ControlApiError, match="Malformed response"):
                await client.get_fleet()

    @pytest.mark.asyncio
    async def test_malformed_shape(self):
        def handler(request):
            return httpx.Response(200, json={"worlds": [{"status": "RUNNING"}]})

        async with make_client(handler) as client:
            with pytest.raises(ControlApiError, match="Malformed response"):
                await client.get_fleet()


def test_describe_args():
    args = [CommandArg(type="INT", value=300), CommandArg(type="STRING", value="bye")]
    assert describe_args(args) == ["INT=300", "STRING='bye'"]
