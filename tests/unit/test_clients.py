"""Unit tests for the emulator and control-plane HTTP clients."""
from __future__ import annotations

import json

import httpx
import pytest

from api_client import ControlPlaneClient
from emulator import EmulationService


def _client(handler, base_url="http://emu.local"):
    return httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(handler))


class TestEmulationService:
    @pytest.mark.asyncio
    async def test_controller_input_round_trip(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"screenshot": "5", "contextMemWatchValues": {"coins": 3}, "endStateMemWatchValues": {}},
            )

        service = EmulationService("http://emu.local", "token", client=_client(handler))
        outcome = await service.post_controller_input({"frames": 10})

        assert seen["path"] == "/api/controller/0"
        assert seen["body"] == {"frames": 10, "connected": True}
        assert outcome.screenshot == "5"
        assert outcome.context_mem_watch_values == {"coins": "3"}
        assert outcome.end_state_mem_watch_values == {}

    @pytest.mark.asyncio
    async def test_server_error_returns_none(self):
        service = EmulationService(
            "http://emu.local", "token", client=_client(lambda request: httpx.Response(500))
        )
        assert await service.post_controller_input({"frames": 1}) is None
        assert await service.save_state_slot(1) is False

    @pytest.mark.asyncio
    async def test_state_slot_payload(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={})

        service = EmulationService("http://emu.local", "token", client=_client(handler))
        assert await service.load_state_slot(4) is True
        assert bodies == [("/api/emulation/state", {"action": "load", "to": 4})]


class TestControlPlaneClient:
    @pytest.mark.asyncio
    async def test_token_exchange(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/test-orx/tests/test-123/token-exchange"
            assert json.loads(request.content) == {"exchangeToken": "xchg"}
            return httpx.Response(200, json={"googleToken": "cred"})

        client = ControlPlaneClient("http://api.local", "auth", client=_client(handler, "http://api.local"))
        assert await client.attempt_token_exchange("test-123", "xchg") == "cred"

    @pytest.mark.asyncio
    async def test_token_exchange_failure_returns_none(self):
        client = ControlPlaneClient(
            "http://api.local", "auth", client=_client(lambda r: httpx.Response(403), "http://api.local")
        )
        assert await client.attempt_token_exchange("test-123", "xchg") is None

    @pytest.mark.asyncio
    async def test_end_test(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(json.loads(request.content))
            return httpx.Response(200)

        client = ControlPlaneClient("http://api.local", "auth", client=_client(handler, "http://api.local"))
        assert await client.end_test("test-123") is True
        assert calls == [{"testId": "test-123"}]
