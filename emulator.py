"""HTTP client for the emulator control API."""
from __future__ import annotations

import json
import logging
from typing import Any, Literal, Optional

import httpx

from bench_types import ControllerInputOutcome

StickPosition = dict[str, int]

STICK_CENTER = 128
DIRECTION_TO_STICK: dict[str, StickPosition] = {
    "up": {"x": 128, "y": 255},
    "down": {"x": 128, "y": 0},
    "left": {"x": 0, "y": 128},
    "right": {"x": 255, "y": 128},
}


def direction_to_stick_position(
    direction: Optional[str] = None,
    x: Optional[int] = None,
    y: Optional[int] = None,
) -> StickPosition:
    """Map a named direction (or raw axes) to a 0-255 stick position."""
    if direction:
        try:
            return dict(DIRECTION_TO_STICK[direction])
        except KeyError:
            raise ValueError(f"Invalid direction: {direction}") from None
    return {
        "x": STICK_CENTER if x is None else x,
        "y": STICK_CENTER if y is None else y,
    }


class EmulationService:
    """Thin async wrapper over the emulator's HTTP API.

    Every call returns None on failure instead of raising, so a flaky emulator
    shows up to the agent as an empty tool result.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.logger = logger or logging.getLogger("emulation")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> Optional[Any]:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as exc:
            self.logger.error(f"[Emulation] Request to {path} failed: {exc}")
            return None

    async def post_controller_input(
        self,
        request: dict[str, Any],
        controller_port: int = 0,
    ) -> Optional[ControllerInputOutcome]:
        """Send one controller frame sequence; the emulator answers with fresh observations."""
        request = {**request, "connected": True}
        self.logger.info(f"[Emulation] Sending controller input: {json.dumps(request, sort_keys=True)}")
        data = await self._post(f"/api/controller/{controller_port}", request)
        if data is None:
            return None
        if not isinstance(data, dict):
            self.logger.error(f"[Emulation] Unexpected controller response: {data!r}")
            return None
        return ControllerInputOutcome(
            screenshot=data.get("screenshot") or None,
            context_mem_watch_values=_as_str_map(data.get("contextMemWatchValues")),
            end_state_mem_watch_values=_as_str_map(data.get("endStateMemWatchValues")),
        )

    async def _state_action(self, action: Literal["save", "load"], slot: int) -> bool:
        self.logger.info(f"[Emulation] {action.title()} state slot {slot}")
        data = await self._post("/api/emulation/state", {"action": action, "to": slot})
        return data is not None

    async def save_state_slot(self, slot: int) -> bool:
        return await self._state_action("save", slot)

    async def load_state_slot(self, slot: int) -> bool:
        return await self._state_action("load", slot)


def _as_str_map(value: Any) -> Optional[dict[str, str]]:
    if not isinstance(value, dict):
        return None
    return {str(k): str(v) for k, v in value.items()}
