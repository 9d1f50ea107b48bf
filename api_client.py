"""HTTP client for the EmuBench control-plane API."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx


class ControlPlaneClient:
    """Token exchange and end-of-test notification. Failures return None."""

    def __init__(
        self,
        base_url: str,
        auth_token: str,
        timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.logger = logger or logging.getLogger("emu_api")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {auth_token}"},
            timeout=timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> Optional[Any]:
        response = await self._client.post(path, json=payload)
        response.raise_for_status()
        return response.json() if response.content else {}

    async def attempt_token_exchange(self, test_id: str, exchange_token: Optional[str]) -> Optional[str]:
        """Trade the shared exchange token for an emulator credential."""
        try:
            self.logger.info("[Api] Attempting token exchange")
            data = await self._post(
                f"/test-orx/tests/{test_id}/token-exchange",
                {"exchangeToken": exchange_token},
            )
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.error(f"[Api] Error with token exchange: {exc}")
            return None
        if isinstance(data, dict) and data.get("googleToken"):
            return str(data["googleToken"])
        return None

    async def end_test(self, test_id: str) -> bool:
        try:
            self.logger.info(f"[Api] Ending test {test_id}")
            await self._post("/test-orx/end", {"testId": test_id})
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.error(f"[Api] Error ending test: {exc}")
            return False
        self.logger.info("[Api] Test successfully ended")
        return True
