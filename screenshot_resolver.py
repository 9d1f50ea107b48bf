"""Resolve named screenshots, tolerating artifacts that are not visible yet."""
from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
from typing import Dict, Optional, Union

from PIL import Image, UnidentifiedImageError

from state_store import ArtifactSource


def decode_image(raw: Union[bytes, str]) -> bytes:
    """Return PNG bytes for a raw artifact (PNG/JPEG bytes or a base64 string)."""
    if isinstance(raw, str):
        raw = base64.b64decode(raw.split(",", 1)[-1], validate=True)
    with Image.open(io.BytesIO(raw)) as image:
        if image.format == "PNG":
            return raw
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()


class ScreenshotResolver:
    """Cache-first lookup with a bounded, fixed-delay refetch of the artifact manifest."""

    def __init__(
        self,
        test_id: str,
        source: ArtifactSource,
        cache: Dict[str, bytes],
        retries: int = 2,
        retry_delay: float = 0.5,
        logger: Optional[logging.Logger] = None,
    ):
        self.test_id = test_id
        self.source = source
        self.cache = cache
        self.retries = retries
        self.retry_delay = retry_delay
        self.logger = logger or logging.getLogger("screenshots")

    async def _refresh(self) -> None:
        try:
            artifacts = await self.source.fetch_artifacts(self.test_id)
        except Exception as exc:
            self.logger.warning(f"Failed to fetch artifacts for {self.test_id}: {exc}")
            return
        if not artifacts:
            return
        for name, raw in artifacts.items():
            if name in self.cache:
                continue
            try:
                self.cache[name] = decode_image(raw)
            except (UnidentifiedImageError, OSError, ValueError, binascii.Error) as exc:
                self.logger.warning(f"Skipping undecodable screenshot {name}: {exc}")

    async def resolve(self, name: str) -> Optional[bytes]:
        """Return PNG bytes for `name`, or None if it never showed up."""
        cached = self.cache.get(name)
        if cached is not None:
            return cached

        for attempt in range(self.retries + 1):
            if attempt > 0:
                await asyncio.sleep(self.retry_delay)
            await self._refresh()
            found = self.cache.get(name)
            if found is not None:
                return found
            self.logger.debug(f"Screenshot {name} not visible yet (attempt {attempt + 1}/{self.retries + 1})")

        self.logger.info(f"Screenshot {name} not found after {self.retries} retries")
        return None
