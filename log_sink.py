"""Namespaced, buffered log sink persisted through the state store."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Union

from bench_types import LogBlock
from state_store import StateStore


class LogNamespace:
    DEV = "DEV"
    AGENT = "AGENT"


DEFAULT_MAX_PENDING = 50

COLLECTIONS = {
    LogNamespace.DEV: "dev_logs",
    LogNamespace.AGENT: "agent_logs",
}


class LoggerService:
    """Buffers log blocks per namespace and flushes them to the store.

    While the store rejects appends, at most `max_pending` blocks per
    namespace are retained; older ones are dropped.
    """

    def __init__(
        self,
        test_id: str,
        store: StateStore,
        max_pending: int = DEFAULT_MAX_PENDING,
        logger: Optional[logging.Logger] = None,
    ):
        self.test_id = test_id
        self.store = store
        self.max_pending = max_pending
        self.logger = logger or logging.getLogger("emu_log_sink")
        self._buffer: Dict[str, List[Dict[str, Any]]] = {ns: [] for ns in COLLECTIONS}

    async def log(
        self,
        namespace: str,
        entry: Union[str, LogBlock, Dict[str, Any]],
        immediate_flush: bool = False,
    ) -> bool:
        """Queue an entry; returns whether the (optional) flush succeeded."""
        if namespace not in self._buffer:
            raise ValueError(f"Namespace does not exist: {namespace}")
        if isinstance(entry, str):
            block = {"title": "log", "logs": [{"text": entry}]}
        elif isinstance(entry, LogBlock):
            block = entry.to_dict()
        else:
            block = entry
        self._buffer[namespace].append(block)
        self.logger.debug(f"[{namespace}] {json.dumps(block, default=str)[:500]}")
        if immediate_flush:
            return await self.flush(namespace)
        return True

    async def flush(self, namespace: Optional[str] = None) -> bool:
        namespaces = [namespace] if namespace else list(self._buffer)
        ok = True
        for ns in namespaces:
            pending = self._buffer[ns]
            if not pending:
                continue
            written = await self.store.append(self.test_id, COLLECTIONS[ns], pending)
            if written:
                self._buffer[ns] = []
                continue
            ok = False
            dropped = len(pending) - self.max_pending
            if dropped > 0:
                self._buffer[ns] = pending[dropped:]
                self.logger.warning(
                    f"Failed to flush {len(pending)} {ns} log block(s); dropped the {dropped} oldest, "
                    f"keeping {self.max_pending} buffered"
                )
            else:
                self.logger.warning(f"Failed to flush {len(pending)} {ns} log block(s); keeping them buffered")
        return ok
