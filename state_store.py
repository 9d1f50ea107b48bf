"""Persisted state store and artifact source backed by the filesystem."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol


class StateDocument(str, Enum):
    """Per-test documents shared with the emulator and dispatcher."""
    BOOT_CONFIG = "boot_config"
    EMULATOR_STATE = "emulator_state"
    SHARED_STATE = "shared_state"
    TEST_STATE = "test_state"
    AGENT_STATE = "agent_state"
    MEM_WATCH_HISTORY = "mem_watch_history"
    RESULT = "result"


class StateStore(Protocol):
    """Field-scoped document access keyed by test id. Writes report failure, never raise."""

    async def read(self, test_id: str, document: str) -> Optional[Dict[str, Any]]: ...

    async def update(self, test_id: str, document: str, fields: Dict[str, Any]) -> bool: ...

    async def append(self, test_id: str, collection: str, items: List[Dict[str, Any]]) -> bool: ...

    async def read_job(self, job_id: str) -> Optional[Dict[str, Any]]: ...

    async def update_job(self, job_id: str, fields: Dict[str, Any]) -> bool: ...


class ArtifactSource(Protocol):
    async def fetch_artifacts(self, test_id: str) -> Optional[Dict[str, bytes]]: ...


def _safe_segment(value: str) -> str:
    if not value or value in {".", ".."} or "/" in value or "\\" in value:
        raise ValueError(f"Invalid path segment: {value!r}")
    return value


def _doc_key(document: str | StateDocument) -> str:
    return document.value if isinstance(document, StateDocument) else str(document)


class JsonFileStateStore:
    """Documents as JSON files under `root/<test_id>/`, collections as JSON lines.

    Updates merge the given top-level fields into whatever is on disk, so
    fields written by other services survive.
    """

    JOBS_DIR = "_jobs"

    def __init__(self, root: Path, logger: Optional[logging.Logger] = None):
        self.root = Path(root)
        self.logger = logger or logging.getLogger("state_store")
        self._locks: Dict[Path, asyncio.Lock] = {}

    def _lock_for(self, path: Path) -> asyncio.Lock:
        lock = self._locks.get(path)
        if lock is None:
            lock = self._locks[path] = asyncio.Lock()
        return lock

    def _doc_path(self, test_id: str, document: str | StateDocument) -> Path:
        return self.root / _safe_segment(test_id) / f"{_safe_segment(_doc_key(document))}.json"

    def _job_path(self, job_id: str) -> Path:
        return self.root / self.JOBS_DIR / f"{_safe_segment(job_id)}.json"

    def _read_file(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            # A sibling writer may be mid-write; treat as not yet available.
            self.logger.warning(f"Failed to read {path}: {exc}")
            return None
        return data if isinstance(data, dict) else None

    def _write_file(self, path: Path, data: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def _merge(self, path: Path, fields: Dict[str, Any]) -> bool:
        async with self._lock_for(path):
            try:
                current = self._read_file(path) or {}
                current.update(fields)
                self._write_file(path, current)
                return True
            except (OSError, TypeError, ValueError) as exc:
                self.logger.warning(f"Failed to write {path}: {exc}")
                return False

    async def read(self, test_id: str, document: str | StateDocument) -> Optional[Dict[str, Any]]:
        try:
            path = self._doc_path(test_id, document)
        except ValueError as exc:
            self.logger.warning(str(exc))
            return None
        return self._read_file(path)

    async def update(self, test_id: str, document: str | StateDocument, fields: Dict[str, Any]) -> bool:
        try:
            path = self._doc_path(test_id, document)
        except ValueError as exc:
            self.logger.warning(str(exc))
            return False
        return await self._merge(path, fields)

    async def append(self, test_id: str, collection: str, items: List[Dict[str, Any]]) -> bool:
        if not items:
            return True
        try:
            path = self.root / _safe_segment(test_id) / f"{_safe_segment(collection)}.jsonl"
        except ValueError as exc:
            self.logger.warning(str(exc))
            return False
        async with self._lock_for(path):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with open(path, "a", encoding="utf-8") as f:
                    for item in items:
                        f.write(json.dumps(item, default=str) + "\n")
                return True
            except (OSError, TypeError, ValueError) as exc:
                self.logger.warning(f"Failed to append to {path}: {exc}")
                return False

    async def read_collection(self, test_id: str, collection: str) -> List[Dict[str, Any]]:
        path = self.root / _safe_segment(test_id) / f"{_safe_segment(collection)}.jsonl"
        if not path.exists():
            return []
        items = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if line.strip():
                items.append(json.loads(line))
        return items

    async def read_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        try:
            path = self._job_path(job_id)
        except ValueError as exc:
            self.logger.warning(str(exc))
            return None
        return self._read_file(path)

    async def update_job(self, job_id: str, fields: Dict[str, Any]) -> bool:
        try:
            path = self._job_path(job_id)
        except ValueError as exc:
            self.logger.warning(str(exc))
            return False
        return await self._merge(path, fields)


class DirectoryArtifactSource:
    """Screenshots written by the emulator to `root/<test_id>/ScreenShots/*.png`."""

    def __init__(self, root: Path, logger: Optional[logging.Logger] = None):
        self.root = Path(root)
        self.logger = logger or logging.getLogger("artifacts")

    async def fetch_artifacts(self, test_id: str) -> Optional[Dict[str, bytes]]:
        screenshot_dir = self.root / _safe_segment(test_id) / "ScreenShots"
        if not screenshot_dir.is_dir():
            return None
        artifacts: Dict[str, bytes] = {}
        for path in sorted(screenshot_dir.glob("*.png")):
            try:
                artifacts[path.stem] = path.read_bytes()
            except OSError as exc:
                self.logger.warning(f"Failed to read artifact {path}: {exc}")
        return artifacts
