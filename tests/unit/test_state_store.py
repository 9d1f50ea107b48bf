"""Unit tests for the file-backed state store, artifact source and log sink."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from bench_types import LogBlock
from log_sink import LoggerService, LogNamespace
from state_store import DirectoryArtifactSource, JsonFileStateStore, StateDocument
from conftest import FakeStateStore


class TestJsonFileStateStore:
    @pytest.mark.asyncio
    async def test_read_missing_document(self, temp_dir: Path):
        store = JsonFileStateStore(temp_dir)
        assert await store.read("test-1", StateDocument.AGENT_STATE) is None

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, temp_dir: Path):
        store = JsonFileStateStore(temp_dir)
        path = temp_dir / "test-1" / "agent_state.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"status": "booting", "ownedByEmulator": 1}))

        assert await store.update("test-1", StateDocument.AGENT_STATE, {"status": "running"}) is True
        assert await store.read("test-1", StateDocument.AGENT_STATE) == {"status": "running", "ownedByEmulator": 1}

    @pytest.mark.asyncio
    async def test_unsafe_ids_rejected_without_raising(self, temp_dir: Path):
        store = JsonFileStateStore(temp_dir)
        assert await store.update("../escape", StateDocument.RESULT, {"a": 1}) is False
        assert await store.read("..", StateDocument.RESULT) is None

    @pytest.mark.asyncio
    async def test_unserializable_write_reports_failure(self, temp_dir: Path):
        store = JsonFileStateStore(temp_dir)
        assert await store.update("test-1", StateDocument.RESULT, {1j: "complex key"}) is False

    @pytest.mark.asyncio
    async def test_append_and_read_collection(self, temp_dir: Path):
        store = JsonFileStateStore(temp_dir)
        await store.append("test-1", "agent_logs", [{"title": "a"}])
        await store.append("test-1", "agent_logs", [{"title": "b"}])
        assert await store.read_collection("test-1", "agent_logs") == [{"title": "a"}, {"title": "b"}]

    @pytest.mark.asyncio
    async def test_jobs(self, temp_dir: Path):
        store = JsonFileStateStore(temp_dir)
        assert await store.read_job("job-1") is None
        await store.update_job("job-1", {"testId": "t"})
        await store.update_job("job-1", {"status": "running"})
        assert await store.read_job("job-1") == {"testId": "t", "status": "running"}


class TestDirectoryArtifactSource:
    @pytest.mark.asyncio
    async def test_missing_directory(self, temp_dir: Path):
        assert await DirectoryArtifactSource(temp_dir).fetch_artifacts("test-1") is None

    @pytest.mark.asyncio
    async def test_lists_pngs_by_stem(self, temp_dir: Path, png_bytes):
        screenshots = temp_dir / "test-1" / "ScreenShots"
        screenshots.mkdir(parents=True)
        (screenshots / "0.png").write_bytes(png_bytes)
        (screenshots / "notes.txt").write_text("ignored")
        assert await DirectoryArtifactSource(temp_dir).fetch_artifacts("test-1") == {"0": png_bytes}


class TestLoggerService:
    @pytest.mark.asyncio
    async def test_buffers_until_flush(self, fake_store: FakeStateStore):
        sink = LoggerService("test-1", fake_store)
        await sink.log(LogNamespace.DEV, "hello")
        assert fake_store.collections == {}
        assert await sink.flush() is True
        assert fake_store.collections[("test-1", "dev_logs")] == [{"title": "log", "logs": [{"text": "hello"}]}]

    @pytest.mark.asyncio
    async def test_immediate_flush_of_log_block(self, fake_store: FakeStateStore):
        sink = LoggerService("test-1", fake_store)
        assert await sink.log(LogNamespace.AGENT, LogBlock(title="Iteration 1"), immediate_flush=True) is True
        assert fake_store.collections[("test-1", "agent_logs")] == [{"title": "Iteration 1", "logs": []}]

    @pytest.mark.asyncio
    async def test_unknown_namespace(self, fake_store: FakeStateStore):
        with pytest.raises(ValueError):
            await LoggerService("test-1", fake_store).log("OPS", "nope")

    @pytest.mark.asyncio
    async def test_failed_flush_keeps_buffer(self, fake_store: FakeStateStore):
        sink = LoggerService("test-1", fake_store)
        fake_store.fail_appends = True
        assert await sink.log(LogNamespace.AGENT, "first", immediate_flush=True) is False
        fake_store.fail_appends = False
        assert await sink.flush(LogNamespace.AGENT) is True
        assert len(fake_store.collections[("test-1", "agent_logs")]) == 1

    @pytest.mark.asyncio
    async def test_rejected_backlog_is_capped(self, fake_store: FakeStateStore):
        sink = LoggerService("test-1", fake_store, max_pending=3)
        fake_store.fail_appends = True
        for i in range(5):
            assert await sink.log(LogNamespace.AGENT, f"turn {i}", immediate_flush=True) is False
        fake_store.fail_appends = False

        assert await sink.flush(LogNamespace.AGENT) is True
        written = fake_store.collections[("test-1", "agent_logs")]
        assert [b["logs"][0]["text"] for b in written] == ["turn 2", "turn 3", "turn 4"]
