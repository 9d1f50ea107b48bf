"""Pytest fixtures for EmuBench agent tests."""
from __future__ import annotations

import asyncio
import io
import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pytest
from PIL import Image

from bench_types import (
    BenchmarkResult,
    ControllerInputOutcome,
    HistorySlice,
    LlmResponse,
    LogBlock,
    LogEntry,
    TokenUsage,
    ToolCall,
    Turn,
)
from config import BootConfig, parse_boot_config


class FakeStateStore:
    """In-memory StateStore with switchable write failures."""

    def __init__(self) -> None:
        self.documents: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.collections: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.failing_documents: set = set()
        self.fail_appends = False
        self.updates: List[Tuple[str, str, Dict[str, Any]]] = []
        self.job_updates: List[Tuple[str, Dict[str, Any]]] = []

    @staticmethod
    def _key(document: Any) -> str:
        return getattr(document, "value", document)

    def seed(self, test_id: str, document: Any, data: Dict[str, Any]) -> None:
        self.documents[(test_id, self._key(document))] = dict(data)

    def get(self, test_id: str, document: Any) -> Optional[Dict[str, Any]]:
        return self.documents.get((test_id, self._key(document)))

    async def read(self, test_id: str, document: Any) -> Optional[Dict[str, Any]]:
        data = self.get(test_id, document)
        return dict(data) if data is not None else None

    async def update(self, test_id: str, document: Any, fields: Dict[str, Any]) -> bool:
        key = self._key(document)
        self.updates.append((test_id, key, fields))
        if key in self.failing_documents:
            return False
        self.documents.setdefault((test_id, key), {}).update(fields)
        return True

    async def append(self, test_id: str, collection: str, items: List[Dict[str, Any]]) -> bool:
        if self.fail_appends:
            return False
        self.collections.setdefault((test_id, collection), []).extend(items)
        return True

    async def read_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        job = self.jobs.get(job_id)
        return dict(job) if job is not None else None

    async def update_job(self, job_id: str, fields: Dict[str, Any]) -> bool:
        self.job_updates.append((job_id, fields))
        self.jobs.setdefault(job_id, {}).update(fields)
        return True


class FakeArtifactSource:
    """Artifact source whose contents tests can change between fetches."""

    def __init__(self, artifacts: Optional[Dict[str, bytes]] = None):
        self.artifacts = artifacts
        self.fetches = 0

    async def fetch_artifacts(self, test_id: str) -> Optional[Dict[str, bytes]]:
        self.fetches += 1
        return dict(self.artifacts) if self.artifacts is not None else None


class FakeEmulator:
    """Returns scripted controller outcomes in order; None once exhausted."""

    def __init__(self, outcomes: Sequence[Optional[ControllerInputOutcome]] = (), delay: float = 0):
        self.outcomes = list(outcomes)
        self.delay = delay
        self.requests: List[Dict[str, Any]] = []
        self.state_actions: List[Tuple[str, int]] = []
        self.closed = False

    async def post_controller_input(self, request: Dict[str, Any], controller_port: int = 0):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.outcomes.pop(0) if self.outcomes else None

    async def save_state_slot(self, slot: int) -> bool:
        self.state_actions.append(("save", slot))
        return True

    async def load_state_slot(self, slot: int) -> bool:
        self.state_actions.append(("load", slot))
        return True

    async def close(self) -> None:
        self.closed = True


ScriptStep = Union[BaseException, LlmResponse, Tuple[str, List[Tuple[str, Dict[str, Any]]]]]


class ScriptedProvider:
    """LlmProvider that replays a script.

    A step is an exception to raise, a ready LlmResponse, or
    `(text, [(tool_name, args), ...])`, returned as unexecuted tool calls.
    The last step repeats once the script runs out.
    """

    def __init__(self, steps: Sequence[ScriptStep], usage: Optional[TokenUsage] = None):
        self.steps = list(steps)
        self.usage = usage or TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15)
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, *, system_prompt, content, tools, temperature, max_output_tokens) -> LlmResponse:
        self.calls.append({"system_prompt": system_prompt, "content": list(content)})
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, LlmResponse):
            return step
        text, calls = step
        return LlmResponse(
            text=text,
            tool_calls=[ToolCall(name=name, arguments=json.dumps(args)) for name, args in calls],
            usage=TokenUsage(**vars(self.usage)),
        )


def make_png(color: str = "red", size: Tuple[int, int] = (4, 4)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def fake_store() -> FakeStateStore:
    return FakeStateStore()


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def boot_config_data() -> Dict[str, Any]:
    """Boot config document as sibling services write it (camelCase)."""
    return {
        "agentConfig": {
            "systemPrompt": "You are playing a GameCube game.",
            "llmProvider": "openai",
            "model": "gpt-4o",
            "maxIterations": 3,
            "temperature": 0.5,
            "maxOutputTokens": 1000,
            "contextHistorySize": 2,
            "longTermMemory": True,
            "gameContext": "Super Mario Sunshine, Delfino Plaza.",
            "task": {"name": "Collect a coin", "description": "Walk to the nearest coin and collect it."},
        },
        "testConfig": {
            "id": "test-123",
            "gameId": "GMSE01",
            "platform": "gamecube",
            "startStateFilename": "plaza.sav",
            "contextMemWatches": {"coins": {"address": "0x80578A5A", "size": 2}},
            "endStateMemWatches": {"goal": {"address": "0x80578A60", "size": 1}},
            "successCondition": {
                "expression": {"op": "==", "args": [{"input": "goal"}, 1]},
                "inputs": {"goal": {"type": "int"}},
            },
            "failCondition": {
                "expression": {"op": "<", "args": [{"input": "coins"}, 0]},
                "inputs": {"coins": {"type": "int"}},
            },
            "rewardCondition": {
                "expression": {"op": "*", "args": [{"input": "coins"}, 10]},
                "inputs": {"coins": {"type": "int"}},
            },
            "rewardDescription": "Ten points per coin",
        },
    }


@pytest.fixture
def boot_config(boot_config_data: Dict[str, Any]) -> BootConfig:
    return parse_boot_config(boot_config_data, "test-123")


def make_turn(iteration: int, text: str = "thinking", screenshot: Optional[str] = None, image: Optional[bytes] = None) -> Turn:
    timestamp = datetime(2024, 1, 1, 10, 0, iteration, tzinfo=timezone.utc)
    block = LogBlock(title=f"Iteration {iteration}")
    block.entries.append(LogEntry(text=f"{text} {iteration}", kind="message", timestamp=timestamp))
    if screenshot is not None:
        block.entries.append(
            LogEntry(
                text="Called wait",
                kind="tool-call",
                timestamp=timestamp,
                tool_name="wait",
                tool_input={"frames": 10},
                screenshot_name=screenshot,
                image=image,
                context_mem_watch_values={"coins": str(iteration)},
                end_state_mem_watch_values={"goal": "0"},
            )
        )
    return Turn(iteration=iteration, log_block=block)


@pytest.fixture
def sample_result() -> BenchmarkResult:
    turns = [make_turn(1, screenshot="1"), make_turn(2, screenshot="2")]
    return BenchmarkResult(
        test_id="test-123",
        condition_result="passed",
        started_at=datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc),
        finished_at=datetime(2024, 1, 1, 10, 0, 30, tzinfo=timezone.utc),
        success=True,
        fail=False,
        reward=20.0,
        iterations=2,
        token_usage=TokenUsage(input_tokens=200, output_tokens=40, reasoning_tokens=0, total_tokens=240),
        history=[HistorySlice.from_turn(t) for t in turns],
    )
