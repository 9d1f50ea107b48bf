"""Typed objects for benchmark turns, agent state and results."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

LogKind = Literal["message", "tool-call"]
ConditionResult = Literal["passed", "failed", "error"]


@dataclass
class TextContent:
    """A text item of the model input."""

    text: str


@dataclass
class ImageContent:
    """An image item of the model input."""

    data: bytes = field(repr=False)
    mime_type: str = "image/png"


ContentItem = Union[TextContent, ImageContent]


@dataclass
class LogEntry:
    """One externally visible record inside a turn."""

    text: str
    kind: LogKind
    timestamp: datetime
    tool_name: Optional[str] = None
    tool_input: Optional[Dict[str, Any]] = None
    screenshot_name: Optional[str] = None
    # Resolved screenshot; kept in memory for context building, never persisted.
    image: Optional[bytes] = field(default=None, repr=False)
    context_mem_watch_values: Optional[Dict[str, str]] = None
    end_state_mem_watch_values: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {}
        if self.tool_name is not None:
            metadata["toolName"] = self.tool_name
            metadata["toolInput"] = self.tool_input or {}
        if self.screenshot_name is not None:
            metadata["screenshotName"] = self.screenshot_name
        if self.context_mem_watch_values is not None:
            metadata["contextMemWatchValues"] = self.context_mem_watch_values
        if self.end_state_mem_watch_values is not None:
            metadata["endStateMemWatchValues"] = self.end_state_mem_watch_values
        return {
            "text": self.text,
            "type": self.kind,
            "timestamp": self.timestamp.isoformat(),
            "metadata": metadata,
        }


@dataclass
class LogBlock:
    """Titled, ordered group of log entries."""

    title: str
    entries: List[LogEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "logs": [e.to_dict() for e in self.entries]}


@dataclass(frozen=True)
class Turn:
    """One loop iteration: an LLM call plus its tool executions."""

    iteration: int
    log_block: LogBlock


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: "TokenUsage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.reasoning_tokens += other.reasoning_tokens
        self.total_tokens += other.total_tokens

    def to_dict(self) -> Dict[str, int]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "reasoningTokens": self.reasoning_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class AgentRuntimeState:
    """Live state of one run, shared by reference between turn components."""

    latest_screenshot: Optional[bytes] = field(default=None, repr=False)
    reward: Optional[float] = None
    screenshot_cache: Dict[str, bytes] = field(default_factory=dict, repr=False)
    mem_watch_values: Dict[str, str] = field(default_factory=dict)
    long_term_memory: str = ""
    token_usage: TokenUsage = field(default_factory=TokenUsage)


# Tool outcomes: a closed union, one variant per kind of tool effect.
@dataclass
class ControllerInputOutcome:
    """Emulator response to a controller input or wait."""

    screenshot: Optional[str] = None
    context_mem_watch_values: Optional[Dict[str, str]] = None
    end_state_mem_watch_values: Optional[Dict[str, str]] = None


@dataclass
class MemoryNoteOutcome:
    note: str


@dataclass
class EmulationStateOutcome:
    action: Literal["save", "load"]
    slot: int
    ok: bool


@dataclass
class ToolErrorOutcome:
    error: str


ToolOutcome = Union[ControllerInputOutcome, MemoryNoteOutcome, EmulationStateOutcome, ToolErrorOutcome]


@dataclass
class ToolResult:
    """A tool call with its executed outcome."""

    tool_name: str
    input: Dict[str, Any]
    output: ToolOutcome


@dataclass
class ToolCall:
    """A tool call as requested by the model, not yet executed."""

    name: str
    arguments: str = "{}"


@dataclass
class LlmResponse:
    """Model reply. `tool_results` is filled once `tool_calls` have run."""

    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_results: List[ToolResult] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class ConditionOutcome:
    """Result of evaluating success/fail/reward against memory watches."""

    success_result: bool = False
    fail_result: bool = False
    reward: Optional[float] = None


# Persisted history shape
@dataclass
class ScreenshotItem:
    screenshot_name: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "screenshot",
            "screenshotName": self.screenshot_name,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class MessageItem:
    text: str
    kind: LogKind
    timestamp: datetime
    tool_name: Optional[str] = None
    tool_input: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": "message",
            "kind": self.kind,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.tool_name is not None:
            data["toolName"] = self.tool_name
            data["toolInput"] = self.tool_input or {}
        return data


@dataclass
class MemWatchItem:
    timestamp: datetime
    context_mem_watch_values: Dict[str, str] = field(default_factory=dict)
    end_state_mem_watch_values: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "memory-watch",
            "contextMemWatchValues": self.context_mem_watch_values,
            "endStateMemWatchValues": self.end_state_mem_watch_values,
            "timestamp": self.timestamp.isoformat(),
        }


HistoryItem = Union[ScreenshotItem, MessageItem, MemWatchItem]


@dataclass
class HistorySlice:
    """Persisted decomposition of one turn's log block."""

    iteration: int
    title: str
    items: List[HistoryItem] = field(default_factory=list)

    @classmethod
    def from_turn(cls, turn: Turn) -> "HistorySlice":
        items: List[HistoryItem] = []
        for entry in turn.log_block.entries:
            items.append(
                MessageItem(
                    text=entry.text,
                    kind=entry.kind,
                    timestamp=entry.timestamp,
                    tool_name=entry.tool_name,
                    tool_input=entry.tool_input,
                )
            )
            if entry.screenshot_name is not None:
                items.append(ScreenshotItem(screenshot_name=entry.screenshot_name, timestamp=entry.timestamp))
            if entry.context_mem_watch_values is not None or entry.end_state_mem_watch_values is not None:
                items.append(
                    MemWatchItem(
                        timestamp=entry.timestamp,
                        context_mem_watch_values=dict(entry.context_mem_watch_values or {}),
                        end_state_mem_watch_values=dict(entry.end_state_mem_watch_values or {}),
                    )
                )
        return cls(iteration=turn.iteration, title=turn.log_block.title, items=items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration": self.iteration,
            "title": self.title,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass
class BenchmarkResult:
    """Terminal artifact of one benchmark run."""

    test_id: str
    condition_result: ConditionResult
    started_at: datetime
    finished_at: datetime
    success: bool = False
    fail: bool = False
    reward: Optional[float] = None
    error_details: str = ""
    iterations: int = 0
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    history: List[HistorySlice] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.finished_at - self.started_at).total_seconds())

    @property
    def passed(self) -> bool:
        return self.condition_result == "passed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "testId": self.test_id,
            "conditionResult": self.condition_result,
            "successResult": self.success,
            "failResult": self.fail,
            "reward": self.reward,
            "errorDetails": self.error_details,
            "iterations": self.iterations,
            "tokenUsage": self.token_usage.to_dict(),
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat(),
            "history": [s.to_dict() for s in self.history],
        }
