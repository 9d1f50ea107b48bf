"""Interpret one model response into a log block and updated agent state."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bench_types import (
    AgentRuntimeState,
    ControllerInputOutcome,
    EmulationStateOutcome,
    LlmResponse,
    LogBlock,
    LogEntry,
    MemoryNoteOutcome,
    ToolErrorOutcome,
    ToolResult,
)
from prompts import wrap_memory_note
from screenshot_resolver import ScreenshotResolver
from state_store import StateDocument, StateStore


def iteration_title(iteration: int) -> str:
    return f"Iteration {iteration}"


class TurnProcessor:
    """The only writer of AgentRuntimeState during a run.

    Entries are emitted in a fixed order: the assistant message, then one
    tool-call entry per tool result in response order. State-store failures
    are logged and never fail the turn.
    """

    def __init__(
        self,
        test_id: str,
        state: AgentRuntimeState,
        resolver: ScreenshotResolver,
        store: StateStore,
        logger: Optional[logging.Logger] = None,
    ):
        self.test_id = test_id
        self.state = state
        self.resolver = resolver
        self.store = store
        self.logger = logger or logging.getLogger("emu_turns")

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    async def _safe_update(self, document: StateDocument, fields: Dict[str, Any]) -> None:
        try:
            ok = await self.store.update(self.test_id, document, fields)
        except Exception as exc:
            self.logger.warning(f"Failed to persist {document.value}: {exc}")
            return
        if not ok:
            self.logger.warning(f"Failed to persist {document.value}")

    async def process(self, response: LlmResponse, iteration: int) -> LogBlock:
        block = LogBlock(title=iteration_title(iteration))
        block.entries.append(LogEntry(text=response.text, kind="message", timestamp=self._now()))

        self.state.token_usage.add(response.usage)

        for result in response.tool_results:
            entry = LogEntry(
                text=f"Called {result.tool_name}",
                kind="tool-call",
                timestamp=self._now(),
                tool_name=result.tool_name,
                tool_input=dict(result.input),
            )
            block.entries.append(entry)
            await self._apply_outcome(entry, result, iteration)

        await self._safe_update(
            StateDocument.AGENT_STATE,
            {
                "tokenUsage": self.state.token_usage.to_dict(),
                "longTermMemory": self.state.long_term_memory,
            },
        )
        return block

    async def _apply_outcome(self, entry: LogEntry, result: ToolResult, iteration: int) -> None:
        output = result.output
        if isinstance(output, ControllerInputOutcome):
            await self._apply_controller_outcome(entry, output, iteration)
        elif isinstance(output, MemoryNoteOutcome):
            self.state.long_term_memory += wrap_memory_note(output.note)
            entry.text = f"Recorded memory: {output.note}"
        elif isinstance(output, EmulationStateOutcome):
            status = "succeeded" if output.ok else "failed"
            entry.text = f"{output.action.title()} state slot {output.slot} {status}"
        elif isinstance(output, ToolErrorOutcome):
            entry.text = f"{result.tool_name} failed: {output.error}"
        else:
            self.logger.warning(f"Unhandled outcome type {type(output).__name__} from {result.tool_name}")

    async def _apply_controller_outcome(
        self, entry: LogEntry, output: ControllerInputOutcome, iteration: int
    ) -> None:
        if output.screenshot:
            entry.screenshot_name = output.screenshot
            image = await self.resolver.resolve(output.screenshot)
            if image is not None:
                entry.image = image
                self.state.latest_screenshot = image
            else:
                self.logger.warning(f"Screenshot {output.screenshot} unavailable; logging without image")

        context_values = output.context_mem_watch_values
        end_state_values = output.end_state_mem_watch_values
        if context_values is None and end_state_values is None:
            return

        context_values = dict(context_values or {})
        end_state_values = dict(end_state_values or {})
        # Wholesale replacement: values missing from this response are dropped.
        self.state.mem_watch_values = {**context_values, **end_state_values}
        entry.context_mem_watch_values = context_values
        entry.end_state_mem_watch_values = end_state_values

        await self._safe_update(
            StateDocument.MEM_WATCH_HISTORY,
            {
                str(iteration): {
                    "contextMemWatchValues": context_values,
                    "endStateMemWatchValues": end_state_values,
                    "timestamp": entry.timestamp.isoformat(),
                }
            },
        )
