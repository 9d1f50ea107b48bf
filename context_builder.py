"""Assemble the ordered model input for one turn."""
from __future__ import annotations

import json
from typing import List, Optional, Sequence

from bench_types import AgentRuntimeState, ContentItem, ImageContent, LogEntry, TextContent, Turn
from config import BootConfig
from prompts import build_memory_block, build_reward_block, build_task_prompt, build_turn_header


def select_window(history: Sequence[Turn], size: int) -> List[Turn]:
    """Return the `size` most recent turns, oldest first."""
    if size <= 0 or not history:
        return []
    return list(history[-size:])


def render_tool_call(entry: LogEntry) -> str:
    """Deterministic text for a tool-call entry (stable key order)."""
    payload = json.dumps(entry.tool_input or {}, sort_keys=True, separators=(",", ":"))
    return f"Tool call: {entry.tool_name}\nInput: {payload}"


class ContextBuilder:
    """Turns bounded history plus static task text into model content.

    Order is fixed: history window, long-term memory (when enabled), task
    prompt, reward block (when a reward condition exists), latest screenshot
    (when one exists).
    """

    def __init__(self, boot_config: BootConfig):
        agent_config = boot_config.agent_config
        test_config = boot_config.test_config
        self.window_size = agent_config.context_history_size
        self.long_term_memory_enabled = agent_config.long_term_memory
        self.task_prompt = build_task_prompt(
            agent_config.game_context,
            agent_config.task.name,
            agent_config.task.description,
        )
        self.reward_configured = test_config.reward_condition is not None
        self.reward_description: Optional[str] = test_config.reward_description

    def _expand_turn(self, turn: Turn) -> List[ContentItem]:
        items: List[ContentItem] = [TextContent(build_turn_header(turn.log_block.title))]
        for entry in turn.log_block.entries:
            if entry.kind == "message":
                items.append(TextContent(entry.text))
            else:
                items.append(TextContent(render_tool_call(entry)))
                if entry.image is not None:
                    items.append(ImageContent(entry.image))
        return items

    def build(self, history: Sequence[Turn], state: AgentRuntimeState) -> List[ContentItem]:
        content: List[ContentItem] = []

        for turn in select_window(history, self.window_size):
            content.extend(self._expand_turn(turn))

        if self.long_term_memory_enabled:
            content.append(TextContent(build_memory_block(state.long_term_memory)))

        content.append(TextContent(self.task_prompt))

        if self.reward_configured:
            content.append(TextContent(build_reward_block(self.reward_description, state.reward)))

        if state.latest_screenshot is not None:
            content.append(ImageContent(state.latest_screenshot))

        return content
