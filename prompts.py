"""Prompt text for the EmuBench agent"""
from __future__ import annotations

from typing import Optional

MEMORY_OPEN = "<memory>"
MEMORY_CLOSE = "</memory>"


def wrap_memory_note(note: str) -> str:
    """Wrap a memory note so notes stay separable inside long-term memory."""
    return f"{MEMORY_OPEN}\n{note.strip()}\n{MEMORY_CLOSE}\n"


def build_memory_block(long_term_memory: str) -> str:
    body = long_term_memory.strip() or "(no notes yet)"
    return f"Long-term memory (notes you recorded earlier):\n{body}"


def build_task_prompt(game_context: str, task_name: str, task_description: str) -> str:
    """Static task definition repeated every turn."""
    lines: list[str] = []
    if game_context.strip():
        lines.append(game_context.strip())
        lines.append("")
    lines.append(f"Task: {task_name}")
    lines.append(f"Description: {task_description}")
    return "\n".join(lines)


def build_reward_block(reward_description: Optional[str], reward: Optional[float]) -> str:
    lines = [f"Reward function: {reward_description or 'not described'}"]
    lines.append(f"Current reward: {reward if reward is not None else 'not yet computed'}")
    return "\n".join(lines)


def build_turn_header(title: str) -> str:
    return f"=== {title} ==="
