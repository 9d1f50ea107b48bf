"""OpenAI-compatible provider call returning the model's requested tool calls."""
from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from openai import AsyncOpenAI

from bench_types import (
    ContentItem,
    ImageContent,
    LlmResponse,
    TextContent,
    TokenUsage,
    ToolCall,
)
from exceptions import LLMResponseError
from tools import ToolSet


class LlmProvider(Protocol):
    async def generate(
        self,
        *,
        system_prompt: str,
        content: Sequence[ContentItem],
        tools: ToolSet,
        temperature: float,
        max_output_tokens: int,
    ) -> LlmResponse: ...


def content_to_openai_parts(content: Sequence[ContentItem]) -> List[Dict[str, Any]]:
    parts: List[Dict[str, Any]] = []
    for item in content:
        if isinstance(item, TextContent):
            parts.append({"type": "text", "text": item.text})
        elif isinstance(item, ImageContent):
            encoded = base64.b64encode(item.data).decode("ascii")
            parts.append({"type": "image_url", "image_url": {"url": f"data:{item.mime_type};base64,{encoded}"}})
    return parts


def tools_to_openai_specs(tools: ToolSet) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": d["name"],
                "description": d["description"],
                "parameters": d["input_schema"],
            },
        }
        for d in tools.definitions()
    ]


def usage_from_response(usage: Any) -> TokenUsage:
    """Read reported usage; anything missing counts as zero."""
    if usage is None:
        return TokenUsage()
    details = getattr(usage, "completion_tokens_details", None)
    return TokenUsage(
        input_tokens=getattr(usage, "prompt_tokens", None) or 0,
        output_tokens=getattr(usage, "completion_tokens", None) or 0,
        reasoning_tokens=(getattr(details, "reasoning_tokens", None) or 0) if details is not None else 0,
        total_tokens=getattr(usage, "total_tokens", None) or 0,
    )


class OpenAIChatProvider:
    """One chat completion. Tool calls are returned, not executed."""

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.logger = logger or logging.getLogger("llm_provider")
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def generate(
        self,
        *,
        system_prompt: str,
        content: Sequence[ContentItem],
        tools: ToolSet,
        temperature: float,
        max_output_tokens: int,
    ) -> LlmResponse:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": content_to_openai_parts(content)},
            ],
            tools=tools_to_openai_specs(tools),
            temperature=temperature,
            max_tokens=max_output_tokens,
        )
        if not response.choices:
            raise LLMResponseError("Empty response from model")

        message = response.choices[0].message
        tool_calls = [
            ToolCall(name=call.function.name, arguments=call.function.arguments or "{}")
            for call in message.tool_calls or []
        ]
        self.logger.debug(f"Model requested {len(tool_calls)} tool call(s)")
        return LlmResponse(
            text=message.content or "",
            tool_calls=tool_calls,
            usage=usage_from_response(response.usage),
        )
