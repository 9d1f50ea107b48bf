"""One model call under a hard timeout and a bounded retry budget."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from tenacity import AsyncRetrying, RetryCallState, RetryError, stop_after_attempt, wait_none
from tenacity.wait import wait_base

from bench_types import ContentItem, LlmResponse
from exceptions import LlmInvocationFailed, ModelTimeoutError
from llm_provider import LlmProvider
from tools import ToolSet

DEFAULT_TIMEOUT_SECONDS = 45.0
DEFAULT_MAX_ATTEMPTS = 3


class LlmInvoker:
    """Races each provider call against a timeout and retries failed attempts.

    Only the model call runs under the timeout; the returned tool calls are
    executed by the caller, so a response that came back is never retried.
    The wait strategy is pluggable; the default is no wait.
    """

    def __init__(
        self,
        provider: LlmProvider,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        wait: Optional[wait_base] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.provider = provider
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.wait = wait or wait_none()
        self.logger = logger or logging.getLogger("llm_invoker")

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self.logger.warning(
            f"LLM attempt {retry_state.attempt_number}/{self.max_attempts} failed: {exc!r}; retrying"
        )

    async def _call_once(
        self,
        system_prompt: str,
        content: Sequence[ContentItem],
        tools: ToolSet,
        temperature: float,
        max_output_tokens: int,
    ) -> LlmResponse:
        try:
            return await asyncio.wait_for(
                self.provider.generate(
                    system_prompt=system_prompt,
                    content=content,
                    tools=tools,
                    temperature=temperature,
                    max_output_tokens=max_output_tokens,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ModelTimeoutError(self.timeout) from exc

    async def invoke(
        self,
        *,
        system_prompt: str,
        content: Sequence[ContentItem],
        tools: ToolSet,
        temperature: float,
        max_output_tokens: int,
    ) -> LlmResponse:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            before_sleep=self._log_retry,
            reraise=False,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._call_once(
                        system_prompt, content, tools, temperature, max_output_tokens
                    )
        except RetryError as exc:
            cause = exc.last_attempt.exception()
            self.logger.error(f"LLM invocation failed after {self.max_attempts} attempts: {cause!r}")
            raise LlmInvocationFailed(self.max_attempts, cause) from cause
        return response
