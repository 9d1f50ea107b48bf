"""Turn-loop orchestrator for an agent playing a game in an emulator."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from bench_types import (
    AgentRuntimeState,
    BenchmarkResult,
    ConditionOutcome,
    ConditionResult,
    HistorySlice,
    Turn,
)
from conditions import ConditionAdapter, ConditionEvaluator
from config import BootConfig
from context_builder import ContextBuilder
from llm_invoker import LlmInvoker
from log_sink import LoggerService, LogNamespace
from screenshot_resolver import ScreenshotResolver
from state_store import ArtifactSource, StateDocument, StateStore
from tools import ToolSet
from turn_processor import TurnProcessor

INITIAL_SCREENSHOT_NAME = "0"


class AgentStatus(str, Enum):
    INITIALIZING = "initializing"
    ITERATING = "iterating"
    COMPLETED = "completed"
    FAILED = "failed"


def format_error(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


class EmuAgent:
    """Runs the benchmark turn loop for one test."""

    def __init__(
        self,
        boot_config: BootConfig,
        *,
        invoker: LlmInvoker,
        tools: ToolSet,
        store: StateStore,
        artifact_source: ArtifactSource,
        log_sink: Optional[LoggerService] = None,
        evaluator: Optional[ConditionEvaluator] = None,
        screenshot_retries: int = 2,
        screenshot_retry_delay: float = 0.5,
        logger: Optional[logging.Logger] = None,
    ):
        self.boot_config = boot_config
        self.agent_config = boot_config.agent_config
        self.test_id = boot_config.test_config.id
        self.invoker = invoker
        self.tools = tools
        self.store = store
        self.logger = logger or logging.getLogger("emu_agent")
        self.log_sink = log_sink or LoggerService(self.test_id, store, logger=self.logger)

        self.state = AgentRuntimeState()
        self.resolver = ScreenshotResolver(
            self.test_id,
            artifact_source,
            self.state.screenshot_cache,
            retries=screenshot_retries,
            retry_delay=screenshot_retry_delay,
            logger=self.logger,
        )
        self.turn_processor = TurnProcessor(self.test_id, self.state, self.resolver, store, logger=self.logger)
        self.context_builder = ContextBuilder(boot_config)
        self.conditions = ConditionAdapter(boot_config.test_config, evaluator, logger=self.logger)

        self.history: List[Turn] = []
        self.status = AgentStatus.INITIALIZING
        self.last_condition = ConditionOutcome()
        self.result: Optional[BenchmarkResult] = None

    async def _dev_log(self, message: str) -> None:
        self.logger.info(message)
        try:
            await self.log_sink.log(LogNamespace.DEV, message)
        except Exception as exc:
            self.logger.warning(f"Dev log failed: {exc}")

    async def _log_turn(self, turn: Turn) -> None:
        try:
            ok = await self.log_sink.log(LogNamespace.AGENT, turn.log_block, immediate_flush=True)
        except Exception as exc:
            self.logger.warning(f"Failed to log iteration {turn.iteration}: {exc}")
            return
        if not ok:
            self.logger.warning(f"Log sink did not accept iteration {turn.iteration}")

    async def _run_turn(self, iteration: int) -> ConditionOutcome:
        content = self.context_builder.build(self.history, self.state)
        response = await self.invoker.invoke(
            system_prompt=self.agent_config.system_prompt,
            content=content,
            tools=self.tools,
            temperature=self.agent_config.temperature,
            max_output_tokens=self.agent_config.max_output_tokens,
        )
        # Outside the invoker: tool side effects are never timed out or retried.
        response.tool_results = await self.tools.execute_calls(response.tool_calls)
        block = await self.turn_processor.process(response, iteration)
        turn = Turn(iteration=iteration, log_block=block)
        self.history.append(turn)
        await self._log_turn(turn)
        return self.conditions.evaluate(self.state.mem_watch_values)

    async def run_benchmark(self) -> BenchmarkResult:
        """Iterate until a success/fail condition fires or the budget is spent.

        Any exception escaping a turn is recorded as an `error` result and
        then re-raised to the caller.
        """
        started_at = datetime.now(timezone.utc)
        max_iterations = self.agent_config.max_iterations
        await self._dev_log(f"Starting benchmark for test {self.test_id}")

        try:
            initial = await self.resolver.resolve(INITIAL_SCREENSHOT_NAME)
            if initial is not None:
                self.state.latest_screenshot = initial
            else:
                self.logger.info("No initial screenshot available; starting without one")

            self.status = AgentStatus.ITERATING
            iteration = 1
            while iteration <= max_iterations:
                await self._dev_log(f"Iteration {iteration}/{max_iterations}")
                outcome = await self._run_turn(iteration)
                self.last_condition = outcome
                if outcome.success_result or outcome.fail_result:
                    break
                if outcome.reward is not None:
                    self.state.reward = outcome.reward
                iteration += 1
        except Exception as exc:
            self.status = AgentStatus.FAILED
            self.logger.error(f"Benchmark aborted: {format_error(exc)}")
            await self._finish(started_at, "error", error_details=format_error(exc))
            raise

        self.status = AgentStatus.COMPLETED
        condition_result: ConditionResult = "passed" if self.last_condition.success_result else "failed"
        result = await self._finish(started_at, condition_result)
        await self._dev_log(f"Benchmark completed after {len(self.history)} iteration(s): {condition_result}")
        return result

    async def _finish(
        self,
        started_at: datetime,
        condition_result: ConditionResult,
        error_details: str = "",
    ) -> BenchmarkResult:
        outcome = self.last_condition if condition_result != "error" else ConditionOutcome()
        result = BenchmarkResult(
            test_id=self.test_id,
            condition_result=condition_result,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            success=outcome.success_result,
            fail=outcome.fail_result,
            reward=outcome.reward if outcome.reward is not None else self.state.reward,
            error_details=error_details,
            iterations=len(self.history),
            token_usage=self.state.token_usage,
            history=[HistorySlice.from_turn(turn) for turn in self.history],
        )
        self.result = result
        await self._persist_result(result)
        return result

    async def _persist_result(self, result: BenchmarkResult) -> None:
        try:
            ok = await self.store.update(self.test_id, StateDocument.RESULT, result.to_dict())
            if not ok:
                self.logger.error(f"Could not persist result for test {self.test_id}")
            await self.log_sink.flush()
        except Exception as exc:
            self.logger.error(f"Failed to persist result for test {self.test_id}: {exc}")
