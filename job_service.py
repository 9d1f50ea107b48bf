"""Job lifecycle: readiness polling, agent construction, and finalization."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from agent import EmuAgent, format_error
from api_client import ControlPlaneClient
from bench_types import BenchmarkResult
from config import AgentConfig, BootConfig, ServiceSettings, parse_boot_config
from emulator import EmulationService
from exceptions import (
    ConfigurationError,
    EmulatorUnavailableError,
    LifecycleError,
    StateWriteError,
    TestNotReadyError,
)
from llm_invoker import LlmInvoker
from llm_provider import LlmProvider, OpenAIChatProvider
from reporters import reporters_for
from state_store import ArtifactSource, DirectoryArtifactSource, StateDocument, StateStore
from tools import ToolSet

EMULATOR_READY = "emulator-ready"
TERMINAL_EMULATOR_STATUSES = frozenset({"error", "finished"})


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


ProviderFactory = Callable[[AgentConfig, ServiceSettings], LlmProvider]
EmulatorFactory = Callable[[str, str], EmulationService]
ControlPlaneFactory = Callable[[str], ControlPlaneClient]


def default_provider_factory(agent_config: AgentConfig, settings: ServiceSettings) -> LlmProvider:
    provider = agent_config.llm_provider
    return OpenAIChatProvider(
        agent_config.model,
        api_key=settings.api_key_for(provider),
        base_url=settings.base_url_for(provider),
    )


class JobController:
    """Bridges the turn loop to the job queue, emulator and control plane.

    `handle_incoming_job` never raises: every failure ends in the job being
    marked `error` and the control plane being told the test is over.
    """

    def __init__(
        self,
        store: StateStore,
        settings: ServiceSettings,
        artifact_source: Optional[ArtifactSource] = None,
        provider_factory: ProviderFactory = default_provider_factory,
        emulator_factory: Optional[EmulatorFactory] = None,
        control_plane_factory: Optional[ControlPlaneFactory] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.settings = settings
        self.logger = logger or logging.getLogger("emu_jobs")
        self.artifact_source = artifact_source or DirectoryArtifactSource(settings.state_root)
        self.provider_factory = provider_factory
        self.emulator_factory = emulator_factory or (
            lambda uri, token: EmulationService(uri, token, logger=self.logger)
        )
        self.control_plane_factory = control_plane_factory or (
            lambda auth_token: ControlPlaneClient(settings.api_base_url, auth_token, logger=self.logger)
        )
        self._sleep = sleep

    async def _update_job(self, job_id: Optional[str], fields: Dict[str, Any]) -> None:
        if not job_id:
            self.logger.warning("Job has no id; status not persisted")
            return
        if not await self.store.update_job(job_id, fields):
            self.logger.warning(f"Failed to update job {job_id} with {fields}")

    async def _probe(self, test_id: str, control_plane: ControlPlaneClient) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """Return (emulator status, emulator uri, credential) for one readiness check."""
        emulator_state = await self.store.read(test_id, StateDocument.EMULATOR_STATE)
        shared_state = await self.store.read(test_id, StateDocument.SHARED_STATE)
        if not emulator_state or not shared_state:
            raise LifecycleError("Could not read emulator state or shared state")
        exchange_token = shared_state.get("exchangeToken")
        if not exchange_token:
            raise LifecycleError("No exchange token yet")
        credential = await control_plane.attempt_token_exchange(test_id, exchange_token)
        return emulator_state.get("status"), shared_state.get("emulatorUri"), credential

    async def wait_for_test_ready(self, test_id: str, control_plane: ControlPlaneClient) -> Tuple[str, str]:
        """Poll until the emulator is ready, published, and a credential is exchanged.

        Returns (emulator uri, credential). A terminal emulator status aborts
        the poll at once.
        """
        retries = self.settings.readiness_retries
        for attempt in range(1, retries + 1):
            try:
                status, emulator_uri, credential = await self._probe(test_id, control_plane)
            except Exception as exc:
                self.logger.warning(f"Test {test_id} not available yet ({attempt}/{retries}): {exc}")
                await self._sleep(self.settings.readiness_error_delay_seconds)
                continue

            if status == EMULATOR_READY and emulator_uri and credential:
                self.logger.info(f"Test {test_id} ready")
                return emulator_uri, credential
            if status in TERMINAL_EMULATOR_STATUSES:
                raise EmulatorUnavailableError(status, test_id)

            self.logger.info(f"Waiting for test {test_id} to be ready; current status: {status}")
            await self._sleep(self.settings.readiness_delay_seconds)

        raise TestNotReadyError(test_id, retries)

    async def _mark_running(self, test_id: str) -> None:
        documents = (StateDocument.TEST_STATE, StateDocument.EMULATOR_STATE, StateDocument.AGENT_STATE)
        for document in documents:
            if await self.store.read(test_id, document) is None:
                raise LifecycleError(f"Could not read {document.value}", {"test_id": test_id})

        for document in documents:
            ok = await self.store.update(test_id, document, {"status": "running"})
            if ok:
                continue
            if document == StateDocument.AGENT_STATE:
                self.logger.warning(f"Could not mark agent state running for test {test_id}")
            else:
                raise StateWriteError(document.value, test_id)

    def build_agent(self, boot_config: BootConfig, emulator: EmulationService) -> EmuAgent:
        agent_config = boot_config.agent_config
        invoker = LlmInvoker(
            self.provider_factory(agent_config, self.settings),
            timeout=self.settings.llm_timeout_seconds,
            max_attempts=self.settings.llm_max_attempts,
            logger=self.logger,
        )
        tools = ToolSet(
            emulator,
            memory_enabled=agent_config.long_term_memory,
            save_states_enabled=agent_config.allow_save_states,
            logger=self.logger,
        )
        return EmuAgent(
            boot_config,
            invoker=invoker,
            tools=tools,
            store=self.store,
            artifact_source=self.artifact_source,
            screenshot_retries=self.settings.screenshot_retries,
            screenshot_retry_delay=self.settings.screenshot_retry_delay_seconds,
            logger=self.logger,
        )

    async def handle_incoming_job(self, job: Dict[str, Any]) -> Optional[BenchmarkResult]:
        job_id = job.get("id")
        await self._update_job(job_id, {"status": JobStatus.RUNNING.value})

        auth_token = job.get("authToken")
        test_id = job.get("testId")
        control_plane: Optional[ControlPlaneClient] = None
        emulator: Optional[EmulationService] = None
        agent: Optional[EmuAgent] = None
        error: Optional[BaseException] = None

        try:
            if not auth_token or not job.get("testPath") or not test_id:
                raise ConfigurationError("Job is missing authToken, testPath or testId", {"job_id": job_id})
            control_plane = self.control_plane_factory(auth_token)

            boot_config = parse_boot_config(await self.store.read(test_id, StateDocument.BOOT_CONFIG), test_id)
            emulator_uri, credential = await self.wait_for_test_ready(test_id, control_plane)
            await self._mark_running(test_id)

            emulator = self.emulator_factory(emulator_uri, credential)
            agent = self.build_agent(boot_config, emulator)
            await agent.run_benchmark()
            self.logger.info(f"Test {test_id} finished")
        except Exception as exc:
            error = exc
            self.logger.error(f"Job {job_id} failed: {format_error(exc)}")
        finally:
            await self._finalize(job_id, test_id, control_plane, error)
            await self._close(control_plane, emulator)

        result = agent.result if agent is not None else None
        if result is not None:
            self._write_reports(result)
        return result

    async def _finalize(
        self,
        job_id: Optional[str],
        test_id: Optional[str],
        control_plane: Optional[ControlPlaneClient],
        error: Optional[BaseException],
    ) -> None:
        if control_plane is not None and test_id:
            try:
                await control_plane.end_test(test_id)
            except Exception as exc:
                self.logger.error(f"Could not end test {test_id}: {exc}")

        if test_id:
            try:
                status = "error" if error is not None else "finished"
                if not await self.store.update(test_id, StateDocument.AGENT_STATE, {"status": status}):
                    self.logger.warning(f"Could not write final agent status for test {test_id}")
            except Exception as exc:
                self.logger.error(f"Could not write final agent status for test {test_id}: {exc}")

        fields: Dict[str, Any] = {"status": JobStatus.COMPLETED.value}
        if error is not None:
            fields = {"status": JobStatus.ERROR.value, "error": format_error(error)}
        try:
            await self._update_job(job_id, fields)
        except Exception as exc:
            self.logger.error(f"Could not write final status for job {job_id}: {exc}")

    async def _close(self, *clients: Any) -> None:
        for client in clients:
            if client is None:
                continue
            try:
                await client.close()
            except Exception as exc:
                self.logger.warning(f"Failed to close {type(client).__name__}: {exc}")

    def _write_reports(self, result: BenchmarkResult) -> None:
        reporting = self.settings.reporting
        for reporter in reporters_for(reporting.output_format):
            try:
                path = reporter.generate(result, reporting.reports_folder)
                self.logger.info(f"{reporter.format.value} report written to {path}")
            except OSError as exc:
                self.logger.warning(f"Could not write {reporter.format.value} report: {exc}")
