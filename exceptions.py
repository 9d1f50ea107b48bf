"""Custom exception hierarchy for the EmuBench agent."""
from __future__ import annotations

from typing import Any, Optional


class EmuBenchError(Exception):
    """Base exception for all EmuBench agent errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# LLM-related exceptions
class LLMError(EmuBenchError):
    """Base exception for LLM/model-related errors."""

    pass


class ModelTimeoutError(LLMError):
    """Raised when a single model call exceeds its time budget."""

    def __init__(self, timeout: float):
        super().__init__(f"Model call timed out after {timeout}s", {"timeout": timeout})
        self.timeout = timeout


class LLMResponseError(LLMError):
    """Raised when the provider returns a response that cannot be used."""

    def __init__(self, message: str, response: Optional[str] = None):
        details = {"response_preview": response[:200] if response else None}
        super().__init__(message, details)
        self.response = response


class LlmInvocationFailed(LLMError):
    """Raised once every attempt at a model call has failed."""

    def __init__(self, attempts: int, cause: Optional[BaseException] = None):
        details: dict[str, Any] = {"attempts": attempts}
        if cause is not None:
            details["cause"] = f"{type(cause).__name__}: {cause}"
        super().__init__(f"LLM invocation failed after {attempts} attempt(s)", details)
        self.attempts = attempts
        self.cause = cause


# Tool-related exceptions
class ToolError(EmuBenchError):
    """Base exception for game-control tool errors."""

    pass


class ToolInputError(ToolError):
    """Raised when the model supplies arguments a tool cannot accept."""

    def __init__(self, message: str, tool_name: Optional[str] = None):
        details = {"tool_name": tool_name} if tool_name else {}
        super().__init__(message, details)
        self.tool_name = tool_name


class UnknownToolError(ToolError):
    """Raised when the model calls a tool that is not in the tool set."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}", {"tool_name": tool_name})
        self.tool_name = tool_name


# Condition exceptions
class ConditionError(EmuBenchError):
    """Base exception for success/fail/reward condition errors."""

    pass


class ConditionEvaluationError(ConditionError):
    """Raised when a condition expression cannot be evaluated."""

    def __init__(self, message: str, expression: Any = None):
        details = {"expression": expression} if expression is not None else {}
        super().__init__(message, details)
        self.expression = expression


# Configuration exceptions
class ConfigurationError(EmuBenchError):
    """Raised when configuration is invalid."""

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """Raised when a required config file is not found."""

    def __init__(self, file_path: str):
        super().__init__(f"Configuration file not found: {file_path}", {"file_path": file_path})
        self.file_path = file_path


class BootConfigError(ConfigurationError):
    """Raised when the boot config for a test is missing or malformed."""

    def __init__(self, message: str, test_id: Optional[str] = None):
        details = {"test_id": test_id} if test_id else {}
        super().__init__(message, details)
        self.test_id = test_id


# Lifecycle exceptions
class LifecycleError(EmuBenchError):
    """Base exception for job/test lifecycle errors."""

    pass


class TestNotReadyError(LifecycleError):
    """Raised when the emulator never became ready within the poll budget."""

    __test__ = False

    def __init__(self, test_id: str, attempts: int):
        super().__init__(
            f"Test not ready after {attempts} readiness checks",
            {"test_id": test_id, "attempts": attempts},
        )
        self.test_id = test_id
        self.attempts = attempts


class EmulatorUnavailableError(LifecycleError):
    """Raised when the emulator reports a terminal status before becoming ready."""

    def __init__(self, status: str, test_id: Optional[str] = None):
        details = {"status": status}
        if test_id:
            details["test_id"] = test_id
        super().__init__("Something wrong with test, cannot proceed", details)
        self.status = status
        self.test_id = test_id


class StateWriteError(LifecycleError):
    """Raised when a lifecycle-critical state write is rejected."""

    def __init__(self, document: str, test_id: Optional[str] = None):
        details = {"document": document}
        if test_id:
            details["test_id"] = test_id
        super().__init__(f"Could not update {document}", details)
        self.document = document
        self.test_id = test_id
