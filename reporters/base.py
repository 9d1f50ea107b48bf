"""Base reporter interface for benchmark runs."""
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import List

from bench_types import BenchmarkResult


class ReportFormat(str, Enum):
    """Supported report formats."""
    NONE = "none"
    JSON = "json"
    JUNIT = "junit"
    ALL = "all"


class BaseReporter(ABC):
    """Abstract base class for report generators."""

    @abstractmethod
    def generate(self, result: BenchmarkResult, output_dir: Path) -> Path:
        """
        Generate a report for a single benchmark result.

        Args:
            result: Result of one benchmark run
            output_dir: Directory to write report to

        Returns:
            Path to the generated report file
        """
        pass

    @abstractmethod
    def generate_suite(self, results: List[BenchmarkResult], output_dir: Path) -> Path:
        """Generate a combined report for several benchmark results."""
        pass

    @property
    @abstractmethod
    def format(self) -> ReportFormat:
        """Return the report format this reporter generates."""
        pass


def reporters_for(output_format: str) -> List[BaseReporter]:
    """Instantiate the reporters selected by a configured output format."""
    from reporters.json_reporter import JSONReporter
    from reporters.junit import JUnitReporter

    fmt = ReportFormat(output_format)
    if fmt == ReportFormat.NONE:
        return []
    if fmt == ReportFormat.JSON:
        return [JSONReporter()]
    if fmt == ReportFormat.JUNIT:
        return [JUnitReporter()]
    return [JSONReporter(), JUnitReporter()]
