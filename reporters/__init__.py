"""Report generators for benchmark runs."""
from reporters.base import BaseReporter, ReportFormat, reporters_for
from reporters.json_reporter import JSONReporter
from reporters.junit import JUnitReporter

__all__ = [
    "BaseReporter",
    "ReportFormat",
    "JSONReporter",
    "JUnitReporter",
    "reporters_for",
]
