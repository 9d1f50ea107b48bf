"""JUnit XML report generator for CI integration."""
from __future__ import annotations

import html
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from bench_types import BenchmarkResult
from reporters.base import BaseReporter, ReportFormat


class JUnitReporter(BaseReporter):
    """Generate JUnit XML reports; failed runs map to failures, aborted runs to errors."""

    @property
    def format(self) -> ReportFormat:
        return ReportFormat.JUNIT

    def _escape_xml(self, text: str) -> str:
        return html.escape(str(text), quote=True)

    def _format_timestamp(self, dt: datetime) -> str:
        return dt.strftime("%Y-%m-%dT%H:%M:%S")

    def _last_messages(self, result: BenchmarkResult, count: int = 3) -> List[str]:
        lines = []
        for history_slice in result.history[-count:]:
            lines.append(f"--- {history_slice.title} ---")
            for item in history_slice.items:
                data = item.to_dict()
                if data["type"] == "message":
                    lines.append(str(data["text"])[:300])
        return lines

    def _build_testcase_xml(self, result: BenchmarkResult) -> str:
        name = self._escape_xml(result.test_id)
        lines = [
            f'    <testcase classname="emubench.agent" name="{name}" time="{result.duration_seconds:.3f}">'
        ]
        summary = (
            f"Iterations: {result.iterations}\n"
            f"Reward: {result.reward if result.reward is not None else 'N/A'}\n"
            f"Total tokens: {result.token_usage.total_tokens}"
        )

        if result.condition_result == "failed":
            message = "Fail condition met" if result.fail else "Iteration budget exhausted"
            lines.append(f'      <failure message="{message}" type="BenchmarkFailure"><![CDATA[')
            lines.append(summary)
            lines.extend(self._last_messages(result))
            lines.append("]]></failure>")
        elif result.condition_result == "error":
            message = self._escape_xml(result.error_details)
            lines.append(f'      <error message="{message}" type="BenchmarkError"><![CDATA[')
            lines.append(summary)
            lines.append("]]></error>")
        else:
            lines.append("      <system-out><![CDATA[")
            lines.append(summary)
            lines.append("]]></system-out>")

        lines.append("    </testcase>")
        return "\n".join(lines)

    def generate(self, result: BenchmarkResult, output_dir: Path) -> Path:
        """Generate JUnit XML report for a single benchmark result."""
        return self.generate_suite([result], output_dir)

    def generate_suite(self, results: List[BenchmarkResult], output_dir: Path) -> Path:
        """Generate combined JUnit XML report for several benchmark results."""
        output_dir.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)
        target = output_dir / f"junit-{now.strftime('%Y%m%d-%H%M%S')}.xml"

        failures = sum(1 for r in results if r.condition_result == "failed")
        errors = sum(1 for r in results if r.condition_result == "error")
        total_time = sum(r.duration_seconds for r in results)
        earliest = min((r.started_at for r in results), default=now)

        lines = ['<?xml version="1.0" encoding="UTF-8"?>']
        lines.append(
            f'<testsuite name="EmuBench Agent Runs" '
            f'tests="{len(results)}" '
            f'failures="{failures}" '
            f'errors="{errors}" '
            f'skipped="0" '
            f'time="{total_time:.3f}" '
            f'timestamp="{self._format_timestamp(earliest)}">'
        )
        lines.append("  <properties>")
        lines.append('    <property name="reporter" value="emubench-junit"/>')
        lines.append(f'    <property name="generated_at" value="{now.isoformat()}"/>')
        lines.append("  </properties>")

        for result in results:
            lines.append(self._build_testcase_xml(result))

        lines.append("</testsuite>")

        target.write_text("\n".join(lines), encoding="utf-8")
        return target
