"""JSON report generator for benchmark runs."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from bench_types import BenchmarkResult
from reporters.base import BaseReporter, ReportFormat


class JSONReporter(BaseReporter):
    """Generate machine-readable JSON reports."""

    @property
    def format(self) -> ReportFormat:
        return ReportFormat.JSON

    def _result_to_dict(self, result: BenchmarkResult) -> Dict[str, Any]:
        data = result.to_dict()
        data["durationSeconds"] = round(result.duration_seconds, 3)
        return data

    def generate(self, result: BenchmarkResult, output_dir: Path) -> Path:
        """Generate JSON report for a single benchmark result."""
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        target = output_dir / f"{result.test_id}-{timestamp}.json"

        report_data = {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "reportVersion": "1.0",
            "tests": [self._result_to_dict(result)],
            "summary": self._summary([result]),
        }

        target.write_text(json.dumps(report_data, indent=2), encoding="utf-8")
        return target

    def _summary(self, results: List[BenchmarkResult]) -> Dict[str, Any]:
        passed = sum(1 for r in results if r.condition_result == "passed")
        failed = sum(1 for r in results if r.condition_result == "failed")
        errors = sum(1 for r in results if r.condition_result == "error")
        return {
            "total": len(results),
            "passed": passed,
            "failed": failed,
            "errors": errors,
            "passRate": round(passed / len(results) * 100, 2) if results else 0.0,
            "totalIterations": sum(r.iterations for r in results),
            "totalTokens": sum(r.token_usage.total_tokens for r in results),
        }

    def generate_suite(self, results: List[BenchmarkResult], output_dir: Path) -> Path:
        """Generate combined JSON report for several benchmark results."""
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        target = output_dir / f"suite-{timestamp}.json"

        durations = [r.duration_seconds for r in results]
        summary = self._summary(results)
        summary["totalDurationSeconds"] = round(sum(durations), 2)
        summary["avgDurationSeconds"] = round(sum(durations) / len(durations), 2) if durations else 0

        report_data = {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "reportVersion": "1.0",
            "tests": [self._result_to_dict(r) for r in results],
            "summary": summary,
            "unsuccessful": [
                {"testId": r.test_id, "conditionResult": r.condition_result, "errorDetails": r.error_details}
                for r in results if not r.passed
            ],
        }

        target.write_text(json.dumps(report_data, indent=2), encoding="utf-8")
        return target
