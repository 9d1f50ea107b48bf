"""Run one EmuBench job against a local state root"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from config import load_config
from exceptions import EmuBenchError
from job_service import JobController
from state_store import JsonFileStateStore


logging.basicConfig(
    level=logging.INFO,
    format='[%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)


async def main() -> int:
    parser = argparse.ArgumentParser(description="Run an EmuBench agent job locally")
    parser.add_argument(
        "--job-id",
        type=str,
        required=True,
        help="Id of the job document under <state-root>/_jobs/"
    )
    parser.add_argument(
        "--state-root",
        type=Path,
        default=None,
        help="Root directory of the state store"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config file (JSON or YAML)"
    )
    parser.add_argument(
        "--output-format",
        choices=["none", "json", "junit", "all"],
        default=None,
        help="Report format to write after the run"
    )
    parser.add_argument(
        "--reports-dir",
        type=Path,
        default=None,
        help="Directory for reports"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=None,
        help="Enable debug logging"
    )

    args = parser.parse_args()

    try:
        settings = load_config(
            args.config,
            cli_overrides={
                "state_root": args.state_root,
                "output_format": args.output_format,
                "reports_dir": args.reports_dir,
                "verbose": args.verbose,
            },
        )
    except EmuBenchError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    if settings.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    store = JsonFileStateStore(settings.state_root)
    job = await store.read_job(args.job_id)
    if not job:
        logger.error(f"No job {args.job_id} under {settings.state_root}")
        return 2

    controller = JobController(store, settings, logger=logger)
    try:
        result = await controller.handle_incoming_job({**job, "id": args.job_id})
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    if result is None:
        logger.error("Job did not produce a result")
        return 1
    logger.info(
        f"Result: {result.condition_result} after {result.iterations} iteration(s), "
        f"reward={result.reward}, tokens={result.token_usage.total_tokens}"
    )
    return 0 if result.passed else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
