"""HTTP event receiver: accepts job events and runs them in the background."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

import uvicorn
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from config import load_config
from exceptions import EmuBenchError
from job_service import JobController
from state_store import JsonFileStateStore, StateStore

logger = logging.getLogger("emu_server")

EVENT_HEADERS = ("type", "subject", "id", "time")


def job_id_from_subject(subject: Optional[str]) -> str:
    """The job id is the last path segment of the event subject."""
    job_id = (subject or "").rstrip("/").split("/")[-1]
    if not job_id:
        raise ValueError("No document ID found in path")
    return job_id


def create_app(controller: JobController, store: StateStore) -> Starlette:
    async def health(request: Request) -> Response:
        return PlainTextResponse("OK")

    async def receive_event(request: Request) -> Response:
        event = {name: request.headers.get(f"ce-{name}") for name in EVENT_HEADERS}
        logger.info(f"Event received: {event}")

        task = None
        try:
            job_id = job_id_from_subject(event["subject"])
            job = await store.read_job(job_id)
            if not job:
                raise LookupError(f"No job found for document ID {job_id}")
            task = BackgroundTask(controller.handle_incoming_job, {**job, "id": job.get("id") or job_id})
        except (ValueError, LookupError) as exc:
            logger.error(f"Error processing event: {exc}")

        # The event source retries on non-2xx, so always acknowledge.
        return PlainTextResponse("OK", background=task)

    async def not_found(request: Request, exc: HTTPException) -> Response:
        return JSONResponse(
            {
                "error": "EMUBENCH_AGENT_404",
                "message": "Endpoint not found in emubench-agent service",
                "path": request.url.path,
                "method": request.method,
            },
            status_code=404,
        )

    routes = [
        Route("/", endpoint=health, methods=["GET"]),
        Route("/", endpoint=receive_event, methods=["POST"]),
    ]
    return Starlette(routes=routes, exception_handlers={404: not_found})


def main() -> None:
    parser = argparse.ArgumentParser(description="EmuBench agent service")
    parser.add_argument("--config", type=Path, default=None, help="Path to config file (JSON or YAML)")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on (defaults to $PORT or 8080)")
    parser.add_argument("--state-root", type=Path, default=None, help="Root directory of the state store")
    parser.add_argument("--verbose", action="store_true", default=None, help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s")

    try:
        settings = load_config(
            args.config,
            cli_overrides={"port": args.port, "state_root": args.state_root, "verbose": args.verbose},
        )
    except EmuBenchError as exc:
        logger.error(f"Configuration error: {exc}")
        raise SystemExit(2) from exc

    if settings.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    store = JsonFileStateStore(settings.state_root)
    controller = JobController(store, settings)
    app = create_app(controller, store)

    logger.info(f"Agent listening on port {settings.port}")
    uvicorn.run(app, host=args.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
