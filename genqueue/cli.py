import argparse
import asyncio
import json
import logging
import sys

from genqueue.core.config import settings
from genqueue.core.exceptions import AuthenticationError
from genqueue.core.logging import setup_logging
from genqueue.main import run_worker
from genqueue.models.job import JobRecord
from genqueue.schemas.job import JobStatusResponse, JobSubmitRequest
from genqueue.services.generation_client_factory import create_generation_client
from genqueue.services.job_intake import create_job
from genqueue.services.model_selection import detect_provider_family
from genqueue.storage.job_store import JobStore
from genqueue.tasks.janitor import Janitor

logger = logging.getLogger(__name__)


def _add_credentials(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--username", "-u", required=True, help="Provider account name")
    parser.add_argument("--token", "-t", required=True, help="Provider access token")
    parser.add_argument("--refresh-token", help="Provider refresh token")
    parser.add_argument("--token-type", choices=["spark", "sogni"], help="Force the provider family")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="genqueue", description="Image generation job queue worker"
    )
    parser.add_argument("--log-level", type=str, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", help="Subcommands")

    # WORKER
    worker_parser = subparsers.add_parser("worker", help="Poll the job directory and process queued jobs")
    worker_parser.add_argument(
        "--once", action="store_true", help="Run a single poll, wait for dispatched jobs, then exit"
    )

    # SUBMIT
    submit_parser = subparsers.add_parser("submit", help="Enqueue a job for local image files")
    submit_parser.add_argument("files", nargs="+", help="Input image files")
    submit_parser.add_argument("--prompt", "-p", required=True, help="Positive prompt")
    submit_parser.add_argument("--negative-prompt", help="Negative prompt")
    submit_parser.add_argument("--strength", type=float, help="Starting image strength (0-1)")
    submit_parser.add_argument("--prompt-strength", type=float, help="Guidance scale")
    submit_parser.add_argument("--steps", type=int, help="Inference steps")
    submit_parser.add_argument("--model", dest="model_id", help="Explicit model id")
    submit_parser.add_argument("--size", dest="image_size", help="Target size, e.g. 1024x768")
    _add_credentials(submit_parser)

    # STATUS
    status_parser = subparsers.add_parser("status", help="Show a job's status and outputs")
    status_parser.add_argument("job_id", help="Job identifier")

    # CLEANUP
    subparsers.add_parser("cleanup", help="Delete jobs and uploads past the retention age")

    # MODELS
    models_parser = subparsers.add_parser("models", help="List models available to an account")
    _add_credentials(models_parser)

    return parser


async def _list_models(args) -> list:
    probe = JobRecord(
        job_id="models-probe",
        files=["-"],
        username=args.username,
        user_token=args.token,
        refresh_token=args.refresh_token,
        token_type=args.token_type,
    )
    client = create_generation_client(detect_provider_family(probe))
    try:
        await client.authenticate(args.username, args.token, args.refresh_token)
        return await client.list_available_models()
    finally:
        await client.close()


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    store = JobStore(settings.jobs_dir)

    if args.command == "worker":
        try:
            asyncio.run(run_worker(once=args.once))
        except KeyboardInterrupt:
            pass

    elif args.command == "submit":
        request = JobSubmitRequest(
            prompt=args.prompt,
            negative_prompt=args.negative_prompt,
            strength=args.strength,
            prompt_strength=args.prompt_strength,
            steps=args.steps,
            model_id=args.model_id,
            image_size=args.image_size,
            username=args.username,
            user_token=args.token,
            refresh_token=args.refresh_token,
            token_type=args.token_type,
        )
        try:
            record = create_job(store, request, args.files, settings.uploads_dir)
        except (ValueError, FileNotFoundError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(json.dumps({"ok": True, "jobId": record.job_id}))

    elif args.command == "status":
        try:
            record = store.read(args.job_id)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        if record is None:
            print(json.dumps({"error": "job not found", "jobId": args.job_id}))
            sys.exit(1)
        print(JobStatusResponse.from_record(record).model_dump_json(by_alias=True, indent=2))

    elif args.command == "cleanup":
        report = Janitor(store, settings.uploads_dir, settings.retention_ms).sweep()
        print(
            f"Deleted {report.deleted_jobs} jobs, {report.deleted_uploads} uploads, "
            f"{report.deleted_artifacts} stale files ({report.failures} failures)"
        )

    elif args.command == "models":
        try:
            models = asyncio.run(_list_models(args))
        except AuthenticationError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(json.dumps({"models": models}, indent=2))

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
