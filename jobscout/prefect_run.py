from __future__ import annotations

import argparse
import asyncio
from typing import Any, Dict, List, Optional, Sequence

from dotenv import load_dotenv
from loguru import logger
from prefect import flow, get_run_logger, task

from jobscout.config.settings import settings
from jobscout.common.logging_ctx import configure_logging
from jobscout.pipeline.errors import SetupError
from jobscout.runs import run_manager
from jobscout.runs.executor import execute_run, run_preflight

load_dotenv()


@task(name="Setup checks")
def _preflight_task(send_email: bool) -> str:
    return asyncio.run(run_preflight(settings, send_email=send_email))


@task(name="Evaluate listings")
def _execute_task(
    run_id: str,
    profile_text: str,
    field: str,
    max_pages: int,
    job_ids: List[str],
    send_email: bool,
    deadline_sec: Optional[float],
) -> Dict[str, Any]:
    return execute_run(
        run_id,
        profile_text=profile_text,
        field=field,
        max_pages=max_pages,
        job_ids=job_ids,
        send_email=send_email,
        deadline_sec=deadline_sec,
    )


@flow(name="Daily LinkedIn Evaluation")
def daily_evaluation_flow(
    field: Optional[str] = None,
    max_pages: Optional[int] = None,
    job_ids: Optional[List[str]] = None,
    send_email: Optional[bool] = None,
    deadline_sec: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Search (or take explicit job ids), resolve descriptions, score them against
    the profile, write the ranked report and optionally email it.
    """
    flow_logger = get_run_logger()
    field = field or settings.search_field
    max_pages = max_pages or settings.search_max_pages
    job_ids = list(job_ids or [])
    if send_email is None:
        send_email = settings.email_enabled

    profile_text = _preflight_task(send_email)
    run_id = run_manager.create_run_dir()
    flow_logger.info(f"Run {run_id}: field='{field}' pages={max_pages} ids={len(job_ids)} email={send_email}")

    status = _execute_task(run_id, profile_text, field, max_pages, job_ids, send_email, deadline_sec)
    if status.get("error"):
        flow_logger.warning(f"Run {run_id} finished with error: {status['error']}")
    else:
        flow_logger.info(f"Run {run_id} complete: {status.get('summary')}")
    return status


def _parse_cli_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Daily LinkedIn job fit evaluation.")
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Resolve, score and rank job listings.")
    run_parser.add_argument("--field", type=str, default=None, help="Search field, e.g. 'Software Engineer'.")
    run_parser.add_argument("--max-pages", type=int, default=None, help="Listing pages to collect.")
    run_parser.add_argument(
        "--job-id",
        dest="job_ids",
        action="append",
        default=[],
        help="Evaluate this job id instead of searching (repeatable).",
    )
    email_group = run_parser.add_mutually_exclusive_group()
    email_group.add_argument("--send-email", dest="send_email", action="store_true")
    email_group.add_argument("--no-send-email", dest="send_email", action="store_false")
    run_parser.set_defaults(send_email=None)
    run_parser.add_argument("--deadline-sec", type=float, default=None, help="Bound the whole run.")
    return parser.parse_args(argv)


def _cli_entry(argv: Optional[Sequence[str]] = None) -> None:
    args = _parse_cli_args(argv)
    configure_logging(settings.log_level)

    if args.command == "run":
        try:
            status = daily_evaluation_flow(
                field=args.field,
                max_pages=args.max_pages,
                job_ids=args.job_ids,
                send_email=args.send_email,
                deadline_sec=args.deadline_sec,
            )
        except SetupError as exc:
            logger.error("setup failed, nothing was scheduled: {}", exc)
            raise SystemExit(2) from exc
        if status.get("error"):
            raise SystemExit(1)
    else:
        raise ValueError(f"Unsupported command {args.command}")


if __name__ == "__main__":
    _cli_entry()
