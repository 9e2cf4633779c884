"""Job Matcher — CLI entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv


def setup_logging(log_level: str = "INFO") -> None:
    """Configure logging to both console and log file."""
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    run_date = datetime.now().strftime("%Y-%m-%d")
    log_file = log_dir / f"run_{run_date}.log"

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )
    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Job Matcher: résumé-driven job search, ranking and e-mail digest",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py submit --resume cv.pdf --email me@example.com \\
      --intent "Senior PM roles at AI-first startups in Bangalore"
  python main.py submit --resume cv.pdf --email me@example.com --intent "..." --queue-only
  python main.py run <run_id>                       # Execute a queued run
  python main.py status <run_id>
  python main.py results <run_id>
  python main.py cookie set --user u1 --value <li_at>
  python main.py cookie test --user u1
  python main.py cookie reset --user u1
  python main.py keygen                             # Print a new KMS_SECRET_KEY
        """,
    )
    parser.add_argument("--config", default="matcher.yaml", help="Path to settings file. Default: matcher.yaml")
    parser.add_argument("--log-level", default=None, help="Log level override (DEBUG, INFO, WARNING, ERROR)")

    sub = parser.add_subparsers(dest="command", required=True)

    submit = sub.add_parser("submit", help="Queue a run and (by default) execute it")
    submit.add_argument("--resume", required=True, help="Résumé file (.pdf, .docx or .txt)")
    submit.add_argument("--intent", required=True, help="What kind of job you are looking for")
    submit.add_argument("--email", required=True, help="Where to send the matches")
    submit.add_argument("--user", default=None, help="User id (needed for the LinkedIn session provider)")
    submit.add_argument("--role", default=None, help="Desired role")
    submit.add_argument("--companies", default=None, help="Company preferences")
    submit.add_argument("--location", default=None, help="Location preference")
    submit.add_argument("--remote", default=None, help="Remote preference")
    submit.add_argument("--queue-only", action="store_true", help="Create the run without executing it")

    run = sub.add_parser("run", help="Execute a queued run")
    run.add_argument("run_id")

    status = sub.add_parser("status", help="Show the status of a run")
    status.add_argument("run_id")

    results = sub.add_parser("results", help="List the stored top jobs of a run")
    results.add_argument("run_id")

    cookie = sub.add_parser("cookie", help="Manage the LinkedIn session cookie")
    cookie.add_argument("action", choices=["set", "test", "reset"])
    cookie.add_argument("--user", required=True, help="User id the cookie belongs to")
    cookie.add_argument("--value", default=None, help="li_at cookie value (for 'set')")

    sub.add_parser("keygen", help="Generate a new KMS_SECRET_KEY")
    return parser


async def _dispatch(args: argparse.Namespace, logger: logging.Logger) -> int:
    from jobmatch.config import load_settings
    from jobmatch.models.run import RunPreferences
    from jobmatch.service import JobMatchService

    service = JobMatchService.from_settings(load_settings(args.config))
    try:
        if args.command == "submit":
            run_id = service.submit(
                resume_path=args.resume,
                intent_text=args.intent,
                user_email=args.email,
                user_id=args.user,
                preferences=RunPreferences(
                    desired_role=args.role,
                    company_prefs=args.companies,
                    location_pref=args.location,
                    remote_pref=args.remote,
                ),
            )
            print(f"Run queued: {run_id}")
            if args.queue_only:
                return 0
            return await _execute(service, run_id, logger)

        if args.command == "run":
            return await _execute(service, args.run_id, logger)

        if args.command == "status":
            view = service.status(args.run_id)
            print(f"{view.run_id}: {view.status.value} ({view.jobs_found} jobs): {view.summary}")
            return 0

        if args.command == "results":
            rows = service.results(args.run_id)
            if not rows:
                print("No results stored for this run")
            for i, row in enumerate(rows, 1):
                print(f"{i:2d}. [{row.score:.2f}] {row.title} at {row.company} ({row.location or 'n/a'})")
                print(f"    {row.apply_url}")
            return 0

        if args.command == "cookie":
            if args.action == "set":
                await service.save_session_cookie(args.user, args.value or "")
                print("LinkedIn cookie stored")
            elif args.action == "test":
                result = await service.test_session_cookie(args.user)
                print(("OK: " if result.available else "FAILED: ") + result.message)
                return 0 if result.available else 1
            else:
                reset = service.reset_session_provider(args.user)
                print("Session provider reset" if reset else "No session provider for this user")
            return 0
    finally:
        await service.aclose()
    return 0


async def _execute(service, run_id: str, logger: logging.Logger) -> int:
    start_time = time.time()
    outcome = await service.execute(run_id)
    duration = time.time() - start_time

    logger.info("=" * 60)
    if outcome.success:
        logger.info("Run %s complete in %.1f seconds: %d jobs emailed", run_id, duration, outcome.jobs_found or 0)
    else:
        logger.error("Run %s failed after %.1f seconds: %s", run_id, duration, outcome.error)
    logger.info("=" * 60)
    return 0 if outcome.success else 1


def main() -> None:
    """Main CLI entrypoint for the Job Matcher."""
    args = build_parser().parse_args()

    # Load environment variables
    load_dotenv()

    if args.command == "keygen":
        from jobmatch.security.crypto import generate_key

        print(generate_key())
        return

    log_level = args.log_level or os.getenv("LOG_LEVEL", "INFO")
    setup_logging(log_level)

    logger = logging.getLogger("jobmatch")
    logger.info("=" * 60)
    logger.info("Job Matcher: %s", args.command)
    logger.info("=" * 60)

    from jobmatch.errors import JobMatchError

    try:
        code = asyncio.run(_dispatch(args, logger))
    except JobMatchError as e:
        logger.error("%s", e)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
