#!/usr/bin/env python3
"""
Run one notification job.

Intended to be invoked by cron (see SCHEDULED_JOBS in
backend.src.services.notification_jobs for the schedule) or by hand.

Usage:
    python -m backend.src.scripts.run_notification_job <job-type> [--user-id ID] [--manual] [--init-db]

Examples:
    # Cron entry for game reminders
    */15 * * * * python -m backend.src.scripts.run_notification_job game-reminders

    # Check a user's win streak after settlement
    python -m backend.src.scripts.run_notification_job win-streak-check --user-id 42

    # Local run against a fresh SQLite database
    NOTIFY_DB_URL=sqlite:///notify.db python -m backend.src.scripts.run_notification_job daily-digest --manual --init-db

    # Print the cron schedule
    python -m backend.src.scripts.run_notification_job --list

Exit codes:
    0   Job succeeded
    1   Job reported failure
    2   Invalid arguments
"""

import argparse
import signal
import sys
from typing import List, Optional


def signal_handler(signum, frame):
    """Handle CTRL+C gracefully."""
    print("\n\nOperation interrupted by user.")
    sys.exit(130)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    from backend.src.services.notification_jobs import NotificationJobType

    parser = argparse.ArgumentParser(
        description="Run a notification job.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Notes:
  - Cron runs are skipped when NOTIFICATION_SCHEDULER_ENABLED is false
  - --manual runs regardless of the scheduler switch
  - win-streak-check requires --user-id
        """
    )
    parser.add_argument(
        "job_type",
        nargs="?",
        choices=[t.value for t in NotificationJobType],
        help="Job to run",
    )
    parser.add_argument(
        "--user-id", "-u",
        type=int,
        default=None,
        help="Target user (win-streak-check only)",
    )
    parser.add_argument(
        "--manual",
        action="store_true",
        help="Mark the run as manually triggered",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables first (local SQLite runs)",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="Print the cron schedule and exit",
    )
    return parser.parse_args(argv)


def print_schedule() -> None:
    """Print the cron table."""
    from backend.src.services.notification_jobs import SCHEDULED_JOBS

    for job in SCHEDULED_JOBS:
        print(f"{job.cron:<15} {job.job_type.value:<24} {job.description}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    args = parse_args(argv)

    if args.list:
        print_schedule()
        return 0

    if not args.job_type:
        print("Error: job_type is required (use --list to see jobs)")
        return 2

    # Import after argument parsing so --help works without a database
    from backend.src.config.settings import get_settings
    from backend.src.db.database import SessionLocal, dispose_engine, init_db
    from backend.src.services.notification_jobs import (
        JobTrigger,
        NotificationJobData,
        NotificationJobType,
        build_scheduler,
        run_job,
    )
    from backend.src.utils.logging_config import init_logging

    init_logging()
    settings = get_settings()
    job_type = NotificationJobType(args.job_type)

    if job_type == NotificationJobType.WIN_STREAK_CHECK and args.user_id is None:
        print("Error: --user-id is required for win-streak-check")
        return 2

    if args.manual:
        trigger = JobTrigger.MANUAL
    elif job_type == NotificationJobType.WIN_STREAK_CHECK:
        trigger = JobTrigger.SETTLEMENT
    else:
        trigger = JobTrigger.SCHEDULED

    if args.init_db:
        init_db()

    db = SessionLocal()
    scheduler = None
    try:
        scheduler = build_scheduler(db, settings=settings)
        result = run_job(
            NotificationJobData(job_type=job_type, triggered_by=trigger, user_id=args.user_id),
            scheduler,
            scheduler_enabled=settings.scheduler_enabled,
        )
    finally:
        if scheduler is not None:
            scheduler.notification_service.push_service.close()
        db.close()
        dispose_engine()

    status = "OK" if result.success else "FAILED"
    print(
        f"[{status}] {job_type.value}: {result.message} "
        f"(processed={result.processed}, skipped={result.skipped})"
    )
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
