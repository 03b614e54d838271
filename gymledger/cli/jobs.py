"""CLI entry point for the daily membership jobs.

Runs auto-renewal and then the expiration scan for one gym, at most once
per civil day unless --force is given. Meant to be invoked by cron or a
systemd timer.

Usage:
    python -m gymledger.cli.jobs --gym-id 1
    python -m gymledger.cli.jobs --gym-id 1 --job expiration --date 2024-03-01 --force

Exit Codes:
    0 - Success: every selected job completed (or had already run today)
    1 - Failure: a job failed or reported per-item errors

Logging:
    LOG_LEVEL to both stdout and LOG_FILE (default logs/gymledger.log)
"""

import argparse
import logging
import sys

from gymledger.services import SessionLocal, settings
from gymledger.services.date_utils import safe_to_date
from gymledger.services.logging import setup_server_logging
from gymledger.services.scheduler_service import JOB_ORDER, SchedulerService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gymledger-jobs", description="Run daily membership renewal/expiration jobs"
    )
    parser.add_argument("--gym-id", type=int, required=True, help="Gym to process")
    parser.add_argument(
        "--job",
        action="append",
        choices=JOB_ORDER,
        help="Job to run (repeatable; default: all, renewal first)",
    )
    parser.add_argument("--date", help="Run date YYYY-MM-DD (default: today in GYM_TIMEZONE)")
    parser.add_argument("--force", action="store_true", help="Run even if already run for the date")
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the daily jobs CLI.

    Returns:
        Exit code: 0 for success, 1 for failure
    """
    args = build_parser().parse_args(argv)
    setup_server_logging(settings.log_file, settings.log_level)

    run_date = None
    if args.date:
        run_date = safe_to_date(args.date)
        if run_date is None:
            logger.error(f"Invalid --date value: {args.date}")
            return 1

    try:
        db = SessionLocal()
        try:
            result = SchedulerService(db).run_daily_jobs(
                args.gym_id, today_date=run_date, force=args.force, jobs=args.job
            )
        finally:
            db.close()
    except KeyboardInterrupt:
        logger.warning("Daily jobs interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Daily jobs failed: {e}", exc_info=True)
        return 1

    for outcome in result.outcomes:
        logger.info(
            f"{outcome.job_name}: {outcome.status}, {outcome.processed_count} processed, "
            f"{len(outcome.errors)} errors"
        )
        for error in outcome.errors:
            logger.warning(f"{outcome.job_name}: {error}")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
