"""Utility script to purge expired notification records from the database."""

from __future__ import annotations

import argparse

from fieldnotify.application.use_cases.audit_logs import summarize_audit_outcomes
from fieldnotify.application.use_cases.rate_limits import reset_recipient_budget
from fieldnotify.config import get_settings
from fieldnotify.domain.errors import NotificationError
from fieldnotify.infrastructure.database import SessionLocal, initialize_database
from fieldnotify.infrastructure.reaper import ExpiredRecordReaper
from fieldnotify.infrastructure.stores import (
    RatePolicy,
    SqlAuditLog,
    SqlDedupStore,
    SqlRateLimiter,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments for the purge."""

    parser = argparse.ArgumentParser(
        description="Purge expired dedup records and rate limit consumptions.",
    )
    parser.add_argument(
        "--reset-recipient",
        action="append",
        default=[],
        metavar="RECIPIENT_ID",
        help="Also forget every rate limit consumption of the recipient (repeatable)",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print the number of audit entries per outcome afterwards.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Run a single purge using the configured database."""

    args = parse_args(argv)
    settings = get_settings()

    initialize_database()

    dedup_store = SqlDedupStore(SessionLocal)
    rate_limiter = SqlRateLimiter(SessionLocal, RatePolicy.from_settings(settings))
    reaper = ExpiredRecordReaper(
        [dedup_store, rate_limiter], interval_seconds=settings.reaper_interval_seconds
    )

    try:
        removed = reaper.run_now()
        reset = sum(
            reset_recipient_budget(rate_limiter, recipient_id)
            for recipient_id in args.reset_recipient
        )
        summary = summarize_audit_outcomes(SqlAuditLog(SessionLocal)) if args.summary else {}
    except NotificationError as exc:
        raise SystemExit(f"Could not purge notification records: {exc}") from exc

    print(f"Expired records removed: {removed}")
    if args.reset_recipient:
        print(f"Rate limit consumptions reset: {reset}")
    if args.summary:
        for outcome, count in summary.items():
            print(f"  {outcome}: {count}")


if __name__ == "__main__":
    main()
