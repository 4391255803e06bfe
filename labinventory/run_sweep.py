#!/usr/bin/env python
"""
Lab Inventory Notification Sweep
================================
Run one notification sweep and exit. Intended to be invoked by cron or any
other scheduler.

Usage:
    labinventory-sweep                     # Sweep as of today
    labinventory-sweep --today 2025-01-15  # Sweep as of a given date
    labinventory-sweep --no-lease          # Skip the overlap guard

Exit status is 0 on success, 1 if any scan failed, 2 if another sweep
holds the lease.
"""

import argparse
import logging
import sys

from labinventory.config import configure, get_settings
from labinventory.exceptions import SweepInProgressError
from labinventory.notification_service import NotificationGenerator
from labinventory.session import close_db, init_db
from labinventory.utils import parse_date

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Generate low stock, expiration and maintenance notifications"
    )
    parser.add_argument(
        '--today',
        type=parse_date,
        default=None,
        help='Reference date as YYYY-MM-DD (default: today)'
    )
    parser.add_argument(
        '--database-url',
        default=None,
        help='SQLAlchemy database URL (default: DATABASE_URL or SQLite in the package folder)'
    )
    parser.add_argument(
        '--no-lease',
        action='store_true',
        help='Do not take the sweep lease (single-instance deployments)'
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.no_lease:
        settings = configure(settings, sweep_lease_enabled=False)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    init_db(args.database_url or settings.database_url)
    try:
        result = NotificationGenerator(settings).run_sweep(args.today)
    except SweepInProgressError as e:
        logger.warning(str(e))
        return 2
    finally:
        close_db()

    for notification_type, count in result.generated.items():
        print(f"  {notification_type}: {count}")
    for notification_type, error in result.errors.items():
        print(f"  {notification_type}: FAILED ({error})", file=sys.stderr)
    return 0 if result.ok else 1


if __name__ == '__main__':
    sys.exit(main())
