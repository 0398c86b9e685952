#!/usr/bin/env python3
"""
Retry undelivered notification emails (outbox).

Usage:
  python scripts/deliver_notifications.py [--max-attempts 3]
"""
from __future__ import annotations

import argparse
import logging

from careledger.core.logs import configure_logging
from careledger.services.notification_service import NotificationService

logger = logging.getLogger("careledger.scripts.deliver_notifications")


def main() -> int:
    ap = argparse.ArgumentParser(description="Deliver pending notification emails")
    ap.add_argument("--max-attempts", type=int, default=None, help="Skip rows already tried this many times")
    args = ap.parse_args()

    configure_logging()
    delivered, failed = NotificationService().deliver_pending(args.max_attempts)
    logger.info("Delivered %s notification(s); %s still pending", delivered, failed)
    return 0 if failed == 0 else 2


if __name__ == "__main__":
    raise SystemExit(main())
