#!/usr/bin/env python3
"""
Check every member's balance against the completed care records.

Usage:
  python scripts/verify_ledger.py
"""
from __future__ import annotations

import sys

from careledger.core.logs import configure_logging
from careledger.domain.errors import ConsistencyError
from careledger.services.member_service import MemberService


def main() -> int:
    configure_logging()
    svc = MemberService()
    problems = 0
    for member in svc.repository.list_members():
        try:
            svc.verify_member_ledger(member.id)
        except ConsistencyError as exc:
            problems += 1
            sys.stderr.write(f"MISMATCH {member.id}: {exc.message}\n")
    print(f"Checked ledger; {problems} inconsistent member(s)")
    return 1 if problems else 0


if __name__ == "__main__":
    raise SystemExit(main())
