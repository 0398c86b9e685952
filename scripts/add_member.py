#!/usr/bin/env python3
"""
Register a member directly in the database.

Usage:
  python scripts/add_member.py --name "Kim" --phone 010-1234-5678 [--email a@b.c] [--deposit 1000000] [--tier GOLD]
"""
from __future__ import annotations

import argparse
import sys

from careledger.core.context import OperatorContext, Role
from careledger.core.logs import configure_logging
from careledger.services.member_service import MemberService


def main() -> None:
    ap = argparse.ArgumentParser(description="Register a member")
    ap.add_argument("--name", required=True, help="Member name")
    ap.add_argument("--phone", required=True, help="Phone number; its digits become the member id")
    ap.add_argument("--email", default="", help="Contact email for notifications")
    ap.add_argument("--deposit", type=int, default=0, help="Initial deposit in won")
    ap.add_argument("--tier", help="Explicit tier (SILVER/GOLD/ROYAL); derived from deposit when omitted")
    ap.add_argument("--contract-type", default="MEMBERSHIP", help="Contract type for the initial deposit (MEMBERSHIP/WAIVER/PT_AGREEMENT)")
    ap.add_argument("--operator", default="cli", help="Operator name recorded in the audit log")
    args = ap.parse_args()

    configure_logging()
    ctx = OperatorContext(name=args.operator, role=Role.ADMIN)
    member = MemberService().register_member(
        ctx,
        name=args.name,
        phone=args.phone,
        email=args.email,
        deposit=args.deposit,
        tier=args.tier,
        contract_type=args.contract_type,
    )
    print("OK: member registered")
    print(f"  ID: {member.id}")
    print(f"  Tier: {member.tier}")
    print(f"  Remaining: {member.remaining:,}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # pragma: no cover - CLI usage
        sys.stderr.write(f"Error: {exc}\n")
        raise SystemExit(1)
