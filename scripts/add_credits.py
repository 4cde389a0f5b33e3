#!/usr/bin/env python3
"""
Grant credits to a user through the ledger.

Usage:
    python scripts/add_credits.py <user_id> <amount>
    python scripts/add_credits.py --email someone@example.com <amount>
    python scripts/add_credits.py <user_id> <amount> --reference stripe_cs_123
"""

import argparse
import logging
import sys
import uuid

from studio.core.database import SessionLocal, init_db
from studio.models import CreditAccount
from studio.services.ledger import Ledger

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("add_credits")


def resolve_user_id(email: str) -> str:
    db = SessionLocal()
    try:
        user_id = db.query(CreditAccount.user_id).filter(CreditAccount.email == email).scalar()
    finally:
        db.close()
    if user_id is None:
        logger.error(f"User not found: {email}")
        sys.exit(1)
    return user_id


def main():
    parser = argparse.ArgumentParser(description="Grant credits to a user")
    parser.add_argument("user_id", nargs="?", help="User id (omit when using --email)")
    parser.add_argument("amount", type=int, help="Credits to add")
    parser.add_argument("--email", help="Look the user up by email instead of id")
    parser.add_argument(
        "--reference",
        help="Payment reference; re-running with the same reference is a no-op"
    )
    args = parser.parse_args()

    if args.amount <= 0:
        parser.error("amount must be positive")
    if not args.user_id and not args.email:
        parser.error("either user_id or --email is required")

    init_db()
    user_id = resolve_user_id(args.email) if args.email else args.user_id

    ledger = Ledger()
    before = ledger.get_account(user_id)
    logger.info(f"Current balance for {user_id}: {before.balance if before else 'no account'}")

    txn = ledger.purchase(
        user_id,
        args.amount,
        reference=args.reference or f"admin_{uuid.uuid4().hex[:12]}",
        description=f"Admin grant of {args.amount} credits",
    )
    logger.info(f"Added {txn.credits_change} credits, new balance: {ledger.balance(user_id)}")


if __name__ == "__main__":
    main()
