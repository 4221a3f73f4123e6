"""Grant credits to a user by email.

Usage: python scripts/add_credits.py --email someone@example.com --credits 10

A user without a credit account gets one holding exactly the granted amount;
the signup bonus is not added on top.
"""

import argparse
import asyncio
import sys
import os

# Add parent dir to path to find config/database
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.ext.asyncio import AsyncSession

from database import async_session_maker, engine
from services.credits import SIGNUP_BONUS, CreditLedger, LedgerResult
from services.users import get_user_by_email


async def grant_credits(db: AsyncSession, email: str, credits: int) -> LedgerResult:
    user = await get_user_by_email(db, email)
    if not user:
        raise LookupError(f"User with email {email} not found")

    ledger = CreditLedger(db, signup_bonus=0)
    before = await ledger.get_balance(user.id)
    result = await ledger.credit(user.id, credits, SIGNUP_BONUS, "Admin credit addition")
    if result.success:
        print(f"✅ Updated credits for {email} (ID: {user.id}): {before} → {result.new_balance}")
    return result


async def add_credits(email: str, credits: int) -> int:
    try:
        async with async_session_maker() as db:
            result = await grant_credits(db, email, credits)
    except LookupError as exc:
        print(f"❌ {exc}")
        return 1
    finally:
        await engine.dispose()

    if not result.success:
        print(f"❌ Error adding credits: {result.error}")
        return 1
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", required=True)
    parser.add_argument("--credits", type=int, default=10)
    args = parser.parse_args()
    if args.credits <= 0:
        parser.error("--credits must be greater than 0")
    return asyncio.run(add_credits(args.email, args.credits))


if __name__ == "__main__":
    sys.exit(main())
