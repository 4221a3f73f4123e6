"""Credit ledger and balance accounting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Optional
import uuid

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.credit_balance import CreditBalance
from models.credit_ledger import CreditLedgerEntry

logger = logging.getLogger(__name__)

SIGNUP_BONUS = "signup_bonus"
SUBSCRIPTION_PURCHASE = "subscription_purchase"
RESTORE_PHOTO = "restore_photo"
EXPORT_PHOTO = "export_photo"
REFUND = "refund"

DEBIT_TYPES = frozenset({RESTORE_PHOTO, EXPORT_PHOTO})
CREDIT_TYPES = frozenset({SIGNUP_BONUS, SUBSCRIPTION_PURCHASE})

INSUFFICIENT_CREDITS = "Insufficient credits"


@dataclass
class LedgerResult:
    success: bool
    new_balance: int
    error: Optional[str] = None
    entry_id: Optional[str] = None


def serialize_entry(entry: CreditLedgerEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "userId": entry.user_id,
        "amount": entry.amount,
        "type": entry.entry_type,
        "description": entry.description,
        "relatedId": entry.related_id,
        "reversesEntryId": entry.reverses_entry_id,
        "balanceAfter": entry.balance_after,
        "createdAt": entry.created_at.isoformat() if entry.created_at else None,
    }


def _require_positive(amount: int) -> int:
    value = int(amount)
    if value <= 0:
        raise ValueError("amount must be greater than 0")
    return value


class CreditLedger:
    """Per-user credit balance backed by an append-only ledger.

    Balance mutations are single conditional UPDATE statements so that two
    concurrent debits cannot both pass the balance check. Each mutation and
    its ledger entry are committed in the same transaction, which keeps the
    sum of a user's entries equal to their balance.
    """

    def __init__(self, db: AsyncSession, *, signup_bonus: Optional[int] = None):
        self.db = db
        self.signup_bonus = max(
            int(settings.SIGNUP_BONUS_CREDITS if signup_bonus is None else signup_bonus),
            0,
        )

    async def _read_credits(self, user_id: str) -> Optional[int]:
        result = await self.db.execute(select(CreditBalance.credits).where(CreditBalance.user_id == user_id))
        value = result.scalar_one_or_none()
        return None if value is None else int(value)

    async def _fallback_balance(self, user_id: str) -> int:
        try:
            return int(await self._read_credits(user_id) or 0)
        except SQLAlchemyError as exc:
            logger.warning("Could not read credit balance for user %s: %s", user_id, exc)
            return 0

    def _append_entry(
        self,
        user_id: str,
        *,
        amount: int,
        entry_type: str,
        description: str,
        balance_after: Optional[int],
        related_id: Optional[str] = None,
        reverses_entry_id: Optional[str] = None,
    ) -> CreditLedgerEntry:
        entry = CreditLedgerEntry(
            id=str(uuid.uuid4()),
            user_id=user_id,
            amount=int(amount),
            entry_type=entry_type,
            description=description,
            related_id=related_id,
            reverses_entry_id=reverses_entry_id,
            balance_after=balance_after,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(entry)
        return entry

    async def _open_account(self, user_id: str) -> int:
        grant = self.signup_bonus
        self.db.add(
            CreditBalance(
                id=str(uuid.uuid4()),
                user_id=user_id,
                credits=grant,
                lifetime_credits_used=0,
                lifetime_credits_added=grant,
            )
        )
        if grant:
            self._append_entry(
                user_id,
                amount=grant,
                entry_type=SIGNUP_BONUS,
                description=f"Welcome bonus - {grant} free credits",
                balance_after=grant,
            )
        try:
            await self.db.commit()
        except IntegrityError:
            # Another request opened the account first; its bonus entry stands.
            await self.db.rollback()
            logger.info("Credit account for user %s was opened concurrently", user_id)
            return int(await self._read_credits(user_id) or 0)
        logger.info("Opened credit account for user %s with %s credits", user_id, grant)
        return grant

    async def get_balance(self, user_id: str) -> int:
        """Return current credits, opening the account with the signup grant if needed."""
        credits = await self._read_credits(user_id)
        if credits is None:
            return await self._open_account(user_id)
        return credits

    async def has_credits(self, user_id: str, amount: int) -> bool:
        return await self.get_balance(user_id) >= int(amount)

    async def debit(
        self,
        user_id: str,
        amount: int,
        entry_type: str,
        description: str,
        related_id: Optional[str] = None,
    ) -> LedgerResult:
        """Atomically take ``amount`` credits if the balance covers it."""
        if entry_type not in DEBIT_TYPES:
            raise ValueError(f"Unsupported debit type: {entry_type}")
        cost = _require_positive(amount)

        try:
            await self.get_balance(user_id)
            result = await self.db.execute(
                update(CreditBalance)
                .where(CreditBalance.user_id == user_id, CreditBalance.credits >= cost)
                .values(
                    credits=CreditBalance.credits - cost,
                    lifetime_credits_used=CreditBalance.lifetime_credits_used + cost,
                    updated_at=func.now(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.db.rollback()
                balance = await self._fallback_balance(user_id)
                return LedgerResult(success=False, new_balance=balance, error=INSUFFICIENT_CREDITS)

            new_balance = int(await self._read_credits(user_id) or 0)
            entry = self._append_entry(
                user_id,
                amount=-cost,
                entry_type=entry_type,
                description=description,
                balance_after=new_balance,
                related_id=related_id,
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("Error deducting %s credits from user %s", cost, user_id)
            return LedgerResult(
                success=False,
                new_balance=await self._fallback_balance(user_id),
                error="Failed to deduct credits",
            )

        logger.info("Debited %s credits from user %s (%s), balance=%s", cost, user_id, entry_type, new_balance)
        return LedgerResult(success=True, new_balance=new_balance, entry_id=entry.id)

    async def _increment(
        self,
        user_id: str,
        amount: int,
        *,
        entry_type: str,
        description: str,
        related_id: Optional[str],
        reverses_entry_id: Optional[str] = None,
        count_as_added: bool,
    ) -> LedgerResult:
        values: Dict[str, Any] = {
            "credits": CreditBalance.credits + amount,
            "updated_at": func.now(),
        }
        if count_as_added:
            values["lifetime_credits_added"] = CreditBalance.lifetime_credits_added + amount

        await self.get_balance(user_id)
        await self.db.execute(
            update(CreditBalance)
            .where(CreditBalance.user_id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        new_balance = int(await self._read_credits(user_id) or 0)
        entry = self._append_entry(
            user_id,
            amount=amount,
            entry_type=entry_type,
            description=description,
            balance_after=new_balance,
            related_id=related_id,
            reverses_entry_id=reverses_entry_id,
        )
        await self.db.commit()
        return LedgerResult(success=True, new_balance=new_balance, entry_id=entry.id)

    async def credit(
        self,
        user_id: str,
        amount: int,
        entry_type: str,
        description: str,
        related_id: Optional[str] = None,
    ) -> LedgerResult:
        """Add purchased or granted credits."""
        if entry_type not in CREDIT_TYPES:
            raise ValueError(f"Unsupported credit type: {entry_type}")
        grant = _require_positive(amount)

        try:
            result = await self._increment(
                user_id,
                grant,
                entry_type=entry_type,
                description=description,
                related_id=related_id,
                count_as_added=True,
            )
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("Error adding %s credits to user %s", grant, user_id)
            return LedgerResult(
                success=False,
                new_balance=await self._fallback_balance(user_id),
                error="Failed to add credits",
            )
        logger.info("Added %s credits to user %s (%s), balance=%s", grant, user_id, entry_type, result.new_balance)
        return result

    async def refund(
        self,
        user_id: str,
        amount: int,
        reason: str,
        related_id: Optional[str] = None,
        reverses_entry_id: Optional[str] = None,
    ) -> LedgerResult:
        """Return credits taken by a debit whose action did not complete."""
        credits = _require_positive(amount)

        try:
            result = await self._increment(
                user_id,
                credits,
                entry_type=REFUND,
                description=f"Refund: {reason}",
                related_id=related_id,
                reverses_entry_id=reverses_entry_id,
                count_as_added=False,
            )
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("Error refunding %s credits to user %s", credits, user_id)
            return LedgerResult(
                success=False,
                new_balance=await self._fallback_balance(user_id),
                error="Failed to refund credits",
            )
        logger.info("Refunded %s credits to user %s, balance=%s", credits, user_id, result.new_balance)
        return result

    async def get_history(self, user_id: str, limit: int = 50) -> List[CreditLedgerEntry]:
        """Ledger entries for a user, oldest first."""
        result = await self.db.execute(
            select(CreditLedgerEntry)
            .where(CreditLedgerEntry.user_id == user_id)
            .order_by(CreditLedgerEntry.created_at.asc())
            .limit(max(int(limit), 0))
        )
        return list(result.scalars().all())

    async def get_summary(self, user_id: str, limit: Optional[int] = None) -> Dict[str, Any]:
        credits = await self.get_balance(user_id)
        history = await self.get_history(
            user_id,
            limit=settings.CREDIT_HISTORY_LIMIT if limit is None else limit,
        )
        return {
            "credits": credits,
            "history": [serialize_entry(entry) for entry in history],
        }
