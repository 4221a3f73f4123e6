"""Credit-charged AI actions: restore and export.

Each run debits before calling the provider so an action is never free, and
compensates with a refund when the provider step fails. Persisting the
result on the photo happens after the credit is spent and is best-effort.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, Optional

from config import settings
from services.cancellation import CancellationToken
from services.credits import EXPORT_PHOTO, INSUFFICIENT_CREDITS, RESTORE_PHOTO, CreditLedger
from services.errors import DebitFailed, InsufficientCredits, PersistenceError
from services.freepik import FreepikTaskClient
from services.photos import PhotoStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaidAction:
    name: str
    entry_type: str
    description: str
    refund_reason: str
    insufficient_message: str
    cost: int
    photo_fields: Callable[[str], Dict[str, Any]]


@dataclass
class PaidActionResult:
    result_url: str
    task_id: str
    credits_remaining: int


RESTORE_ACTION = PaidAction(
    name="restore",
    entry_type=RESTORE_PHOTO,
    description="Photo restoration with Gemini 2.5 Flash",
    refund_reason="Photo restoration failed - credit refunded",
    insufficient_message="You need 1 credit to restore a photo",
    cost=max(int(settings.CREDIT_COST_RESTORE), 1),
    photo_fields=lambda url: {"restored": 1, "restored_url": url},
)

EXPORT_ACTION = PaidAction(
    name="export",
    entry_type=EXPORT_PHOTO,
    description="2x upscaling with Magnific Precision V2",
    refund_reason="4K export failed - credit refunded",
    insufficient_message="You need 1 credit to export in 4K quality",
    cost=max(int(settings.CREDIT_COST_EXPORT), 1),
    photo_fields=lambda url: {"exported": 1},
)


class PaidActionOrchestrator:
    def __init__(self, ledger: CreditLedger, photos: PhotoStore):
        self.ledger = ledger
        self.photos = photos

    async def run(
        self,
        user_id: str,
        action: PaidAction,
        client: FreepikTaskClient,
        image_url: str,
        photo_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PaidActionResult:
        balance = await self.ledger.get_balance(user_id)
        if balance < action.cost:
            raise InsufficientCredits(balance, action.insufficient_message)

        debit = await self.ledger.debit(
            user_id,
            action.cost,
            action.entry_type,
            action.description,
            related_id=photo_id,
        )
        if not debit.success:
            if debit.error == INSUFFICIENT_CREDITS:
                raise InsufficientCredits(debit.new_balance, action.insufficient_message)
            raise DebitFailed(debit.error or "Failed to deduct credits")

        try:
            task_id = await client.submit(image_url)
            result_urls = await client.wait_for_completion(task_id, cancel_token=cancel_token)
        except Exception as exc:
            logger.warning("%s for user %s failed, refunding %s credit(s): %s", action.name, user_id, action.cost, exc)
            refund = await self.ledger.refund(
                user_id,
                action.cost,
                action.refund_reason,
                related_id=photo_id,
                reverses_entry_id=debit.entry_id,
            )
            if not refund.success:
                logger.error(
                    "Refund of %s credit(s) for user %s after failed %s did not apply",
                    action.cost,
                    user_id,
                    action.name,
                )
            raise

        result_url = result_urls[0]
        if photo_id:
            try:
                await self.photos.update(photo_id, user_id, **action.photo_fields(result_url))
            except PersistenceError:
                logger.exception("Could not record %s result on photo %s", action.name, photo_id)

        return PaidActionResult(
            result_url=result_url,
            task_id=task_id,
            credits_remaining=debit.new_balance,
        )
