"""Restore and export endpoints (one credit each)."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Request
import httpx
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, get_current_user
from routers.rate_limit import rate_limit
from services.cancellation import CancellationToken
from services.credits import CreditLedger
from services.errors import DebitFailed, InsufficientCredits, InvalidInputError, PaidActionFailed
from services.freepik import FreepikTaskClient, RestorationClient, UpscaleClient
from services.paid_actions import (
    EXPORT_ACTION,
    RESTORE_ACTION,
    PaidAction,
    PaidActionOrchestrator,
    PaidActionResult,
)
from services.photos import PhotoStore

router = APIRouter()
logger = logging.getLogger(__name__)

DISCONNECT_WATCH_TASK = "paid-action-disconnect-watch"


class PaidActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    photo_id: Optional[str] = Field(default=None, alias="photoId")


async def get_restoration_client() -> AsyncIterator[FreepikTaskClient]:
    async with httpx.AsyncClient(timeout=settings.FREEPIK_HTTP_TIMEOUT_SECONDS) as http:
        yield RestorationClient(http)


async def get_upscale_client() -> AsyncIterator[FreepikTaskClient]:
    async with httpx.AsyncClient(timeout=settings.FREEPIK_HTTP_TIMEOUT_SECONDS) as http:
        yield UpscaleClient(http)


def get_orchestrator(db: AsyncSession = Depends(get_db)) -> PaidActionOrchestrator:
    return PaidActionOrchestrator(CreditLedger(db), PhotoStore(db))


async def _watch_disconnect(request: Request, token: CancellationToken) -> None:
    interval = max(float(settings.DISCONNECT_CHECK_INTERVAL_SECONDS), 0.1)
    while not token.cancelled:
        if await request.is_disconnected():
            token.cancel("Client disconnected")
            return
        await asyncio.sleep(interval)


async def _run_paid_action(
    request: Request,
    body: PaidActionRequest,
    auth: AuthContext,
    action: PaidAction,
    client: FreepikTaskClient,
    orchestrator: PaidActionOrchestrator,
    verb: str,
) -> PaidActionResult:
    image_url = (body.image_url or "").strip()
    if not image_url:
        raise InvalidInputError("imageUrl is required")

    token = CancellationToken(settings.PAID_ACTION_DEADLINE_SECONDS)
    watcher = asyncio.create_task(_watch_disconnect(request, token), name=DISCONNECT_WATCH_TASK)
    try:
        return await orchestrator.run(
            auth.user_id,
            action,
            client,
            image_url,
            photo_id=body.photo_id or None,
            cancel_token=token,
        )
    except (InsufficientCredits, DebitFailed):
        raise
    except Exception as exc:
        logger.exception("%s endpoint error for user %s", action.name, auth.user_id)
        raise PaidActionFailed(f"Failed to {verb} photo", str(exc) or "Unknown error") from exc
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher


@router.post("/restore")
async def restore_photo(
    request: Request,
    body: PaidActionRequest,
    _rate_limit: None = Depends(rate_limit("restore", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_current_user),
    client: FreepikTaskClient = Depends(get_restoration_client),
    orchestrator: PaidActionOrchestrator = Depends(get_orchestrator),
):
    """Restore a photo with the AI provider for one credit."""
    result = await _run_paid_action(request, body, auth, RESTORE_ACTION, client, orchestrator, "restore")
    return {
        "success": True,
        "restoredUrl": result.result_url,
        "taskId": result.task_id,
        "creditsRemaining": result.credits_remaining,
    }


@router.post("/export")
async def export_photo(
    request: Request,
    body: PaidActionRequest,
    _rate_limit: None = Depends(rate_limit("export", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_current_user),
    client: FreepikTaskClient = Depends(get_upscale_client),
    orchestrator: PaidActionOrchestrator = Depends(get_orchestrator),
):
    """Upscale a photo 2x for one credit."""
    result = await _run_paid_action(request, body, auth, EXPORT_ACTION, client, orchestrator, "export")
    return {
        "success": True,
        "upscaledUrl": result.result_url,
        "taskId": result.task_id,
        "creditsRemaining": result.credits_remaining,
    }
