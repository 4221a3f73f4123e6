"""Freepik AI task clients for photo restoration and upscaling.

Both endpoints share the same asynchronous job contract: a POST returns a
``task_id`` and a GET on ``<endpoint>/<task_id>`` reports
``{status, generated[]}`` until the task reaches COMPLETED or FAILED.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Optional

import httpx

from config import settings
from services.cancellation import CancellationToken
from services.errors import ConfigurationError, ProviderError, TaskFailed, TaskTimeoutError

logger = logging.getLogger(__name__)

STATUS_CREATED = "CREATED"
STATUS_PROCESSING = "PROCESSING"
STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"

RESTORATION_PROMPT = (
    "Ultra-realistic recreation of an old vintage photo, keeping the same original face "
    "(99% likeness, no alteration). Transform into a modern high-quality digital portrait with "
    "vibrant updated colors, smooth realistic skin textures, and natural lighting. The outfit and "
    "background should be upgraded into a clean, modern aesthetic while preserving the authenticity "
    "of the original pose and expression."
)

UPSCALE_SETTINGS: Dict[str, Any] = {
    "sharpen": 10,
    "smart_grain": 5,
    "ultra_detail": 40,
    "flavor": "photo",
    "scale_factor": 2,
}


@dataclass
class TaskStatus:
    status: str
    result_urls: List[str] = field(default_factory=list)


class FreepikTaskClient:
    """Submit-and-poll wrapper around one Freepik async task endpoint."""

    name = "Freepik"
    endpoint = ""
    default_max_attempts = 40
    action_label = "Task"

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        poll_interval_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self.http = http
        self.api_key = (settings.FREEPIK_API_KEY if api_key is None else api_key).strip()
        self.base_url = (base_url or settings.FREEPIK_API_BASE).rstrip("/")
        self.poll_interval_seconds = (
            settings.TASK_POLL_INTERVAL_SECONDS if poll_interval_seconds is None else float(poll_interval_seconds)
        )
        self.max_attempts = int(max_attempts or self.default_max_attempts)

    def build_payload(self, image_url: str) -> Dict[str, Any]:
        raise NotImplementedError

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ConfigurationError("FREEPIK_API_KEY is not configured")
        return {"x-freepik-api-key": self.api_key}

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        headers = self._headers()
        try:
            response = await self.http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, 0, str(exc)) from exc

        if response.status_code >= 400:
            raise ProviderError(self.name, response.status_code, response.text)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(self.name, response.status_code, "Invalid JSON response") from exc

    async def submit(self, image_url: str) -> str:
        """Create a provider task for ``image_url`` and return its id."""
        payload = await self._request(
            "POST",
            f"{self.base_url}{self.endpoint}",
            json=self.build_payload(image_url),
        )
        task_id = str((payload.get("data") or {}).get("task_id") or "").strip()
        if not task_id:
            raise ProviderError(self.name, 200, "Response did not include a task_id")
        logger.info("%s task %s submitted", self.name, task_id)
        return task_id

    async def poll_status(self, task_id: str) -> TaskStatus:
        payload = await self._request("GET", f"{self.base_url}{self.endpoint}/{task_id}")
        data = payload.get("data") or {}
        return TaskStatus(
            status=str(data.get("status") or "").upper(),
            result_urls=[str(url) for url in (data.get("generated") or []) if url],
        )

    async def wait_for_completion(
        self,
        task_id: str,
        max_attempts: Optional[int] = None,
        interval_seconds: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[str]:
        """Poll ``task_id`` until it completes and return its result URLs."""
        attempts = max(int(max_attempts or self.max_attempts), 1)
        interval = self.poll_interval_seconds if interval_seconds is None else float(interval_seconds)
        token = cancel_token or CancellationToken()

        for attempt in range(attempts):
            token.raise_if_cancelled()
            state = await self.poll_status(task_id)

            if state.status == STATUS_COMPLETED and state.result_urls:
                logger.info("%s task %s completed after %s polls", self.name, task_id, attempt + 1)
                return state.result_urls
            if state.status == STATUS_FAILED:
                raise TaskFailed(f"{self.action_label} task failed")

            if attempt < attempts - 1:
                await token.sleep(interval)

        raise TaskTimeoutError(f"{self.action_label} timeout - task took too long")


class RestorationClient(FreepikTaskClient):
    """Gemini 2.5 Flash image restoration."""

    name = "Gemini"
    endpoint = "/v1/ai/gemini-2-5-flash-image-preview"
    default_max_attempts = 60
    action_label = "Restoration"

    def __init__(self, http: httpx.AsyncClient, api_key: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault("max_attempts", settings.RESTORE_MAX_ATTEMPTS)
        super().__init__(http, api_key, **kwargs)

    def build_payload(self, image_url: str) -> Dict[str, Any]:
        return {"prompt": RESTORATION_PROMPT, "reference_images": [image_url]}


class UpscaleClient(FreepikTaskClient):
    """Magnific Precision V2 2x upscaling."""

    name = "Magnific"
    endpoint = "/v1/ai/image-upscaler-precision-v2"
    action_label = "Upscaling"

    def __init__(self, http: httpx.AsyncClient, api_key: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault("max_attempts", settings.EXPORT_MAX_ATTEMPTS)
        super().__init__(http, api_key, **kwargs)

    def build_payload(self, image_url: str) -> Dict[str, Any]:
        return {"image": image_url, **UPSCALE_SETTINGS}
