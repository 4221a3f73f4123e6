import asyncio
import json

import httpx
import pytest

from services.cancellation import CancellationToken
from services.errors import (
    ConfigurationError,
    ProviderError,
    TaskCancelled,
    TaskFailed,
    TaskTimeoutError,
)
from services.freepik import RESTORATION_PROMPT, RestorationClient, UpscaleClient


def _client(cls, handler, **kwargs):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("api_key", "test-freepik-key")
    kwargs.setdefault("poll_interval_seconds", 0)
    return http, cls(http, base_url="https://freepik.test", **kwargs)


@pytest.mark.asyncio
async def test_restoration_submit_sends_prompt_and_key(fake_freepik):
    provider = fake_freepik(task_id="restore-1")
    http, client = _client(RestorationClient, provider)
    async with http:
        task_id = await client.submit("https://img.test/old.jpg")

    assert task_id == "restore-1"
    request = provider.requests[0]
    assert request.url.path == "/v1/ai/gemini-2-5-flash-image-preview"
    assert request.headers["x-freepik-api-key"] == "test-freepik-key"
    body = json.loads(request.content)
    assert body == {"prompt": RESTORATION_PROMPT, "reference_images": ["https://img.test/old.jpg"]}


@pytest.mark.asyncio
async def test_upscale_submit_uses_fixed_2x_settings(fake_freepik):
    provider = fake_freepik()
    http, client = _client(UpscaleClient, provider)
    async with http:
        await client.submit("https://img.test/restored.png")

    body = json.loads(provider.requests[0].content)
    assert provider.requests[0].url.path == "/v1/ai/image-upscaler-precision-v2"
    assert body["image"] == "https://img.test/restored.png"
    assert body["scale_factor"] == 2
    assert body["flavor"] == "photo"
    assert (body["sharpen"], body["smart_grain"], body["ultra_detail"]) == (10, 5, 40)


def test_default_polling_budgets():
    http = httpx.AsyncClient()
    assert RestorationClient(http, api_key="k").max_attempts == 60
    assert UpscaleClient(http, api_key="k").max_attempts == 40


@pytest.mark.asyncio
async def test_submit_without_api_key_is_a_configuration_error(fake_freepik):
    provider = fake_freepik()
    http, client = _client(RestorationClient, provider, api_key="")
    async with http:
        with pytest.raises(ConfigurationError):
            await client.submit("https://img.test/old.jpg")
    assert provider.requests == []


@pytest.mark.asyncio
async def test_submit_error_carries_status_and_body(fake_freepik):
    http, client = _client(RestorationClient, fake_freepik(submit_status=500))
    async with http:
        with pytest.raises(ProviderError) as excinfo:
            await client.submit("https://img.test/old.jpg")

    assert excinfo.value.provider_status == 500
    assert excinfo.value.body == "upstream exploded"
    assert str(excinfo.value) == "Gemini API error: 500 - upstream exploded"


@pytest.mark.asyncio
async def test_wait_returns_urls_once_completed(fake_freepik):
    provider = fake_freepik(
        statuses=("CREATED", "PROCESSING", "COMPLETED"),
        generated=("https://cdn.test/a.png", "https://cdn.test/b.png"),
    )
    http, client = _client(UpscaleClient, provider)
    async with http:
        urls = await client.wait_for_completion("task-123")

    assert urls == ["https://cdn.test/a.png", "https://cdn.test/b.png"]
    assert provider.polls == 3
    assert provider.requests[-1].url.path.endswith("/task-123")


@pytest.mark.asyncio
async def test_completed_without_results_keeps_polling(fake_freepik):
    provider = fake_freepik(statuses=("COMPLETED",), generated=())
    http, client = _client(UpscaleClient, provider)
    async with http:
        with pytest.raises(TaskTimeoutError):
            await client.wait_for_completion("task-123", max_attempts=4)
    assert provider.polls == 4


@pytest.mark.asyncio
async def test_failed_task_raises(fake_freepik):
    http, client = _client(RestorationClient, fake_freepik(statuses=("PROCESSING", "FAILED")))
    async with http:
        with pytest.raises(TaskFailed, match="Restoration task failed"):
            await client.wait_for_completion("task-123")


@pytest.mark.asyncio
async def test_polling_times_out_after_max_attempts(fake_freepik):
    provider = fake_freepik(statuses=("PROCESSING",))
    http, client = _client(RestorationClient, provider, max_attempts=5)
    async with http:
        with pytest.raises(TaskTimeoutError) as excinfo:
            await client.wait_for_completion("task-123")

    assert isinstance(excinfo.value, TimeoutError)
    assert provider.polls == 5


@pytest.mark.asyncio
async def test_cancelled_token_stops_polling(fake_freepik):
    provider = fake_freepik(statuses=("PROCESSING",))
    http, client = _client(RestorationClient, provider, poll_interval_seconds=30)
    token = CancellationToken()

    async with http:
        waiter = asyncio.create_task(client.wait_for_completion("task-123", cancel_token=token))
        await asyncio.sleep(0.05)
        token.cancel("Client disconnected")
        with pytest.raises(TaskCancelled, match="Client disconnected"):
            await asyncio.wait_for(waiter, timeout=2)

    assert provider.polls == 1


@pytest.mark.asyncio
async def test_deadline_interrupts_long_interval(fake_freepik):
    provider = fake_freepik(statuses=("PROCESSING",))
    http, client = _client(UpscaleClient, provider, poll_interval_seconds=30)
    token = CancellationToken(deadline_seconds=0.05)

    async with http:
        with pytest.raises(TaskCancelled, match="Deadline exceeded"):
            await asyncio.wait_for(client.wait_for_completion("task-123", cancel_token=token), timeout=2)
