"""Tests for the AI-agent proxy client, using an in-memory transport."""

import asyncio
import json

import httpx
import pytest

from campaign.client import AIAgentClient, AIAgentError, RateLimitError, build_base_url
from campaign.models import AchievementRequest, Milestone, NaturalGuidanceRequest, WarningRequest

MILESTONE = Milestone(id="m1", title="Cross the river", target_day=3)


def _client(handler) -> AIAgentClient:
    return AIAgentClient("http://testserver", api_key="secret", transport=httpx.MockTransport(handler))


def _run(coro_fn, handler):
    async def go():
        async with _client(handler) as client:
            return await coro_fn(client)

    return asyncio.run(go())


def test_build_base_url():
    assert build_base_url("http://localhost:4001") == "http://localhost:4001/api/ai-agent"
    assert build_base_url("http://localhost:4001/") == "http://localhost:4001/api/ai-agent"
    assert build_base_url("http://host/api/ai-agent") == "http://host/api/ai-agent"
    assert build_base_url(None) == "/api/ai-agent"


def test_natural_guidance_posts_payload_and_returns_message():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": "success", "data": {"message": "  A rumour spreads.  "}})

    request = NaturalGuidanceRequest(milestone_context="ctx", urgency="normal", intensity="subtle")
    text = _run(lambda c: c.natural_guidance(request), handler)

    assert text == "A rumour spreads."
    assert seen["path"] == "/api/ai-agent/milestone-natural-guidance"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["guidanceIntensity"] == "subtle"


def test_warning_and_achievement_endpoints():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"status": "success", "data": {"message": "ok"}})

    async def both(client):
        await client.milestone_warning(WarningRequest(milestone=MILESTONE, current_day=2, progress=10))
        await client.milestone_achievement(AchievementRequest(milestone=MILESTONE, current_day=2))

    _run(both, handler)
    assert paths == ["/api/ai-agent/milestone-warning", "/api/ai-agent/milestone-achievement"]


def test_rate_limit_raises():
    def handler(request):
        return httpx.Response(429, json={"error": "slow down", "retry_after": 3})

    request = NaturalGuidanceRequest(milestone_context="", urgency="normal", intensity="subtle")
    with pytest.raises(RateLimitError) as exc:
        _run(lambda c: c.natural_guidance(request), handler)
    assert exc.value.retry_after == 3
    assert exc.value.status_code == 429


def test_http_error_status_raises():
    def handler(request):
        return httpx.Response(500, json={"error": "boom"})

    with pytest.raises(AIAgentError) as exc:
        _run(lambda c: c.milestone_achievement(AchievementRequest(milestone=MILESTONE, current_day=1)), handler)
    assert exc.value.status_code == 500
    assert "boom" in str(exc.value)


def test_missing_message_raises():
    def handler(request):
        return httpx.Response(200, json={"status": "error", "error": "no model"})

    with pytest.raises(AIAgentError):
        _run(lambda c: c.milestone_warning(WarningRequest(milestone=MILESTONE, current_day=1, progress=0)), handler)


def test_transport_failure_is_wrapped():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(AIAgentError):
        _run(lambda c: c.milestone_achievement(AchievementRequest(milestone=MILESTONE, current_day=1)), handler)
