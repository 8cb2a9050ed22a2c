"""Async client for the AI-agent proxy's milestone narrative endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .models import AchievementRequest, NaturalGuidanceRequest, WarningRequest

logger = logging.getLogger(__name__)


class AIAgentError(Exception):
    """Raised when the AI-agent proxy returns an error."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class RateLimitError(AIAgentError):
    """Raised when we hit a rate limit (429)."""

    def __init__(self, message: str, retry_after: float = 0):
        self.retry_after = retry_after
        super().__init__(message, status_code=429)


def build_base_url(url: str | None) -> str:
    """Normalize a configured URL so it always ends in ``/api/ai-agent``."""
    if not url:
        return "/api/ai-agent"
    if url.endswith("/api/ai-agent"):
        return url
    return f"{url.rstrip('/')}/api/ai-agent"


class AIAgentClient:
    """Narrative generator backed by the campaign proxy server.

    Usage::

        async with AIAgentClient("http://localhost:4001") as client:
            text = await client.natural_guidance(request)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=build_base_url(base_url),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> AIAgentClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ── Request helpers ─────────────────────────────────────────

    async def _post_for_message(self, path: str, payload: dict[str, Any]) -> str:
        """POST a payload and return ``data.message`` from a success envelope."""
        try:
            resp = await self._client.post(path, json=payload)
        except httpx.HTTPError as exc:
            raise AIAgentError(f"Could not reach the AI agent: {exc}") from exc

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code == 429:
            raise RateLimitError(
                f"Rate limited: {body.get('error', 'too many requests')}",
                retry_after=float(body.get("retry_after", 0) or 0),
            )
        if resp.status_code >= 400:
            raise AIAgentError(
                body.get("error") or body.get("message") or f"HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        data = body.get("data") or {}
        message = data.get("message") if isinstance(data, dict) else None
        if body.get("status") != "success" or not message:
            raise AIAgentError(body.get("error", "AI agent returned no message"))
        return str(message).strip()

    # ── Milestone narration ─────────────────────────────────────

    async def natural_guidance(self, request: NaturalGuidanceRequest) -> str:
        text = await self._post_for_message("/milestone-natural-guidance", request.to_payload())
        logger.debug("Natural guidance (%s): %s", request.intensity, text[:80])
        return text

    async def milestone_warning(self, request: WarningRequest) -> str:
        text = await self._post_for_message("/milestone-warning", request.to_payload())
        logger.debug("Milestone warning for %s: %s", request.milestone.id, text[:80])
        return text

    async def milestone_achievement(self, request: AchievementRequest) -> str:
        text = await self._post_for_message("/milestone-achievement", request.to_payload())
        logger.info("Achievement narration for %s", request.milestone.id)
        return text
