"""X (Twitter) API client: trade announcements.

Posting requires an OAuth 2.0 user-context access token with the
tweet.write scope.

Environment:
    TRAIDER_X_ACCESS_TOKEN: user access token (required)
"""

from __future__ import annotations

from typing import Any

import httpx

from traider.clients.base import BaseClient
from traider.config import require_env

MAX_TWEET_CHARS = 280


class XClient:
    """X API v2: create posts."""

    def __init__(self, access_token: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.access_token = require_env("TRAIDER_X_ACCESS_TOKEN", access_token)
        self._client = BaseClient(
            base_url="https://api.twitter.com/2",
            headers={"Authorization": f"Bearer {self.access_token}"},
            rate_limit=1.0,
            timeout=10.0,
            max_retries=1,
            provider_name="x_api",
            transport=transport,
        )

    async def post_tweet(self, text: str) -> dict[str, Any]:
        """POST /2/tweets. Returns {"id": ..., "text": ...}."""
        if len(text) > MAX_TWEET_CHARS:
            raise ValueError(f"Tweet is {len(text)} chars, limit is {MAX_TWEET_CHARS}")
        data = await self._client.post("/tweets", json_data={"text": text})
        return data.get("data", data)

    async def close(self) -> None:
        await self._client.close()
