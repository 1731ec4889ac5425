"""Realtime feed fetcher."""

from __future__ import annotations

import hashlib
import inspect
from typing import Mapping, Optional

import httpx

from transit_rt.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 5.0
DEFAULT_USER_AGENT = "transit-rt-reconciler"


class FeedFetchError(Exception):
    """Raised when a feed cannot be downloaded."""


class FeedFetcher:
    """Downloads raw feed payloads.

    A single attempt is made per cycle. A failed fetch is retried by the
    next poll of the source, not here.
    """

    def __init__(
        self,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.timeout_sec = timeout_sec
        self.user_agent = user_agent

    def build_headers(self, extra: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        headers = {
            "Cache-Control": "no-cache",
            "User-Agent": self.user_agent,
        }
        if extra:
            headers.update(extra)
        return headers

    async def fetch(
        self,
        url: str,
        source: str,
        poll_id: str,
        headers: Optional[Mapping[str, str]] = None,
    ) -> tuple[bytes, str]:
        """Download a feed payload.

        Args:
            url: Feed URL.
            source: Source name for logging (e.g. "tampere:trip_updates").
            poll_id: Correlation ID for this poll cycle.
            headers: Extra request headers such as ``Authorization``.

        Returns:
            Tuple of (payload_bytes, sha256_hex_digest).

        Raises:
            FeedFetchError: On HTTP error status, transport error, timeout or empty body.
        """
        try:
            logger.info("Fetching feed", source=source, poll_id=poll_id)
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_sec),
                follow_redirects=True,
                headers=self.build_headers(headers),
            ) as client:
                response = await client.get(url)
                raise_result = response.raise_for_status()
                if inspect.isawaitable(raise_result):
                    await raise_result
                data = response.content
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            msg = f"Failed to fetch {source}: {exc}"
            logger.error(msg, source=source, poll_id=poll_id, error=str(exc))
            raise FeedFetchError(msg) from exc

        if not data:
            msg = f"Empty response body from {source}"
            raise FeedFetchError(msg)

        feed_hash = hashlib.sha256(data).hexdigest()
        logger.info(
            "Feed downloaded",
            source=source,
            poll_id=poll_id,
            size_bytes=len(data),
            feed_hash=feed_hash[:12],
        )
        return data, feed_hash
