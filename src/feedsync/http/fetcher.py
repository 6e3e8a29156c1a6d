"""HTTP client for feed documents."""

from __future__ import annotations

import logging

import httpx

from feedsync.errors import FeedFetchError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; feedsync/0.1)"
FEED_ACCEPT = (
    "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.9, */*;q=0.1"
)


class HttpFetcher:
    """Downloads feed documents; every failure surfaces as `FeedFetchError`.

    Connection retries are left to the httpx transport. Redirects are followed,
    so a moved feed keeps working under its subscribed URL.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=min(10.0, timeout_seconds)),
            headers={"User-Agent": user_agent, "Accept": FEED_ACCEPT},
            transport=transport or httpx.HTTPTransport(retries=max_retries),
            follow_redirects=True,
        )

    def fetch_text(self, url: str) -> str:
        try:
            response = self._client.get(url)
        except httpx.TimeoutException as error:
            logger.warning("Timeout fetching %s", url)
            raise FeedFetchError(
                f"Failed to download {url}: timeout",
                code="timeout",
                feed_url=url,
            ) from error
        except httpx.HTTPError as error:
            logger.warning("HTTP error fetching %s: %s", url, error)
            raise FeedFetchError(
                f"Failed to download {url}: {error}",
                code="network",
                feed_url=url,
            ) from error

        if not response.is_success:
            raise FeedFetchError(
                f"Failed to download {url}: HTTP {response.status_code}",
                code=f"http_{response.status_code}",
                feed_url=url,
            )
        return response.text

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpFetcher:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
