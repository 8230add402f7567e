"""
Document fetcher.

Fetches a URL with httpx and parses it with BeautifulSoup. Every failure
(network error, timeout, non-2xx status, non-HTML body) comes back as an
unsuccessful FetchResult; callers skip the page and carry on.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from cro_auditor.config import settings

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    url: str
    success: bool
    document: Optional[BeautifulSoup] = None
    raw_body: str = ""
    status_code: int = 0
    final_url: str = ""
    load_time_ms: int = 0
    content_length: int = 0
    error: str = ""


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


class DocumentFetcher:
    """Async HTML fetcher with a per-request timeout."""

    def __init__(
        self,
        timeout_seconds: float | None = None,
        user_agent: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.timeout_seconds = timeout_seconds or settings.HTTP_TIMEOUT_SECONDS
        self.user_agent = user_agent or settings.HTTP_USER_AGENT
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
            )
            self._owns_client = True
        return self._client

    async def fetch(self, url: str) -> FetchResult:
        """Fetch and parse a page. Never raises."""
        start_time = time.time()
        try:
            client = await self._get_client()
            response = await client.get(url)
            load_time_ms = int((time.time() - start_time) * 1000)

            if not response.is_success:
                logger.warning(f"Fetch failed ({response.status_code}): {url}")
                return FetchResult(
                    url=url,
                    success=False,
                    status_code=response.status_code,
                    final_url=str(response.url),
                    load_time_ms=load_time_ms,
                    error=f"HTTP {response.status_code}",
                )

            content_type = response.headers.get("content-type", "")
            if content_type and "html" not in content_type.lower():
                logger.debug(f"Skipping non-HTML: {url} ({content_type})")
                return FetchResult(
                    url=url,
                    success=False,
                    status_code=response.status_code,
                    final_url=str(response.url),
                    load_time_ms=load_time_ms,
                    error=f"Non-HTML content: {content_type}",
                )

            html = response.text
            return FetchResult(
                url=url,
                success=True,
                document=parse_html(html),
                raw_body=html,
                status_code=response.status_code,
                final_url=str(response.url),
                load_time_ms=load_time_ms,
                content_length=len(response.content),
            )

        except httpx.TimeoutException:
            logger.warning(f"Timeout: {url}")
            return FetchResult(
                url=url,
                success=False,
                load_time_ms=int(self.timeout_seconds * 1000),
                error="Request timed out",
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Error fetching {url}: {e}")
            return FetchResult(url=url, success=False, error=str(e))

    async def close(self):
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
