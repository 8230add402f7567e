"""
Site Crawler

Bounded, domain-scoped discovery of an audit's pages:
- Level-by-level traversal from a seed URL with an owned visited-set
- Two independent limits: link depth and total pages scheduled
- Concurrent fetches within a level
- Page-type classification and crawl metadata extraction
- Backlink (inbound link) counts across the discovered set
"""

import asyncio
import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Optional, Protocol
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from cro_auditor.config import settings
from cro_auditor.core.urls import (
    host_of,
    normalize_seed_url,
    normalize_url_key,
    resolve_href,
    url_path,
    with_netloc,
)
from cro_auditor.integrations.fetcher import DocumentFetcher, FetchResult
from cro_auditor.models.page import PageType

logger = logging.getLogger(__name__)

MAX_LINKS_PER_PAGE = 50

INTERACTIVE_BUTTON_SELECTOR = 'button, input[type="submit"]'
NAV_SELECTOR = 'nav, [role="navigation"]'


class Fetcher(Protocol):
    async def fetch(self, url: str) -> FetchResult: ...


@dataclass
class CrawlConfig:
    max_depth: int = 2
    max_pages: int = 20
    concurrent_requests: int = 5
    max_links_per_page: int = MAX_LINKS_PER_PAGE


@dataclass
class DiscoveredPageData:
    url: str
    page_type: PageType
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["page_type"] = self.page_type.value
        return data


def allowed_hosts_for(url: str) -> set[str]:
    """The seed host plus its www/bare twin."""
    host = host_of(url)
    bare = host[4:] if host.startswith("www.") else host
    return {bare, f"www.{bare}"}


def classify_page(url: str, document: BeautifulSoup) -> PageType:
    """Label a page by fixed-order path/title rules."""
    path = url_path(url).lower()
    title_tag = document.find("title")
    title = title_tag.get_text().lower() if title_tag else ""
    h1_tag = document.find("h1")
    h1 = h1_tag.get_text().lower() if h1_tag else ""

    if path == "/":
        return PageType.HOMEPAGE
    if "pricing" in path or "pricing" in title:
        return PageType.PRICING
    if "product" in path or "shop" in path:
        return PageType.PRODUCT
    if "checkout" in path or "cart" in path:
        return PageType.CHECKOUT
    if "contact" in path or "contact" in title:
        return PageType.CONTACT
    if "about" in path:
        return PageType.ABOUT
    if "blog" in path or "article" in path:
        return PageType.BLOG
    if document.find("form") and ("get" in h1 or "start" in h1):
        return PageType.LANDING
    return PageType.OTHER


def extract_links(
    document: BeautifulSoup,
    page_url: str,
    allowed_hosts: set[str],
    limit: Optional[int] = MAX_LINKS_PER_PAGE,
    site_netloc: Optional[str] = None,
) -> list[str]:
    """Same-site outbound links, normalized, deduplicated, in document order.

    With ``site_netloc`` every same-site link is moved onto that host, so the
    www and bare spellings of a page share one key.
    """
    links: list[str] = []
    seen: set[str] = set()
    for anchor in document.find_all("a", href=True):
        target = resolve_href(page_url, anchor.get("href"))
        if not target or host_of(target) not in allowed_hosts:
            continue
        if site_netloc:
            target = with_netloc(target, site_netloc)
        if target in seen:
            continue
        seen.add(target)
        links.append(target)
        if limit is not None and len(links) >= limit:
            break
    return links


def extract_metadata(
    document: BeautifulSoup,
    page_url: str,
    depth: int,
    allowed_hosts: set[str],
) -> dict[str, Any]:
    title_tag = document.find("title")
    body = document.find("body")

    internal = 0
    external = 0
    for anchor in document.find_all("a", href=True):
        target = resolve_href(page_url, anchor.get("href"))
        if not target:
            continue
        if host_of(target) in allowed_hosts:
            internal += 1
        else:
            external += 1

    return {
        "depth": depth,
        "title": title_tag.get_text(strip=True) if title_tag else "",
        "h1_count": len(document.find_all("h1")),
        "form_count": len(document.find_all("form")),
        "button_count": len(document.select(INTERACTIVE_BUTTON_SELECTOR)),
        "external_links": external,
        "internal_links": internal,
        "has_nav": bool(document.select(NAV_SELECTOR)),
        "word_count": len(body.get_text(separator=" ").split()) if body else 0,
        # Filled in by calculate_backlinks once the page set is final
        "inbound_links_count": 0,
    }


class SiteCrawler:
    """Discovers the pages of one site for an audit."""

    def __init__(
        self,
        seed_url: str,
        fetcher: Optional[Fetcher] = None,
        config: Optional[CrawlConfig] = None,
    ):
        self.seed_url = normalize_seed_url(seed_url)
        self.allowed_hosts = allowed_hosts_for(self.seed_url)
        self.site_netloc = urlparse(self.seed_url).netloc.lower()
        self.config = config or CrawlConfig(
            max_depth=settings.CRAWL_MAX_DEPTH,
            max_pages=settings.CRAWL_MAX_PAGES,
            concurrent_requests=settings.CRAWL_CONCURRENCY,
        )
        self.fetcher = fetcher or DocumentFetcher()
        self.semaphore = asyncio.Semaphore(self.config.concurrent_requests)

        self.visited_urls: set[str] = set()
        self.discovered_pages: list[DiscoveredPageData] = []
        # Full (uncapped) same-site link sets seen during discovery
        self._link_cache: dict[str, list[str]] = {}

    async def _fetch(self, url: str) -> FetchResult:
        async with self.semaphore:
            return await self.fetcher.fetch(url)

    async def discover(
        self,
        max_depth: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> list[DiscoveredPageData]:
        """Crawl from the seed and return discovered pages in traversal order."""
        max_depth = self.config.max_depth if max_depth is None else max_depth
        max_pages = self.config.max_pages if max_pages is None else max_pages
        logger.info(f"Starting discovery of {self.seed_url} (depth {max_depth}, max {max_pages} pages)")

        self.visited_urls = set()
        self.discovered_pages = []
        self._link_cache = {}
        if max_pages <= 0 or max_depth < 0:
            return []

        seed_key = normalize_url_key(self.seed_url)
        self.visited_urls.add(seed_key)
        level = [seed_key]
        depth = 0

        while level and depth <= max_depth:
            results = await asyncio.gather(*(self._fetch(url) for url in level))
            next_level: list[str] = []

            for url, result in zip(level, results):
                if not result.success or result.document is None:
                    logger.warning(f"Skipping {url}: {result.error or 'no document'}")
                    continue
                if result.final_url and host_of(result.final_url) not in self.allowed_hosts:
                    logger.warning(f"Skipping {url}: redirected off-site to {result.final_url}")
                    continue

                page = self._build_page(url, result, depth)
                self.discovered_pages.append(page)

                if depth >= max_depth:
                    continue
                for link in self._link_cache[url][: self.config.max_links_per_page]:
                    if len(self.visited_urls) >= max_pages:
                        break
                    if link in self.visited_urls:
                        continue
                    self.visited_urls.add(link)
                    next_level.append(link)

            level = next_level
            depth += 1

        logger.info(
            f"Discovery finished: {len(self.discovered_pages)} pages, "
            f"{len(self.visited_urls)} URLs visited"
        )
        return self.discovered_pages

    def _build_page(self, url: str, result: FetchResult, depth: int) -> DiscoveredPageData:
        document = result.document
        base_url = result.final_url or url
        self._link_cache[url] = extract_links(
            document, base_url, self.allowed_hosts, limit=None, site_netloc=self.site_netloc
        )
        return DiscoveredPageData(
            url=url,
            page_type=classify_page(url, document),
            metadata=extract_metadata(document, base_url, depth, self.allowed_hosts),
        )

    async def calculate_backlinks(
        self,
        page_urls: Iterable[str],
        refetch: bool = False,
    ) -> dict[str, int]:
        """Count, for each discovered URL, the distinct other discovered pages linking to it.

        Link sets from the discovery pass are reused unless ``refetch`` is set
        or the page was not seen by this crawler. Pages that fail to fetch
        contribute nothing; no new pages are discovered.
        """
        urls = [normalize_url_key(u) for u in page_urls]
        discovered = set(urls)

        async def targets_of(url: str) -> set[str]:
            links = None if refetch else self._link_cache.get(url)
            if links is None:
                result = await self._fetch(url)
                if not result.success or result.document is None:
                    logger.warning(f"Backlink pass skipped {url}: {result.error or 'no document'}")
                    return set()
                links = extract_links(
                    result.document,
                    result.final_url or url,
                    self.allowed_hosts,
                    limit=None,
                    site_netloc=self.site_netloc,
                )
            return {target for target in links if target in discovered and target != url}

        partials = await asyncio.gather(*(targets_of(url) for url in urls))

        counts: Counter = Counter()
        for targets in partials:
            counts.update(targets)

        logger.info(f"Calculated backlinks for {sum(1 for u in urls if counts[u])} pages")
        return {url: counts.get(url, 0) for url in urls}
