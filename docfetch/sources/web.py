"""Web source - breadth-first crawl of a single site.

Pages are fetched in waves: up to `concurrency` queued URLs are taken off the
front of the queue, fetched together, and the next wave starts only when the
whole wave has finished. Links are followed only on the seed's host, only
down to the configured depth, and only when they match one of the regex
filters (if any are set). robots.txt `Disallow` prefixes are honoured when
asked for.
"""

import asyncio
import logging
import os
import re
from collections import deque
from urllib.parse import urldefrag, urljoin, urlsplit, urlunsplit

import httpx
from bs4 import BeautifulSoup

from .. import __version__
from .base import ContentCollection, ContentItem, FetchLedger, Source, make_id
from .config import SourceConfig, UrlOptions, coerce_options
from .errors import ConfigurationError, DiscoveryError, ItemError, SourceError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 5000
DEFAULT_CONCURRENCY = 5
MAX_REDIRECTS = 5
DEFAULT_USER_AGENT = f"docfetch/{__version__}"
PARSED_TYPES = ("html", "text", "unknown")


def canonical_url(url: str) -> str:
    """Key used to tell whether two URLs point at the same page."""
    parts = urlsplit(urldefrag(url)[0])
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", parts.query, ""))


def content_type(header: str | None) -> str:
    if not header:
        return "unknown"
    header = header.lower()
    if "html" in header:
        return "html"
    if "json" in header:
        return "json"
    if "xml" in header:
        return "xml"
    if "text" in header:
        return "text"
    return "unknown"


def parse_robots_txt(text: str) -> set[str]:
    """Collect the path prefixes of every Disallow line."""
    rules = set()
    for line in text.splitlines():
        line = line.strip()
        if not line.lower().startswith("disallow:"):
            continue
        prefix = line.split(":", 1)[1].strip()
        # An empty Disallow allows everything
        if prefix:
            rules.add(prefix)
    return rules


def extract_links(soup: BeautifulSoup) -> list[str]:
    links = []
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if href and href not in links:
            links.append(href)
    return links


class WebCrawlSource(Source):
    def __init__(self, config: SourceConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self.options = coerce_options(config.options, UrlOptions)
        self._transport = transport
        self._ledger = FetchLedger(config)

        self._visited: set[str] = set()
        self._queued: set[str] = set()
        self._queue: deque[tuple[str, int]] = deque()
        self._robots_rules: set[str] = set()
        self._seed_host: str | None = None

    @property
    def max_depth(self) -> int:
        return self.options.depth or 0

    @property
    def concurrency(self) -> int:
        return max(1, self.options.concurrency or DEFAULT_CONCURRENCY)

    def get_errors(self) -> list[Exception]:
        return self._ledger.errors

    async def fetch(self) -> ContentCollection:
        if not await self._ledger.passes(self.validate):
            return self._ledger.collection([], 0)

        seed = self.config.location
        self._seed_host = urlsplit(seed).hostname
        self._visited.clear()
        self._queued.clear()
        self._queue.clear()
        self._robots_rules = set()

        limit = self.options.limit or None
        items: list[ContentItem] = []

        try:
            async with self._client() as client:
                if self.options.respect_robots_txt:
                    await self._load_robots_txt(client)
                    if not self._is_allowed(seed):
                        logger.info("robots.txt disallows the seed %s", seed)
                        return self._ledger.collection([], 0)

                self._enqueue(seed, 0)

                while self._queue and (limit is None or len(items) < limit):
                    batch = self._next_batch(limit - len(items) if limit else None)
                    logger.debug("Crawling wave of %d (%d queued)", len(batch), len(self._queue))
                    results = await asyncio.gather(
                        *[self._crawl_url(client, url, depth) for url, depth in batch]
                    )
                    for result in results:
                        if result is not None and (limit is None or len(items) < limit):
                            items.append(result)
        except SourceError as e:
            self._ledger.add(e)
            return self._ledger.collection([], 0)
        except Exception as e:
            self._ledger.add(DiscoveryError(f"Crawl of {seed} failed: {e}"))
            return self._ledger.collection([], 0)

        logger.info("Crawled %d pages from %s", len(items), seed)
        return self._ledger.collection(items, len(items))

    async def validate(self) -> bool:
        if not self._ledger.check_common():
            return False

        valid = True

        try:
            parts = urlsplit(self.config.location)
            is_url = bool(parts.scheme and parts.netloc)
        except ValueError:
            is_url = False
        if not is_url:
            self._ledger.add(ConfigurationError("Invalid URL provided"))
            valid = False

        depth = self.options.depth
        if depth is not None and (not isinstance(depth, int) or isinstance(depth, bool) or depth < 0):
            self._ledger.add(ConfigurationError("Depth must be a non-negative number"))
            valid = False

        return valid

    def _client(self) -> httpx.AsyncClient:
        timeout_ms = self.options.timeout or DEFAULT_TIMEOUT_MS
        return httpx.AsyncClient(
            timeout=timeout_ms / 1000,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            headers={"User-Agent": os.environ.get("DOCFETCH_USER_AGENT", DEFAULT_USER_AGENT)},
            transport=self._transport,
        )

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        response = await client.get(url)
        if response.status_code >= 400:
            raise httpx.HTTPStatusError(
                f"Request failed with status code {response.status_code}",
                request=response.request,
                response=response,
            )
        return response

    async def _load_robots_txt(self, client: httpx.AsyncClient) -> None:
        robots_url = urljoin(self.config.location, "/robots.txt")
        try:
            response = await self._get(client, robots_url)
        except httpx.HTTPError as e:
            # Not fatal: crawl without restrictions
            logger.warning("Failed to load robots.txt from %s: %s", robots_url, e)
            self._robots_rules = set()
            return

        self._robots_rules = parse_robots_txt(response.text)
        logger.debug("robots.txt disallows %s", sorted(self._robots_rules))

    def _is_allowed(self, url: str) -> bool:
        if not self._robots_rules:
            return True
        path = urlsplit(url).path or "/"
        return not any(path.startswith(rule) for rule in self._robots_rules)

    def _enqueue(self, url: str, depth: int) -> None:
        self._queue.append((url, depth))
        self._queued.add(canonical_url(url))

    def _next_batch(self, remaining: int | None) -> list[tuple[str, int]]:
        size = min(self.concurrency, len(self._queue))
        if remaining is not None:
            size = min(size, remaining)
        return [self._queue.popleft() for _ in range(size)]

    async def _crawl_url(self, client: httpx.AsyncClient, url: str, depth: int) -> ContentItem | None:
        key = canonical_url(url)
        if key in self._visited:
            return None
        if self.options.respect_robots_txt and not self._is_allowed(url):
            return None
        self._visited.add(key)

        try:
            response = await self._get(client, url)
        except httpx.HTTPError as e:
            self._ledger.add(ItemError(f"Failed to fetch {url}: {e}"))
            return None

        try:
            return self._build_item(response, url, depth)
        except Exception as e:
            self._ledger.add(ItemError(f"Failed to process {url}: {e}"))
            return None

    def _build_item(self, response: httpx.Response, url: str, depth: int) -> ContentItem:
        header = response.headers.get("content-type")
        item_type = content_type(header)
        text = response.text

        title = ""
        description = None
        links: list[str] = []
        # JSON and XML bodies are kept as-is
        if item_type in PARSED_TYPES:
            soup = BeautifulSoup(text, "html.parser")
            if soup.title is not None:
                title = soup.title.get_text()
            meta = soup.find("meta", attrs={"name": "description"})
            if meta is not None:
                description = meta.get("content")
            links = extract_links(soup)

            if depth < self.max_depth:
                self._queue_links(links, str(response.url), depth + 1)

        return ContentItem(
            id=make_id(url),
            type=item_type,
            content=text,
            path=url,
            metadata={
                "title": title,
                "description": description,
                "content_type": header,
                "last_modified": response.headers.get("last-modified"),
                "depth": depth,
                "links": links,
                "headers": dict(response.headers),
            },
        )

    def _queue_links(self, links: list[str], base_url: str, depth: int) -> None:
        for link in links:
            try:
                url = urldefrag(urljoin(base_url, link))[0]
                if not self._should_crawl(url):
                    continue
                key = canonical_url(url)
            except ValueError:
                # malformed href
                continue

            if key in self._visited or key in self._queued:
                continue
            if self.options.respect_robots_txt and not self._is_allowed(url):
                continue
            self._enqueue(url, depth)

    def _should_crawl(self, url: str) -> bool:
        if urlsplit(url).hostname != self._seed_host:
            return False

        if self.options.filter:
            return any(_matches(pattern, url) for pattern in self.options.filter)

        return True


def _matches(pattern: str, url: str) -> bool:
    try:
        return re.search(pattern, url) is not None
    except re.error:
        logger.warning("Ignoring invalid URL filter %r", pattern)
        return False
