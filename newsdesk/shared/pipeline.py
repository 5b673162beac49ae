"""Shared pipeline utilities: feed fetching and page scraping."""
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence
from urllib.parse import urlparse

import dateparser
import feedparser
import httpx
from bs4 import BeautifulSoup, Comment

from newsdesk.config import Settings, settings as default_settings
from newsdesk.schemas.models import CandidateItem, FeedSource, ScrapedDocument
from newsdesk.shared.errors import ContentTooShort, SourceUnavailable, UnparsableContent
from newsdesk.shared.extractors import (
    ImageResolver,
    canonicalize_url,
    html_to_text,
    link_id,
    normalize_whitespace,
    truncate,
)
from newsdesk.shared.filters import ArticleFilter
from newsdesk.shared.store import PendingStore

logger = logging.getLogger(__name__)

NON_CONTENT_TAGS = ["script", "style", "nav", "footer", "header", "iframe", "svg", "form", "noscript", "aside"]
NON_CONTENT_SELECTORS = ".ads, .ad, .advertisement, .comment, .comments, .sidebar"


async def _get(client: httpx.AsyncClient, url: str) -> httpx.Response:
    """GET a URL, translating transport failures into SourceUnavailable."""
    try:
        response = await client.get(url)
        response.raise_for_status()
        return response
    except httpx.TimeoutException as e:
        raise SourceUnavailable(f"Timeout: site too slow ({url})", url=url, timed_out=True) from e
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        raise SourceUnavailable(f"Target refused connection: {status}", url=url, status_code=status) from e
    except httpx.HTTPError as e:
        raise SourceUnavailable(f"Request failed for {url}: {e}", url=url) from e
    except httpx.InvalidURL as e:
        raise SourceUnavailable(f"Invalid URL {url!r}: {e}", url=url) from e


class FeedFetcher:
    """Fetch and parse a configured list of RSS/Atom sources concurrently."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        article_filter: Optional[ArticleFilter] = None,
        image_resolver: Optional[ImageResolver] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize feed fetcher."""
        self.config = config or default_settings
        self.timeout = self.config.rss_request_timeout
        self.max_items_per_source = self.config.rss_max_items_per_source
        self.max_items_per_batch = self.config.rss_max_items_per_batch
        self.date_policy = self.config.unparsable_date_policy
        if self.date_policy not in ("drop", "now"):
            raise ValueError(f"Unknown unparsable_date_policy: {self.date_policy}")
        self.article_filter = article_filter or ArticleFilter(config=self.config)
        self.image_resolver = image_resolver or ImageResolver()
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers=self.config.request_headers(),
            transport=self.transport,
        )

    async def fetch_all(
        self,
        sources: Optional[Sequence[FeedSource]] = None,
        now: Optional[datetime] = None,
    ) -> List[CandidateItem]:
        """
        Fetch every source, filter, dedup by link and merge.

        A failing source contributes no items; it never fails the batch.

        Returns:
            Candidates sorted by publish time, newest first
        """
        sources = list(sources if sources is not None else self.config.feed_sources)
        now = now or datetime.now(timezone.utc)
        cutoff = self.article_filter.cutoff_for(now)

        async with self._client() as client:
            tasks = [self._fetch_source_safe(client, source, now) for source in sources]
            results = await asyncio.gather(*tasks)

        pairs = []
        seen_links = set()
        for source, items in zip(sources, results):
            for item in items:
                key = canonicalize_url(item.link)
                if key in seen_links:
                    continue
                seen_links.add(key)
                pairs.append((item, source.type))

        kept = self.article_filter.apply(pairs, cutoff)
        kept.sort(key=lambda item: item.pub_date, reverse=True)
        logger.info(f"Feed batch: {len(pairs)} parsed, {len(kept)} kept from {len(sources)} sources")
        return kept[: self.max_items_per_batch]

    async def _fetch_source_safe(
        self,
        client: httpx.AsyncClient,
        source: FeedSource,
        now: datetime,
    ) -> List[CandidateItem]:
        try:
            return await self.fetch_source(client, source, now)
        except (SourceUnavailable, UnparsableContent) as e:
            logger.warning(f"RSS source {source.name} skipped ({e.kind}): {e.message}")
            return []
        except Exception as e:
            logger.error(f"Error ingesting feed {source.name}: {e}", exc_info=True)
            return []

    async def fetch_source(
        self,
        client: httpx.AsyncClient,
        source: FeedSource,
        now: Optional[datetime] = None,
    ) -> List[CandidateItem]:
        """Fetch and parse a single source."""
        response = await _get(client, source.url)
        return self.parse_feed(response.content, source, now or datetime.now(timezone.utc))

    def parse_feed(self, content: bytes, source: FeedSource, now: datetime) -> List[CandidateItem]:
        """Parse an RSS or Atom document into candidates."""
        feed = feedparser.parse(content)
        if not feed.entries:
            if feed.bozo:
                raise UnparsableContent(f"Failed to parse feed {source.name}: {feed.get('bozo_exception')}")
            return []

        items = []
        for entry in feed.entries[: self.max_items_per_source]:
            title = html_to_text(entry.get("title", ""))
            link = (entry.get("link") or "").strip()
            if not title or not link:
                continue

            published = self._entry_datetime(entry)
            if published is None:
                if self.date_policy == "drop":
                    logger.debug(f"Dropping undated entry from {source.name}: {link}")
                    continue
                published = now

            snippet = html_to_text(entry.get("summary") or entry.get("description") or "")
            items.append(
                CandidateItem(
                    id=link_id(link),
                    title=title,
                    link=link,
                    pub_date=published,
                    source_name=source.name,
                    snippet=truncate(snippet, self.config.snippet_max_chars),
                    image_url=self.image_resolver.resolve(entry),
                )
            )
        return items

    @staticmethod
    def _entry_datetime(entry) -> Optional[datetime]:
        for key in ("published_parsed", "updated_parsed"):
            parsed = entry.get(key)
            if parsed:
                try:
                    return datetime(*parsed[:6], tzinfo=timezone.utc)
                except (TypeError, ValueError):
                    continue

        raw = entry.get("published") or entry.get("updated")
        if not raw:
            return None
        parsed = dateparser.parse(
            raw,
            settings={"RETURN_AS_TIMEZONE_AWARE": True, "TO_TIMEZONE": "UTC"},
        )
        if parsed is None:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


class PageScraper:
    """Scrape an arbitrary article page into a pending ScrapedDocument."""

    def __init__(
        self,
        store: PendingStore,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize page scraper."""
        self.store = store
        self.config = config or default_settings
        self.timeout = self.config.html_request_timeout
        self.transport = transport

    async def scrape(self, url: str) -> ScrapedDocument:
        """Fetch, extract and persist one page. Nothing is stored on failure."""
        url = (url or "").strip()
        scheme = urlparse(url).scheme.lower()
        if scheme not in ("http", "https"):
            raise SourceUnavailable(f"Unsupported URL: {url or '<empty>'}", url=url)

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": self.config.user_agent},
            transport=self.transport,
        ) as client:
            response = await _get(client, url)

        document = self.parse_html(url, response.text)
        await self.store.put(document)
        logger.info(f"Scraped {url} into pending entry {document.id} ({len(document.text)} chars)")
        return document

    def parse_html(self, url: str, html: str, scraped_at: Optional[datetime] = None) -> ScrapedDocument:
        """Extract title, summary and body text from raw HTML."""
        soup = BeautifulSoup(html or "", "html.parser")

        # Boilerplate must go before any text is read from the tree.
        for element in soup(NON_CONTENT_TAGS):
            element.decompose()
        for element in soup.select(NON_CONTENT_SELECTORS):
            element.decompose()
        for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
            comment.extract()

        title = self._title(soup)
        description = self._meta(soup, name="description") or self._meta(soup, prop="og:description")
        text = self._body_text(soup, url)
        text = truncate(text, self.config.scrape_max_text_chars)

        if description:
            summary = truncate(description, self.config.scrape_max_summary_chars)
        else:
            fallback = self.config.scrape_summary_fallback_chars
            summary = text[:fallback] + "..." if len(text) > fallback else text

        host = (urlparse(url).hostname or "").lower()
        return ScrapedDocument(
            id=uuid.uuid4().hex[:12],
            url=url,
            title=title,
            summary=summary,
            text=text,
            scraped_at=scraped_at or datetime.now(timezone.utc),
            source=host[4:] if host.startswith("www.") else host,
        )

    def _body_text(self, soup: BeautifulSoup, url: str) -> str:
        min_paragraph = self.config.scrape_min_paragraph_chars
        min_body = self.config.scrape_min_body_chars

        paragraphs = []
        for p in soup.find_all("p"):
            text = normalize_whitespace(p.get_text(" "))
            if len(text) > min_paragraph:
                paragraphs.append(text)
        body = "\n".join(paragraphs)

        if len(body) < min_body:
            container = soup.body or soup
            body = normalize_whitespace(container.get_text(" "))
            if len(body) < min_body:
                raise ContentTooShort(f"Content too short (SPA or anti-bot page): {url}")
        return body

    def _title(self, soup: BeautifulSoup) -> str:
        if soup.title:
            title = normalize_whitespace(soup.title.get_text())
            if title:
                return title
        return self._meta(soup, prop="og:title") or "Untitled"

    @staticmethod
    def _meta(soup: BeautifulSoup, name: Optional[str] = None, prop: Optional[str] = None) -> str:
        attrs = {"name": name} if name else {"property": prop}
        tag = soup.find("meta", attrs=attrs)
        if tag is None:
            return ""
        return normalize_whitespace(tag.get("content") or "")
