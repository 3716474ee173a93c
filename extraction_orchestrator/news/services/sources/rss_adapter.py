"""
RSS adapter for registry-configured sources
Fetches the feed with httpx and parses it with feedparser
"""

import time
from typing import List, Optional

import feedparser
import httpx
import structlog

from .base import NewsSourceAdapter, NewsItem, SourceTarget
from ..mappers.rss_mapper import RssEntryMapper
from ....core.exceptions import SourceFetchFailedError
from ....utils.http_utils import read_with_deadline

logger = structlog.get_logger(__name__)


class RssSourceAdapter(NewsSourceAdapter):
    """Adapter for any source whose registry row carries an RSS/Atom feed URL"""

    def __init__(
        self,
        target: SourceTarget,
        timeout: float = 30.0,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(target)
        self.rss_url = target.rss_url
        self.timeout = timeout
        self.user_agent = user_agent
        self.transport = transport
        self.mapper = RssEntryMapper(target.name)

    def fetch_news(self, limit: int = 50) -> List[NewsItem]:
        if not self.rss_url:
            raise SourceFetchFailedError(
                "No RSS URL configured", reason="MissingFeedUrl", source_id=self.target.id
            )

        feed = feedparser.parse(self._download_feed())
        if not feed.get("version"):
            # feedparser recognised no RSS/Atom document, e.g. an HTML page at a moved feed URL
            raise SourceFetchFailedError(
                f"Not an RSS or Atom feed: {self.rss_url}",
                reason="MalformedFeed",
                source_id=self.target.id,
            )
        if feed.bozo and not feed.entries:
            raise SourceFetchFailedError(
                f"Malformed feed: {feed.get('bozo_exception')}",
                reason="MalformedFeed",
                source_id=self.target.id,
            )
        if feed.bozo:
            logger.warning("feed_parse_issues", source=self.name, error=str(feed.get('bozo_exception')))

        articles = []
        for entry in feed.entries[:limit]:
            try:
                article_data = self.mapper.map_article(entry)
            except ValueError as e:
                logger.warning("feed_entry_skipped", source=self.name, title=entry.get('title'), error=str(e))
                continue

            articles.append(NewsItem(
                title=article_data['title'],
                url=article_data['url'],
                summary=article_data['summary'],
                source=article_data['source'],
                published_at=article_data['published_at'],
                content=article_data['content'],
                image_url=article_data['image_url'] or self.target.logo_url,
            ))

        logger.info("feed_fetched", source=self.name, entries=len(feed.entries), articles=len(articles))
        return articles

    def _download_feed(self) -> bytes:
        headers = {"Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"}
        if self.user_agent:
            headers["User-Agent"] = self.user_agent

        deadline = time.monotonic() + self.timeout
        try:
            with httpx.Client(
                timeout=self.timeout,
                follow_redirects=True,
                headers=headers,
                transport=self.transport,
            ) as client:
                with client.stream("GET", self.rss_url) as response:
                    response.raise_for_status()
                    return read_with_deadline(response, deadline)
        except httpx.TimeoutException as e:
            raise SourceFetchFailedError(
                f"Timed out after {self.timeout}s: {e}", reason="Timeout", source_id=self.target.id
            )
        except httpx.HTTPStatusError as e:
            raise SourceFetchFailedError(
                f"HTTP {e.response.status_code} from {self.rss_url}",
                reason="HttpStatus",
                source_id=self.target.id,
                status_code=e.response.status_code,
            )
        except httpx.HTTPError as e:
            raise SourceFetchFailedError(str(e) or e.__class__.__name__, reason="FetchError", source_id=self.target.id)
