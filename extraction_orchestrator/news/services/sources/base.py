"""
Base class for news source adapters
Clean, simple interface that all sources must implement
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional


@dataclass(frozen=True)
class SourceTarget:
    """Detached snapshot of an ExternalSource row, safe to hand to worker threads"""
    id: int
    name: str
    base_url: str
    rss_url: Optional[str] = None
    logo_url: Optional[str] = None

    @classmethod
    def from_model(cls, source) -> "SourceTarget":
        return cls(
            id=source.id,
            name=source.name,
            base_url=source.base_url,
            rss_url=source.rss_url,
            logo_url=source.logo_url,
        )


@dataclass
class NewsItem:
    """Standardized news item format for all sources"""
    title: str
    url: str
    summary: str
    source: str
    published_at: datetime
    content: Optional[str] = None
    image_url: Optional[str] = None

    def __post_init__(self):
        if not self.content:
            self.content = self.summary


class NewsSourceAdapter(ABC):
    """Base adapter for news sources"""

    def __init__(self, target: SourceTarget):
        self.target = target
        self.name = target.name
        self.base_url = target.base_url

    @abstractmethod
    def fetch_news(self, limit: int = 20) -> List[NewsItem]:
        """Fetch news from source and return standardized format.

        Raises SourceFetchFailedError when the source cannot be read at all.
        """
        pass
