"""
News source adapters
Each adapter retrieves one source's feed and returns NewsItem objects
"""

from .base import NewsItem, NewsSourceAdapter, SourceTarget
from .rss_adapter import RssSourceAdapter

__all__ = [
    'NewsItem',
    'NewsSourceAdapter',
    'SourceTarget',
    'RssSourceAdapter'
]
