"""
Base mapper class for news sources
Defines the interface that all source mappers must implement
"""

from abc import ABC, abstractmethod
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Dict, Any, Optional

from ....utils.date_utils import to_utc_naive


class BaseMapper(ABC):
    """Base class for news source mappers"""

    def __init__(self, source_name: str):
        self.source_name = source_name

    @abstractmethod
    def map_article(self, raw_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Map raw article data to standardized format

        Args:
            raw_data: Raw article data from source

        Returns:
            Standardized article data dict with keys:
            - title: str
            - url: str
            - source: str
            - summary: str
            - content: str
            - published_at: datetime
            - image_url: Optional[str]
        """
        pass

    @abstractmethod
    def clean_content(self, content: str) -> str:
        """
        Clean and format content specific to this source

        Args:
            content: Raw content from source

        Returns:
            Cleaned and formatted content
        """
        pass

    def format_published_date(self, date_str: str) -> Optional[datetime]:
        """
        Parse a feed date string (RFC 822 or ISO 8601) into naive UTC

        Args:
            date_str: Date string from source

        Returns:
            Parsed datetime or None
        """
        if not date_str:
            return None

        try:
            return to_utc_naive(parsedate_to_datetime(date_str))
        except (TypeError, ValueError):
            pass

        formats = [
            '%Y-%m-%dT%H:%M:%S%z',
            '%Y-%m-%dT%H:%M:%SZ',
            '%Y-%m-%dT%H:%M:%S',
            '%Y-%m-%d %H:%M:%S',
            '%Y-%m-%d',
        ]

        for fmt in formats:
            try:
                return to_utc_naive(datetime.strptime(date_str, fmt))
            except ValueError:
                continue

        return None
