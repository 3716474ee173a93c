"""
News source mappers
Each mapper turns one raw feed entry into standardized article fields
"""

from .base_mapper import BaseMapper
from .rss_mapper import RssEntryMapper

__all__ = [
    'BaseMapper',
    'RssEntryMapper'
]
