"""
RSS entry mapper
Normalizes feedparser entries from any configured source
"""

from datetime import datetime
from typing import Dict, Any, Optional
import structlog

from .base_mapper import BaseMapper
from ....utils.date_utils import utcnow
from ....utils.string_utils import clean_text, strip_html, truncate_text

logger = structlog.get_logger(__name__)

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp')


class RssEntryMapper(BaseMapper):
    """Mapper for generic RSS/Atom entries"""

    SUMMARY_LENGTH = 500

    def map_article(self, raw_data: Dict[str, Any]) -> Dict[str, Any]:
        title = clean_text(strip_html(raw_data.get('title', '')))
        url = (raw_data.get('link') or '').strip()
        if not title or not url:
            raise ValueError("Feed entry has no title or link")

        description = raw_data.get('summary') or raw_data.get('description') or ''
        content = self._entry_content(raw_data) or description

        clean_description = self.clean_content(description)
        return {
            'title': truncate_text(title, 500),
            'url': url,
            'source': self.source_name,
            'summary': truncate_text(clean_description, self.SUMMARY_LENGTH) if clean_description else title,
            'content': self.clean_content(content) or clean_description,
            'published_at': self._published_at(raw_data),
            'image_url': self.extract_image_url(raw_data),
        }

    def clean_content(self, content: str) -> str:
        return strip_html(content)

    def extract_image_url(self, entry: Dict[str, Any]) -> Optional[str]:
        """media:content, then media:thumbnail, then an image enclosure"""
        for media in entry.get('media_content') or []:
            url = media.get('url')
            medium = media.get('medium') or ''
            mime = media.get('type') or ''
            if url and (medium == 'image' or mime.startswith('image/') or url.lower().endswith(IMAGE_EXTENSIONS)):
                return url

        for thumbnail in entry.get('media_thumbnail') or []:
            if thumbnail.get('url'):
                return thumbnail['url']

        for link in entry.get('links') or []:
            if link.get('rel') == 'enclosure' and (link.get('type') or '').startswith('image/'):
                return link.get('href')

        return None

    def _entry_content(self, entry: Dict[str, Any]) -> str:
        # content:encoded arrives as a list of {value, type}
        for part in entry.get('content') or []:
            value = part.get('value')
            if value:
                return value
        return ''

    def _published_at(self, entry: Dict[str, Any]) -> datetime:
        for key in ('published_parsed', 'updated_parsed'):
            parsed = entry.get(key)
            if parsed:
                try:
                    return datetime(*parsed[:6])
                except (TypeError, ValueError):
                    logger.debug("feed_date_unparseable", source=self.source_name, value=str(parsed))

        for key in ('published', 'updated'):
            published = self.format_published_date(entry.get(key))
            if published:
                return published

        return utcnow()
