import hashlib
from datetime import date

from .string_utils import normalize_title
from .url_utils import canonicalize_url


def _digest(*parts) -> str:
    raw = "|".join(str(part) for part in parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def pdf_article_key(digest_date: date, section: str, title: str) -> str:
    return "pdf:" + _digest(digest_date.isoformat(), section, normalize_title(title))


def pdf_image_key(digest_date: date, section: str, title: str) -> str:
    return "img:" + _digest(digest_date.isoformat(), section, normalize_title(title))


def external_article_key(source_id: int, url: str) -> str:
    return "ext:" + _digest(source_id, canonicalize_url(url))
