import re
import unicodedata

from bs4 import BeautifulSoup


_PUNCTUATION = re.compile(r"[^\w\s]", re.UNICODE)


def clean_text(text: str) -> str:
    return ' '.join(text.split())


def strip_html(text: str) -> str:
    if not text:
        return ""
    return clean_text(BeautifulSoup(text, "html.parser").get_text(" "))


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_title(title: str) -> str:
    """Lowercase, accent-free, punctuation-free form used for dedupe keys."""
    if not title:
        return ""
    text = strip_accents(title).lower()
    text = _PUNCTUATION.sub(" ", text)
    return clean_text(text)


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."
