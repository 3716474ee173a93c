from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


TRACKING_QUERY_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "utm_id",
    "utm_name",
    "gclid",
    "fbclid",
    "mc_cid",
    "mc_eid",
    "ref",
    "ref_src",
    "ref_url",
}


def canonicalize_url(url: str, *, strip_params: Optional[Iterable[str]] = None) -> str:
    """Canonical form of an article URL for deduplication.

    - Lowercase scheme + hostname
    - Remove fragments
    - Strip tracking query parameters, sort the rest
    - Drop the trailing slash of non-root paths
    """
    if not url:
        return ""
    strip = set(strip_params) if strip_params is not None else TRACKING_QUERY_PARAMS
    parsed = urlparse(url.strip())
    scheme = (parsed.scheme or "https").lower()
    netloc = (parsed.netloc or "").lower()
    path = parsed.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    kept = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key.lower() not in strip and not key.lower().startswith("utm_")
    ]
    kept.sort(key=lambda kv: (kv[0].lower(), kv[1]))
    query = urlencode(kept, doseq=True)

    return urlunparse((scheme, netloc, path, "", query, ""))


def supports_web_url(url: str) -> bool:
    if not url:
        return False
    return url.startswith(('http://', 'https://'))
