"""Field extraction utilities for feed entries (links, snippets, images)."""
import hashlib
import re
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

TRACKING_QUERY_PARAMS = {
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "utm_id", "utm_name", "gclid", "fbclid", "mc_cid", "mc_eid", "ref", "ref_src",
}


def canonicalize_url(url: str) -> str:
    """Canonicalize a link for dedup (lowercase host, no fragment, no trackers)."""
    if not url:
        return ""
    parsed = urlparse(url.strip())
    scheme = (parsed.scheme or "https").lower()
    netloc = (parsed.netloc or "").lower()
    path = parsed.path or "/"

    kept = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key.lower() not in TRACKING_QUERY_PARAMS
    ]
    query = urlencode(kept, doseq=True)
    return urlunparse((scheme, netloc, path, "", query, ""))


def link_id(url: str) -> str:
    """Deterministic id for a candidate, stable across re-fetches."""
    return hashlib.md5(canonicalize_url(url).encode()).hexdigest()[:12]


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def html_to_text(markup: str) -> str:
    """Strip tags from an HTML fragment and collapse whitespace."""
    if not markup:
        return ""
    if "<" not in markup:
        return normalize_whitespace(markup)
    soup = BeautifulSoup(markup, "html.parser")
    return normalize_whitespace(soup.get_text(" "))


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


def _is_image_type(mime: Optional[str]) -> bool:
    return bool(mime) and mime.lower().startswith("image/")


class ImageResolver:
    """Pick a representative image URL for a feed entry.

    The chain short-circuits on the first hit:

    1. an enclosure with an ``image/*`` MIME type
    2. ``media:content`` / ``media:thumbnail``
    3. the first ``<img>`` inside embedded HTML (content, then summary)

    Nothing is downloaded; only the URL reference is returned. ``None`` is a
    valid result.
    """

    def resolve(self, entry: Dict[str, Any]) -> Optional[str]:
        base = entry.get("link") or ""
        for step in (self._from_enclosures, self._from_media, self._from_embedded_html):
            url = step(entry)
            if url:
                return urljoin(base, url) if base else url
        return None

    def _from_enclosures(self, entry: Dict[str, Any]) -> Optional[str]:
        enclosures = list(entry.get("enclosures") or [])
        enclosures += [
            link for link in entry.get("links") or []
            if isinstance(link, dict) and link.get("rel") == "enclosure"
        ]
        for enclosure in enclosures:
            if not isinstance(enclosure, dict):
                continue
            href = enclosure.get("href") or enclosure.get("url")
            if href and _is_image_type(enclosure.get("type")):
                return href
        return None

    def _from_media(self, entry: Dict[str, Any]) -> Optional[str]:
        for media in entry.get("media_content") or []:
            if not isinstance(media, dict) or not media.get("url"):
                continue
            medium = (media.get("medium") or "").lower()
            mime = media.get("type")
            if medium == "image" or _is_image_type(mime) or (not medium and not mime):
                return media["url"]
        for thumb in entry.get("media_thumbnail") or []:
            if isinstance(thumb, dict) and thumb.get("url"):
                return thumb["url"]
        return None

    def _from_embedded_html(self, entry: Dict[str, Any]) -> Optional[str]:
        for markup in self._html_fields(entry):
            if "<img" not in markup.lower():
                continue
            soup = BeautifulSoup(markup, "html.parser")
            for img in soup.find_all("img"):
                src = (img.get("src") or "").strip()
                if src and not src.startswith("data:"):
                    return src
        return None

    @staticmethod
    def _html_fields(entry: Dict[str, Any]) -> Iterable[str]:
        fields: List[str] = []
        for content in entry.get("content") or []:
            value = content.get("value") if isinstance(content, dict) else None
            if value:
                fields.append(value)
        for key in ("summary", "description"):
            value = entry.get(key)
            if isinstance(value, str) and value:
                fields.append(value)
        return fields
