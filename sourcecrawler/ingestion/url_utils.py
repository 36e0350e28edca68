"""URL helpers for link resolution and post dedup."""

from __future__ import annotations

import hashlib
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urldefrag, urlencode, urljoin, urlparse, urlunparse


FETCHABLE_SCHEMES = ("http", "https")

DEFAULT_STRIP_QUERY_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "utm_id",
    "gclid",
    "fbclid",
    "yclid",
    "mc_cid",
    "mc_eid",
}


def absolute_url(base: Optional[str], href: Optional[str]) -> Optional[str]:
    """Resolve an href against the page it was found on.

    Returns None for empty hrefs, fragments-only links and non-http(s) schemes
    (javascript:, mailto:, ...).
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith("#"):
        return None
    resolved = urljoin(base or "", href)
    resolved, _ = urldefrag(resolved)
    if urlparse(resolved).scheme.lower() not in FETCHABLE_SCHEMES:
        return None
    return resolved


def canonicalize_url(url: str, *, strip_params: Optional[Iterable[str]] = None) -> str:
    """Canonical form used as the per-source uniqueness key.

    - Lowercase scheme + hostname
    - Remove fragments
    - Strip tracking query parameters, sort the rest
    """
    if not url:
        return ""
    strip = set(strip_params) if strip_params is not None else DEFAULT_STRIP_QUERY_PARAMS
    p = urlparse(url.strip())
    scheme = (p.scheme or "https").lower()
    netloc = (p.netloc or "").lower()
    path = p.path or "/"

    kept = [(k, v) for k, v in parse_qsl(p.query, keep_blank_values=True) if k.lower() not in strip]
    kept.sort(key=lambda kv: (kv[0].lower(), kv[1]))
    return urlunparse((scheme, netloc, path, "", urlencode(kept, doseq=True), ""))


def url_hash(url: str) -> str:
    return hashlib.sha256(canonicalize_url(url).encode("utf-8")).hexdigest()
