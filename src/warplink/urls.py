"""Helpers for recognising WarpLink URLs."""
from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import unquote, urlsplit

from .options import DEFAULT_LINK_DOMAINS


def link_domain(url: str) -> str | None:
    """Return the URL's host, lowercased, or None if it has none."""
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def is_warplink_url(url: str, domains: Iterable[str] = DEFAULT_LINK_DOMAINS) -> bool:
    """Whether the URL's host is one of the recognised link domains."""
    host = link_domain(url)
    return host is not None and host in {d.lower() for d in domains}


def extract_slug(url: str) -> str | None:
    """First non-empty path segment, e.g. ``https://aplnk.to/abc123`` -> ``abc123``."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return None
    for segment in path.split("/"):
        if segment:
            return unquote(segment)
    return None
