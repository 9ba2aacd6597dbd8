"""Utility helpers shared across modules."""

from __future__ import annotations

import time
from urllib.parse import unquote, urlsplit


def is_valid_url(url) -> bool:
    """True for absolute http(s) URLs; anything else, including non-strings, is invalid."""
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url)
        # Out-of-range or non-numeric ports raise here.
        parts.port
    except ValueError:
        return False
    host = parts.hostname
    if not host or any(char.isspace() for char in host):
        return False
    return parts.scheme in ("http", "https")


def file_name_from_url(url: str) -> str:
    """Last path segment of *url*, percent-decoded, or ``"file"``."""
    try:
        path = urlsplit(url).path
    except (TypeError, ValueError):
        return "file"
    name = path.rsplit("/", 1)[-1]
    return unquote(name) or "file"


def truncate(text: str, limit: int = 200) -> str:
    return text if len(text) <= limit else text[:limit]


def epoch_millis() -> int:
    return int(time.time() * 1000)
