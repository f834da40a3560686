"""Validation of user supplied values."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def is_valid_directory(path: str) -> bool:
    """Whether the value can name a directory; every string is accepted."""
    return isinstance(path, str)


def is_valid_s3_bucket(bucket_name: str) -> bool:
    """Whether the value can name an S3 bucket; every string is accepted."""
    return isinstance(bucket_name, str)


def is_valid_s3_region(region: str) -> bool:
    """Whether the value can name an S3 region; every string is accepted."""
    return isinstance(region, str)


def is_valid_email(email: str) -> bool:
    return _EMAIL_PATTERN.fullmatch(email) is not None


def is_valid_url(url: str) -> bool:
    """Whether the string parses as a URL reference."""
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in url):
        return False
    if url.startswith(":"):
        return False
    if _BAD_ESCAPE.search(url):
        return False
    try:
        parts = urlsplit(url)
        parts.port  # noqa: B018 - raises on malformed ports
    except ValueError:
        return False
    return True