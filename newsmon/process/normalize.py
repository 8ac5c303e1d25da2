"""Pure functions turning raw feed fields into canonical, comparable forms.

normalize_title doubles as the dedup key for articles and the identity key
for entities. Changing it invalidates existing dedup guarantees, so any change
must bump NORMALIZATION_VERSION and come with a backfill of stored keys.
"""

from __future__ import annotations

import hashlib
import re
from datetime import date, datetime, timezone
from urllib.parse import urlparse

NORMALIZATION_VERSION = 1

DEFAULT_SNIPPET_LENGTH = 500

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_SPACE_BEFORE_NEWLINE = re.compile(r"[ \t\r\f\v]+\n")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")
_GDELT_DATE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})Z$")


def normalize_title(raw: str | None) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    if not raw:
        return ""
    text = _PUNCTUATION.sub("", raw.lower())
    return _WHITESPACE.sub(" ", text).strip()


def normalize_content(raw: str | None) -> str:
    """Tidy article body text: trailing spaces and runs of blank lines."""
    if not raw:
        return ""
    text = _SPACE_BEFORE_NEWLINE.sub("\n", raw)
    return _EXTRA_NEWLINES.sub("\n\n", text).strip()


def extract_domain(url: str | None) -> str:
    """Return the URL host without a leading ``www.``, or ``"unknown"``."""
    if not url:
        return "unknown"
    try:
        host = urlparse(url.strip()).hostname
    except ValueError:
        return "unknown"
    if not host:
        return "unknown"
    if host.startswith("www."):
        host = host[4:]
    return host or "unknown"


def url_hash(url: str) -> str:
    """SHA-256 hex digest of the URL. Stable across runs."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def create_snippet(text: str | None, max_len: int = DEFAULT_SNIPPET_LENGTH) -> str:
    """Collapse whitespace and cut to max_len characters, adding an ellipsis."""
    if not text:
        return ""
    collapsed = _WHITESPACE.sub(" ", text).strip()
    if len(collapsed) <= max_len:
        return collapsed
    return collapsed[:max_len] + "..."


def parse_date(raw: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive timestamps are taken as UTC. Anything unparseable yields None;
    this never raises and never substitutes the current time.
    """
    if not raw or not isinstance(raw, str):
        return None
    value = raw.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            day = date.fromisoformat(value)
        except ValueError:
            return None
        parsed = datetime(day.year, day.month, day.day)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        return None


def parse_gdelt_date(seendate: str | None) -> datetime | None:
    """Parse GDELT's compact ``YYYYMMDDTHHMMSSZ`` stamp."""
    if not seendate:
        return None
    match = _GDELT_DATE.match(seendate.strip())
    if not match:
        return parse_date(seendate)
    try:
        return datetime(*(int(part) for part in match.groups()), tzinfo=timezone.utc)
    except ValueError:
        return None
