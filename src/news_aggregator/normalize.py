"""URL and timestamp normalization used for dedup and storage."""

import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

logger = logging.getLogger(__name__)

# Full RFC 3339 style date-time; date-only and compact forms are rejected
ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}")


def normalize_url(url: str) -> str:
    """Canonicalize a URL into the dedup key.

    Lower-cases, trims surrounding whitespace and drops trailing slashes, so
    ``" HTTPS://Example.com/Post/ "`` and ``"https://example.com/post"`` map
    to the same key. Applying it twice gives the same result as once.
    """
    normalized = url.strip().lower()
    while normalized.endswith("/"):
        normalized = normalized[:-1].rstrip()
    return normalized


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an RFC 2822 or RFC 3339 timestamp into an aware UTC datetime.

    Returns None when the value is empty or matches neither format.
    """
    if not value or not value.strip():
        return None
    value = value.strip()

    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        parsed = None

    if parsed is None:
        if not ISO_DATETIME_RE.match(value):
            return None
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_datetime(value: str | None) -> str:
    """Return a canonical RFC 3339 UTC timestamp for a loosely formatted one.

    Empty or unparseable input is replaced by the current instant.
    """
    parsed = parse_datetime(value)
    if parsed is None:
        if value:
            logger.debug("Unparseable timestamp %r, using current time", value)
        parsed = utc_now()
    return parsed.isoformat()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
