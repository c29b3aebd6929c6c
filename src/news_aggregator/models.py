"""Data models for the news aggregator."""

from dataclasses import dataclass
from enum import Enum

TRENDING_URL_MARKER = "github.com/trending"


class SourceKind(Enum):
    """Which fetch adapter handles a source."""

    FEED = "feed"
    PAGE = "page"
    TRENDING_LIST = "trending_list"

    @classmethod
    def resolve(cls, source_type: str, url: str) -> "SourceKind | None":
        """Map a stored source type tag (RSS/WEB) and URL to a kind.

        Returns None for tags no adapter understands.
        """
        tag = (source_type or "").strip().upper()
        if tag == "RSS":
            return cls.FEED
        if tag == "WEB":
            if TRENDING_URL_MARKER in url.lower():
                return cls.TRENDING_LIST
            return cls.PAGE
        return None


@dataclass
class Source:
    """A configured origin polled by the crawler."""

    name: str
    url: str
    source_type: str
    kind: SourceKind
    is_active: bool = True
    id: str | None = None


@dataclass
class RawItem:
    """A candidate article extracted from a single fetch."""

    title: str
    url: str
    content: str
    published_at: str
    image_url: str | None = None


@dataclass
class PendingArticle:
    """A fetched item with its summary, waiting to be persisted."""

    source_name: str
    item: RawItem
    summary: str


@dataclass
class Article:
    """Represents a stored article."""

    id: str
    title: str
    summary: str
    content: str
    url: str
    source: str
    category: str
    published_at: str
    fetched_at: str
    heat_score: float = 0.0
    is_read: bool = False
    is_bookmarked: bool = False
    image_url: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "content": self.content,
            "url": self.url,
            "source": self.source,
            "category": self.category,
            "published_at": self.published_at,
            "fetched_at": self.fetched_at,
            "heat_score": self.heat_score,
            "is_read": self.is_read,
            "is_bookmarked": self.is_bookmarked,
            "image_url": self.image_url,
        }


@dataclass
class IngestResult:
    """Outcome of one crawler run."""

    inserted: int = 0
    failed_sources: int = 0
    evicted: int = 0


@dataclass
class RegenerationResult:
    """Outcome of a batch summary regeneration."""

    total_updated: int = 0
    total_processed: int = 0
