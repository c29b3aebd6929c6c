"""Agent tool implementations for the news aggregator."""

import json

from langchain_core.tools import tool

from news_aggregator.database import ConcurrencyError, Database, DuplicateArticleError
from news_aggregator.fetchers import FetchError
from news_aggregator.pipeline import add_article_from_url, run_ingestion
from news_aggregator.regenerate import regenerate_summaries as run_regeneration
from news_aggregator.settings import ConfigurationError, load_settings

# Module-level database reference, set during agent initialization
_db: Database | None = None


def set_database(db: Database) -> None:
    """Set the database instance used by all tools."""
    global _db
    _db = db


def _get_db() -> Database:
    """Get the database instance, raising if not set."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call set_database() first.")
    return _db


def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def _article_preview(article) -> dict:
    return {
        "id": article.id,
        "title": article.title,
        "summary": article.summary,
        "url": article.url,
        "source": article.source,
        "category": article.category,
        "published_at": article.published_at,
        "is_read": article.is_read,
        "is_bookmarked": article.is_bookmarked,
    }


@tool
def list_articles(page: int = 1, page_size: int = 20, category: str = "all") -> str:
    """List stored articles, newest first.

    Args:
        page: Page number starting at 1.
        page_size: Number of articles per page (default 20).
        category: Optional category filter: "AI", "GitHub", "Tech" or "all".
    """
    db = _get_db()
    articles, total = db.list_articles(page=page, page_size=page_size, category=category)

    return json.dumps({
        "items": [_article_preview(a) for a in articles],
        "total": total,
        "page": max(page, 1),
        "page_size": page_size,
    })


@tool
def search_articles(keyword: str) -> str:
    """Search articles by keyword across titles, summaries and content.

    Args:
        keyword: The keyword or phrase to search for. Matches word prefixes.
    """
    db = _get_db()
    articles = db.search_articles(keyword)

    return json.dumps({
        "items": [_article_preview(a) for a in articles],
        "total": len(articles),
    })


@tool
def bookmark_article(article_id: str, value: bool = True) -> str:
    """Bookmark or un-bookmark an article. Bookmarked articles are never cleaned up.

    Args:
        article_id: The id of the article.
        value: True to bookmark, False to remove the bookmark.
    """
    db = _get_db()
    if not db.set_bookmark(article_id, value):
        return _error(f"No article with id '{article_id}'")
    return json.dumps({"status": "success", "id": article_id, "is_bookmarked": value})


@tool
def mark_article_read(article_id: str) -> str:
    """Mark an article as read.

    Args:
        article_id: The id of the article.
    """
    db = _get_db()
    if not db.mark_read(article_id):
        return _error(f"No article with id '{article_id}'")
    return json.dumps({"status": "success", "id": article_id})


@tool
def add_article(url: str) -> str:
    """Manually add a web page as an article.

    Args:
        url: The URL of the page to add.
    """
    db = _get_db()
    try:
        article = add_article_from_url(db, url)
    except (DuplicateArticleError, FetchError) as e:
        return _error(str(e))

    return json.dumps({"status": "added", "article": _article_preview(article)})


@tool
def run_crawler() -> str:
    """Fetch new articles from all active sources now."""
    db = _get_db()
    try:
        result = run_ingestion(db)
    except ConcurrencyError as e:
        return _error(str(e))

    return json.dumps({
        "status": "success",
        "inserted": result.inserted,
        "failed_sources": result.failed_sources,
        "evicted": result.evicted,
    })


@tool
def cleanup_articles() -> str:
    """Remove the oldest non-bookmarked articles beyond the storage cap."""
    db = _get_db()
    try:
        deleted = db.cleanup_old_articles()
    except ConcurrencyError as e:
        return _error(str(e))
    return json.dumps({"status": "success", "deleted": deleted})


@tool
def regenerate_summaries() -> str:
    """Replace template summaries with AI-generated ones. Slow: paced at one article per second."""
    db = _get_db()
    try:
        result = run_regeneration(db)
    except (ConfigurationError, ConcurrencyError) as e:
        return _error(str(e))

    return json.dumps({
        "status": "success",
        "total_updated": result.total_updated,
        "total_processed": result.total_processed,
    })


@tool
def list_sources() -> str:
    """List all configured sources with their type and whether they are active."""
    db = _get_db()
    sources = db.get_all_sources()
    return json.dumps({"sources": sources, "total": len(sources)})


@tool
def get_settings() -> str:
    """Show current settings (the API key is masked)."""
    db = _get_db()
    return json.dumps(load_settings(db).to_dict())
