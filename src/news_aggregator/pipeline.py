"""Crawler run: collect sources, fetch and summarize, persist, evict.

One run is a LangGraph state machine::

    collect_sources -> fetch_and_summarize -> persist -> evict -> END

Sources are processed one at a time in snapshot order. Nothing is written
until every source has been fetched, and eviction always runs last.
"""

import logging
import threading
import uuid
from typing import TypedDict

from langgraph.graph import END, START, StateGraph

from news_aggregator.database import Database, DuplicateArticleError
from news_aggregator.fetchers import (
    ClientFactory,
    FetchError,
    SourceFetcher,
    build_fetchers,
    fetch_page_metadata,
)
from news_aggregator.http_client import create_http_client
from news_aggregator.models import (
    Article,
    IngestResult,
    PendingArticle,
    Source,
    SourceKind,
)
from news_aggregator.normalize import normalize_url, utc_now
from news_aggregator.settings import load_summary_config
from news_aggregator.summarizer import Summarizer, template_summary

logger = logging.getLogger(__name__)

MANUAL_SOURCE_NAME = "Manual"


class IngestionState(TypedDict, total=False):
    sources: list[Source]
    pending: list[PendingArticle]
    failed_sources: int
    inserted: int
    evicted: int


def build_ingestion_graph(
    db: Database,
    summarizer: Summarizer,
    fetchers: dict[SourceKind, SourceFetcher],
    stop_event: threading.Event | None = None,
):
    """Create and compile the crawler state machine.

    Args:
        db: Open database the run reads sources from and writes articles to.
        summarizer: Summary generator applied to every fetched item.
        fetchers: Adapter for each source kind.
        stop_event: When set, fetching stops at the next source boundary.

    Returns:
        Compiled LangGraph graph.
    """

    def collect_sources(state: IngestionState):
        sources = db.list_active_sources()
        logger.info("Crawling %d active sources", len(sources))
        return {"sources": sources}

    def fetch_and_summarize(state: IngestionState):
        pending: list[PendingArticle] = []
        failed = 0
        for source in state["sources"]:
            if stop_event is not None and stop_event.is_set():
                logger.info("Crawl cancelled before source '%s'", source.name)
                break
            try:
                items = fetchers[source.kind].fetch(source)
            except FetchError as e:
                logger.warning("Failed to fetch from source '%s': %s", source.name, e)
                failed += 1
                continue
            except Exception as e:
                logger.warning("Source '%s' unexpected error: %s", source.name, e)
                failed += 1
                continue

            for item in items:
                summary = summarizer.summarize(item.title, item.content)
                pending.append(PendingArticle(source_name=source.name, item=item, summary=summary))

        return {"pending": pending, "failed_sources": failed}

    def persist(state: IngestionState):
        inserted = db.insert_articles(state["pending"])
        logger.info(
            "Stored %d new articles out of %d fetched", inserted, len(state["pending"])
        )
        return {"inserted": inserted}

    def evict(state: IngestionState):
        return {"evicted": db.cleanup_old_articles()}

    builder = StateGraph(IngestionState)
    builder.add_node("collect_sources", collect_sources)
    builder.add_node("fetch_and_summarize", fetch_and_summarize)
    builder.add_node("persist", persist)
    builder.add_node("evict", evict)

    builder.add_edge(START, "collect_sources")
    builder.add_edge("collect_sources", "fetch_and_summarize")
    builder.add_edge("fetch_and_summarize", "persist")
    builder.add_edge("persist", "evict")
    builder.add_edge("evict", END)

    return builder.compile()


def run_ingestion(
    db: Database,
    summarizer: Summarizer | None = None,
    fetchers: dict[SourceKind, SourceFetcher] | None = None,
    stop_event: threading.Event | None = None,
) -> IngestResult:
    """Run one full crawl over the active sources.

    Raises:
        ConcurrencyError: If the database lock cannot be acquired.
    """
    if summarizer is None:
        summarizer = Summarizer(load_summary_config(db))
    if fetchers is None:
        fetchers = build_fetchers()

    graph = build_ingestion_graph(db, summarizer, fetchers, stop_event)
    final = graph.invoke({"sources": [], "pending": [], "failed_sources": 0, "inserted": 0, "evicted": 0})

    result = IngestResult(
        inserted=final["inserted"],
        failed_sources=final["failed_sources"],
        evicted=final["evicted"],
    )
    logger.info(
        "Crawl complete: %d inserted, %d failed sources, %d evicted",
        result.inserted,
        result.failed_sources,
        result.evicted,
    )
    return result


def add_article_from_url(
    db: Database, url: str, client_factory: ClientFactory = create_http_client
) -> Article:
    """Fetch a single page and store it as a manually added article.

    Raises:
        DuplicateArticleError: If the URL is already stored.
        FetchError: If the page cannot be retrieved.
    """
    normalized = normalize_url(url)
    if db.article_exists(normalized):
        raise DuplicateArticleError("This link has already been added")

    metadata = fetch_page_metadata(url.strip(), client_factory)
    now = utc_now().isoformat()
    article = Article(
        id=str(uuid.uuid4()),
        title=metadata.title,
        summary=template_summary(metadata.title, metadata.content),
        content=metadata.content,
        url=normalized,
        source=MANUAL_SOURCE_NAME,
        category="Tech",
        published_at=now,
        fetched_at=now,
        image_url=metadata.image_url,
    )
    return db.insert_article(article)
