"""Tests for the crawler run and manual article addition."""

import threading
from unittest.mock import MagicMock

import httpx
import pytest

from conftest import make_client_factory
from news_aggregator.database import ConcurrencyError, Database, DuplicateArticleError
from news_aggregator.fetchers import FeedFetcher, FetchError
from news_aggregator.models import RawItem, SourceKind
from news_aggregator.pipeline import MANUAL_SOURCE_NAME, add_article_from_url, run_ingestion
from news_aggregator.summarizer import Summarizer, template_summary


def item(url: str, title: str = "Title") -> RawItem:
    return RawItem(title=title, url=url, content="Body", published_at="2026-02-13T10:00:00+00:00")


def stub_fetcher(*results):
    """A fetcher whose fetch() returns or raises ``results`` in order."""
    fetcher = MagicMock()
    fetcher.fetch.side_effect = list(results)
    return fetcher


def offline_summarizer() -> Summarizer:
    return Summarizer(None)


class TestRunIngestion:
    def test_feed_end_to_end(self, db, sample_rss_xml):
        db.add_source("Test Feed", "https://example.com/feed.xml", "RSS")
        feed = FeedFetcher(make_client_factory(lambda request: httpx.Response(200, text=sample_rss_xml)))
        fetchers = {SourceKind.FEED: feed}

        result = run_ingestion(db, offline_summarizer(), fetchers)

        assert result.inserted == 2
        assert result.failed_sources == 0
        assert db.count_articles() == 2
        assert db.count_index_entries() == 2

        first = db.get_article_by_url("https://example.com/article-1")
        assert first.image_url == "https://example.com/images/cover.jpg"
        assert first.summary == template_summary("First Article", "Description of the first article")
        assert first.source == "Test Feed"

        # Running again finds nothing new
        assert run_ingestion(db, offline_summarizer(), fetchers).inserted == 0
        assert db.count_articles() == 2

    def test_failed_sources_are_counted_and_skipped(self, db):
        db.add_source("Broken", "https://broken.example.com/rss", "RSS")
        db.add_source("Crashing", "https://crash.example.com/rss", "RSS")
        db.add_source("Working", "https://ok.example.com/rss", "RSS")
        fetcher = stub_fetcher(
            FetchError("connection refused"),
            ValueError("unexpected"),
            [item("https://ok.example.com/1")],
        )

        result = run_ingestion(db, offline_summarizer(), {SourceKind.FEED: fetcher})

        assert result.failed_sources == 2
        assert result.inserted == 1

    def test_dispatches_by_source_kind(self, db):
        db.add_source("Feed", "https://example.com/rss", "RSS")
        db.add_source("Page", "https://example.com", "WEB")
        db.add_source("Trending", "https://github.com/trending", "WEB")
        fetchers = {
            SourceKind.FEED: stub_fetcher([item("https://example.com/f")]),
            SourceKind.PAGE: stub_fetcher([item("https://example.com/p")]),
            SourceKind.TRENDING_LIST: stub_fetcher([item("https://github.com/acme/rocket")]),
        }

        result = run_ingestion(db, offline_summarizer(), fetchers)

        assert result.inserted == 3
        for kind, fetcher in fetchers.items():
            fetcher.fetch.assert_called_once()
        assert fetchers[SourceKind.PAGE].fetch.call_args.args[0].name == "Page"
        assert db.get_article_by_url("https://github.com/acme/rocket").category == "GitHub"

    def test_nothing_persisted_until_all_sources_fetched(self, db):
        db.add_source("First", "https://one.example.com/rss", "RSS")
        db.add_source("Second", "https://two.example.com/rss", "RSS")
        counts_seen = []

        def fetch(source):
            counts_seen.append(db.count_articles())
            return [item(f"{source.url}/1")]

        fetcher = MagicMock()
        fetcher.fetch.side_effect = fetch

        run_ingestion(db, offline_summarizer(), {SourceKind.FEED: fetcher})

        assert counts_seen == [0, 0]
        assert db.count_articles() == 2

    def test_evicts_after_persisting(self, db):
        db.add_source("Feed", "https://example.com/rss", "RSS")
        fetcher = stub_fetcher([item("https://example.com/1")])
        db.cleanup_old_articles = MagicMock(return_value=4)

        result = run_ingestion(db, offline_summarizer(), {SourceKind.FEED: fetcher})

        db.cleanup_old_articles.assert_called_once_with()
        assert result.evicted == 4

    def test_stop_event_ends_fetching(self, db):
        db.add_source("First", "https://one.example.com/rss", "RSS")
        db.add_source("Second", "https://two.example.com/rss", "RSS")
        stop_event = threading.Event()

        def fetch(source):
            stop_event.set()
            return [item(f"{source.url}/1")]

        fetcher = MagicMock()
        fetcher.fetch.side_effect = fetch

        result = run_ingestion(db, offline_summarizer(), {SourceKind.FEED: fetcher}, stop_event)

        assert fetcher.fetch.call_count == 1
        assert result.inserted == 1

    def test_lock_contention_propagates(self, tmp_db_path):
        database = Database(tmp_db_path, lock_timeout=0.01)
        database.connect()
        try:
            with database.exclusive():
                with pytest.raises(ConcurrencyError):
                    run_ingestion(database, offline_summarizer(), {})
        finally:
            database.close()

    def test_each_item_is_summarized(self, db):
        db.add_source("Feed", "https://example.com/rss", "RSS")
        fetcher = stub_fetcher([item("https://example.com/1", "One"), item("https://example.com/2", "Two")])
        summarizer = MagicMock()
        summarizer.summarize.return_value = "AI summary"

        run_ingestion(db, summarizer, {SourceKind.FEED: fetcher})

        assert [c.args[0] for c in summarizer.summarize.call_args_list] == ["One", "Two"]
        assert db.get_article_by_url("https://example.com/1").summary == "AI summary"


PAGE_HTML = """<html><head>
<title>Manual Page</title>
<meta name="description" content="Something worth keeping">
</head></html>"""


class TestAddArticleFromUrl:
    def test_adds_manual_article(self, db):
        factory = make_client_factory(lambda request: httpx.Response(200, text=PAGE_HTML))

        article = add_article_from_url(db, " https://Example.com/Page/ ", factory)

        assert article.url == "https://example.com/page"
        assert article.title == "Manual Page"
        assert article.source == MANUAL_SOURCE_NAME
        assert article.category == "Tech"
        assert article.summary == template_summary("Manual Page", "Something worth keeping")
        assert db.count_articles() == 1
        assert db.count_index_entries() == 1

    def test_duplicate_is_rejected_before_fetching(self, db):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text=PAGE_HTML)

        factory = make_client_factory(handler)
        add_article_from_url(db, "https://example.com/page", factory)

        with pytest.raises(DuplicateArticleError):
            add_article_from_url(db, "https://EXAMPLE.com/page/", factory)
        assert len(requests) == 1
