"""Shared test fixtures for news aggregator tests."""

import os
import tempfile

import httpx
import pytest

from news_aggregator.database import Database


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <description>A test RSS feed</description>
    <item>
      <title>First Article</title>
      <link>https://Example.com/article-1/</link>
      <guid>article-1</guid>
      <description>Description of the first article</description>
      <pubDate>Thu, 13 Feb 2026 10:00:00 GMT</pubDate>
      <enclosure url="https://example.com/images/cover.jpg" length="1024" type="image/jpeg"/>
    </item>
    <item>
      <title>Second Article</title>
      <link>https://example.com/article-2</link>
      <guid>article-2</guid>
      <pubDate>not a date</pubDate>
    </item>
    <item>
      <title>No Link Article</title>
      <guid isPermaLink="false">article-3</guid>
      <description>Items without a link are skipped</description>
    </item>
  </channel>
</rss>"""

SAMPLE_ANTI_BOT_HTML = """<!DOCTYPE html>
<html>
  <head><title>Just a moment...</title></head>
  <body>Checking your browser before accessing the site.</body>
</html>"""

SAMPLE_LINK_PAGE_HTML = """<html>
<body>
  <a href="/relative">Relative link</a>
  <a href="https://news.example.com/story-1">Story one</a>
  <a href="https://news.example.com/story-2"><span>Story</span> <b>two</b></a>
  <a href="https://news.example.com/empty">   </a>
  <a href="mailto:someone@example.com">Mail</a>
  <a>No href</a>
</body>
</html>"""

SAMPLE_TRENDING_HTML = """<html>
<body>
  <article class="Box-row">
    <h2><a href="/acme/rocket">
      acme /
      rocket
    </a></h2>
    <p> A fast rocket engine </p>
    <span itemprop="programmingLanguage">Rust</span>
    <a href="/acme/rocket/stargazers"> 25,300 </a>
  </article>
  <article class="Box-row">
    <h2><a href="/acme/snail">acme / snail</a></h2>
    <p>A slow snail</p>
    <span itemprop="programmingLanguage">Python</span>
    <a href="/acme/snail/stargazers">15.5k</a>
  </article>
  <article class="Box-row">
    <h2><a href="/acme/oldie">acme / oldie</a></h2>
    <a href="/acme/oldie/stargazers">11k</a>
  </article>
</body>
</html>"""


def project_page(created_at: str | None) -> str:
    """HTML of a project page carrying an optional creation timestamp."""
    if created_at is None:
        return "<html><body>No dates here</body></html>"
    return (
        "<html><body>"
        f'<relative-time datetime="{created_at}">some time ago</relative-time>'
        '<time datetime="1999-01-01T00:00:00Z">ancient</time>'
        "</body></html>"
    )


def make_client_factory(handler, calls: list | None = None):
    """Build a client factory whose clients are served by ``handler``.

    Each factory call records the requested proxy flag in ``calls``.
    """

    def factory(use_proxy: bool) -> httpx.Client:
        if calls is not None:
            calls.append(use_proxy)
        return httpx.Client(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def tmp_db_path():
    """Provide a temporary SQLite database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(path + suffix)
        except OSError:
            pass


@pytest.fixture
def db(tmp_db_path):
    """A connected, empty database."""
    database = Database(tmp_db_path)
    database.connect()
    yield database
    database.close()


@pytest.fixture
def sample_rss_xml():
    """Sample RSS 2.0 feed with one enclosure and one incomplete item."""
    return SAMPLE_RSS_XML


@pytest.fixture
def sample_trending_html():
    """Sample trending listing with three projects."""
    return SAMPLE_TRENDING_HTML


@pytest.fixture(autouse=True)
def clear_ai_env(monkeypatch):
    """Keep the developer's AI and proxy settings out of tests."""
    for name in ("AI_BASE_URL", "AI_API_KEY", "AI_MODEL", "HTTP_PROXY", "http_proxy", "HTTPS_PROXY", "https_proxy"):
        monkeypatch.delenv(name, raising=False)
