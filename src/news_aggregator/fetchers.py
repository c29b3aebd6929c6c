"""Fetch adapters: turn a configured source into raw candidate items.

Each adapter implements ``fetch(source) -> list[RawItem]``. Network failures
raise ``FetchError`` so the crawler can count the source as failed. Content
that cannot be parsed, or that looks like an anti-bot page, yields an empty
list instead.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import urljoin

import feedparser
import httpx
from bs4 import BeautifulSoup

from news_aggregator.http_client import create_http_client, is_domestic_site
from news_aggregator.models import RawItem, Source, SourceKind
from news_aggregator.normalize import (
    normalize_datetime,
    normalize_url,
    parse_datetime,
    utc_now,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[bool], httpx.Client]

MAX_ITEMS_PER_SOURCE = 12
DETAIL_PAGE_TIMEOUT = 10.0

DEFAULT_DESCRIPTION = "No description available"
WEB_CONTENT_MARKER = "Web-scraped content"
TRENDING_FALLBACK_CONTENT = "GitHub trending project"

FEED_HEADERS = {
    "Accept": "application/rss+xml, application/xml, text/xml;q=0.9, */*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://www.google.com/",
}
HTML_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

# Markers of an HTML page served where a feed was expected
HTML_MARKERS = (
    "<!doctype html",
    "just a moment",
    "checking your browser",
    "access denied",
    "<title>404",
    "page not found",
    "<html",
)


class FetchError(Exception):
    """Raised when a source cannot be reached."""


@dataclass
class TrendingProject:
    """Quality signals scraped from one row of a trending listing."""

    path: str
    name: str
    description: str
    language: str
    stars: int


def looks_like_html(body: str) -> bool:
    """Detect HTML/anti-bot responses served in place of a feed."""
    lowered = body.lower()
    return any(marker in lowered for marker in HTML_MARKERS)


def parse_star_count(text: str) -> int:
    """Parse GitHub's star display ("1.2k", "15,500", "999") into an int."""
    cleaned = text.replace(",", "").replace(" ", "").strip()
    if not cleaned:
        return 0
    try:
        if cleaned.lower().endswith("k"):
            return round(float(cleaned[:-1]) * 1000)
        return int(cleaned)
    except ValueError:
        return 0


def passes_quality_gate(stars: int, age_days: int | None) -> bool:
    """Decide whether a trending project is notable enough to keep.

    Younger projects need more stars: under two weeks old requires more than
    20k, under two months more than 30k, anything older (or of unknown age)
    more than 10k.
    """
    if age_days is not None and age_days < 14:
        return stars > 20000
    if age_days is not None and age_days < 60:
        return stars > 30000
    return stars > 10000


class SourceFetcher:
    """Base class for fetch adapters."""

    def __init__(self, client_factory: ClientFactory = create_http_client):
        self._client_factory = client_factory

    def fetch(self, source: Source) -> list[RawItem]:
        raise NotImplementedError

    def _get(self, client: httpx.Client, url: str, headers: dict) -> httpx.Response:
        try:
            return client.get(url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            raise FetchError(f"HTTP request failed: {e}") from e


class FeedFetcher(SourceFetcher):
    """Fetches RSS/Atom feeds."""

    def fetch(self, source: Source) -> list[RawItem]:
        with self._client_factory(not is_domestic_site(source.url)) as client:
            response = self._get(client, source.url, FEED_HEADERS)

        if looks_like_html(response.text):
            logger.warning(
                "Feed '%s' returned HTML instead of a feed (possibly blocked), skipping: %s",
                source.name,
                source.url,
            )
            return []

        # Raw bytes let feedparser honour the encoding the feed declares
        parsed = feedparser.parse(response.content)
        if parsed.bozo and not parsed.entries:
            logger.warning(
                "Could not parse feed '%s': %s. Content preview: %.100s",
                source.name,
                parsed.get("bozo_exception"),
                response.text,
            )
            return []

        return _extract_feed_items(parsed.entries[:MAX_ITEMS_PER_SOURCE])


def _extract_feed_items(entries: list) -> list[RawItem]:
    """Build raw items from feedparser entries, skipping incomplete ones."""
    items = []
    for entry in entries:
        title = entry.get("title")
        link = entry.get("link")
        if not title or not link:
            continue

        description = entry.get("summary") or entry.get("description") or DEFAULT_DESCRIPTION
        published = entry.get("published") or entry.get("updated") or ""

        items.append(
            RawItem(
                title=title,
                url=normalize_url(link),
                content=description,
                published_at=normalize_datetime(published),
                image_url=_enclosure_url(entry),
            )
        )
    return items


def _enclosure_url(entry) -> str | None:
    for enclosure in entry.get("enclosures") or []:
        href = enclosure.get("href") or enclosure.get("url")
        if href:
            return href
    return None


class PageLinkFetcher(SourceFetcher):
    """Scrapes absolute links out of an ordinary HTML page."""

    def fetch(self, source: Source) -> list[RawItem]:
        with self._client_factory(not is_domestic_site(source.url)) as client:
            body = self._get(client, source.url, HTML_HEADERS).text

        soup = BeautifulSoup(body, "html.parser")
        now = utc_now().isoformat()
        items = []
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"]
            if not href.startswith("http"):
                continue
            title = anchor.get_text(" ", strip=True)
            if not title:
                continue
            items.append(
                RawItem(
                    title=title,
                    url=normalize_url(href),
                    content=WEB_CONTENT_MARKER,
                    published_at=now,
                )
            )
            if len(items) >= MAX_ITEMS_PER_SOURCE:
                break
        return items


class TrendingListFetcher(SourceFetcher):
    """Two-phase fetch of a trending-repository listing.

    The listing page yields name, description, language and stars for each
    project. Each project page is then fetched to find its creation time,
    and only projects passing ``passes_quality_gate`` become items.
    """

    def fetch(self, source: Source) -> list[RawItem]:
        # This source always needs the proxy
        with self._client_factory(True) as client:
            body = self._get(client, source.url, HTML_HEADERS).text
            projects = parse_trending_page(body)

            now = utc_now()
            items = []
            for project in projects:
                if not project.path:
                    continue
                project_url = urljoin(source.url, project.path)
                created_at = self._fetch_created_at(client, project_url)
                age_days = (now - created_at).days if created_at else None

                if not passes_quality_gate(project.stars, age_days):
                    continue

                title = project.name
                if project.language:
                    title = f"{project.name} [{project.language}]"
                items.append(
                    RawItem(
                        title=title,
                        url=normalize_url(project_url),
                        content=project.description or TRENDING_FALLBACK_CONTENT,
                        published_at=now.isoformat(),
                    )
                )

        logger.info(
            "Trending '%s': %d of %d projects passed the quality filter",
            source.name,
            len(items),
            len(projects),
        )
        return items

    def _fetch_created_at(self, client: httpx.Client, url: str) -> datetime | None:
        try:
            response = client.get(url, headers={"Accept": "text/html"}, timeout=DETAIL_PAGE_TIMEOUT)
        except httpx.HTTPError as e:
            logger.debug("Project page %s unavailable: %s", url, e)
            return None
        return find_earliest_timestamp(response.text)


def parse_trending_page(html: str) -> list[TrendingProject]:
    """Extract project rows from a trending listing page."""
    soup = BeautifulSoup(html, "html.parser")
    projects = []
    for row in soup.select("article.Box-row"):
        name_link = row.select_one("h2 a")
        if name_link is None:
            continue

        description = row.select_one("p")
        language = row.select_one("span[itemprop='programmingLanguage']")
        stars = row.select_one("a[href$='/stargazers']")

        projects.append(
            TrendingProject(
                path=name_link.get("href", ""),
                name=" ".join(name_link.get_text().split()),
                description=description.get_text(strip=True) if description else "",
                language=language.get_text(strip=True) if language else "",
                stars=parse_star_count(stars.get_text(strip=True)) if stars else 0,
            )
        )
    return projects


def find_earliest_timestamp(html: str) -> datetime | None:
    """Return the first machine-readable timestamp on a project page.

    ``<relative-time datetime=...>`` elements are preferred over ``<time>``.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag_name in ("relative-time", "time"):
        for element in soup.find_all(tag_name, attrs={"datetime": True}):
            parsed = parse_datetime(element["datetime"])
            if parsed is not None:
                return parsed
    return None


@dataclass
class PageMetadata:
    """Title, description and cover image of a single web page."""

    title: str
    content: str
    image_url: str


def fetch_page_metadata(url: str, client_factory: ClientFactory = create_http_client) -> PageMetadata:
    """Fetch a page and pull out its title, description and og:image.

    Raises:
        FetchError: If the page cannot be retrieved.
    """
    with client_factory(not is_domestic_site(url)) as client:
        try:
            response = client.get(url, headers=HTML_HEADERS, timeout=15.0)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            raise FetchError(f"Failed to fetch page: {e}") from e

    soup = BeautifulSoup(response.text, "html.parser")

    title = None
    if soup.title and soup.title.get_text(strip=True):
        title = soup.title.get_text(strip=True)
    if not title:
        title = _meta_content(soup, property="og:title")
    if not title:
        heading = soup.find("h1")
        if heading and heading.get_text(strip=True):
            title = heading.get_text(strip=True)

    content = _meta_content(soup, name="description") or _meta_content(soup, property="og:description")

    return PageMetadata(
        title=title or "Untitled",
        content=content or "Manually added article",
        image_url=_meta_content(soup, property="og:image") or "",
    )


def _meta_content(soup: BeautifulSoup, **attrs) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        return tag["content"].strip()
    return None


def build_fetchers(client_factory: ClientFactory = create_http_client) -> dict[SourceKind, SourceFetcher]:
    """Create one adapter per source kind, sharing a client factory."""
    return {
        SourceKind.FEED: FeedFetcher(client_factory),
        SourceKind.PAGE: PageLinkFetcher(client_factory),
        SourceKind.TRENDING_LIST: TrendingListFetcher(client_factory),
    }
