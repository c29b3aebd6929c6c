"""SQLite storage for sources, articles, their keyword index and settings."""

import logging
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from news_aggregator.models import Article, PendingArticle, Source, SourceKind
from news_aggregator.normalize import normalize_url, utc_now

logger = logging.getLogger(__name__)

MAX_ARTICLES = 300
MAX_ACTIVE_SOURCES = 20
LOCK_TIMEOUT = 30.0

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS articles (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    summary TEXT,
    content TEXT,
    url TEXT UNIQUE NOT NULL,
    source TEXT,
    category TEXT,
    published_at TEXT,
    fetched_at TEXT,
    heat_score REAL DEFAULT 0,
    is_read INTEGER DEFAULT 0,
    is_bookmarked INTEGER DEFAULT 0,
    image_url TEXT
);

CREATE INDEX IF NOT EXISTS idx_articles_fetched_at ON articles(fetched_at);
CREATE INDEX IF NOT EXISTS idx_articles_published_at ON articles(published_at);

CREATE TABLE IF NOT EXISTS sources (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    url TEXT NOT NULL,
    source_type TEXT NOT NULL,
    is_active INTEGER DEFAULT 1
);

CREATE VIRTUAL TABLE IF NOT EXISTS articles_fts USING fts5(
    title,
    summary,
    content,
    tokenize = 'unicode61'
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT
);
"""

ARTICLE_FIELDS = (
    "id", "title", "summary", "content", "url", "source", "category",
    "published_at", "fetched_at", "heat_score", "is_read", "is_bookmarked", "image_url",
)
ARTICLE_COLUMNS = ", ".join(ARTICLE_FIELDS)

DEFAULT_SOURCES = [
    ("Hacker News Frontpage", "https://hnrss.org/frontpage", "RSS"),
    ("Hacker News AI", "https://hnrss.org/newest?q=AI+OR+machine+learning+OR+GPT+OR+LLM", "RSS"),
    ("GitHub Trending (all)", "https://github.com/trending", "WEB"),
    ("GitHub Trending Python", "https://github.com/trending/python", "WEB"),
    ("GitHub Trending TypeScript", "https://github.com/trending/typescript", "WEB"),
    ("GitHub Trending Rust", "https://github.com/trending/rust", "WEB"),
    ("Dev.to AI Tag", "https://dev.to/feed/tag/ai", "RSS"),
    ("Reddit MachineLearning", "https://www.reddit.com/r/MachineLearning/.rss", "RSS"),
    ("The Verge AI", "https://www.theverge.com/ai-ml/rss", "RSS"),
    ("Ars Technica AI", "https://arstechnica.com/ai/feed/", "RSS"),
    ("TechCrunch AI", "https://techcrunch.com/category/artificial-intelligence/feed/", "RSS"),
    ("OSChina 资讯", "https://www.oschina.net/news/rss", "RSS"),
    ("V2EX 技术", "https://www.v2ex.com/index.xml", "RSS"),
    ("InfoQ 中文", "https://www.infoq.cn/feed", "RSS"),
]


class ConcurrencyError(Exception):
    """Raised when the database's exclusive scope cannot be acquired."""


class DuplicateArticleError(Exception):
    """Raised when an article with the same normalized URL already exists."""


def categorize_source(source_name: str) -> str:
    """Derive an article category from the name of its source."""
    if "GitHub" in source_name:
        return "GitHub"
    if "AI" in source_name or "人工" in source_name or "智能" in source_name:
        return "AI"
    return "Tech"


class Database:
    """SQLite database manager for the article store.

    Every unit of work that spans more than one statement runs inside
    ``exclusive()``, which holds a single lock for its whole duration.
    """

    def __init__(self, db_path: str, lock_timeout: float = LOCK_TIMEOUT):
        self.db_path = db_path
        self.lock_timeout = lock_timeout
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Open database connection and initialize schema."""
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def exclusive(self) -> Iterator[sqlite3.Connection]:
        """Hold the database lock for a unit of work.

        Raises:
            ConcurrencyError: If the lock is not acquired within the timeout.
        """
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise ConcurrencyError(
                f"Could not acquire database lock within {self.lock_timeout}s"
            )
        try:
            yield self.conn
        finally:
            self._lock.release()

    # --- Source operations ---

    def add_source(self, name: str, url: str, source_type: str, is_active: bool = True) -> str:
        """Insert a source and return its id."""
        source_id = f"source_{uuid.uuid4().hex[:12]}"
        with self.exclusive() as conn, conn:
            conn.execute(
                "INSERT INTO sources (id, name, url, source_type, is_active) VALUES (?, ?, ?, ?, ?)",
                (source_id, name, url, source_type, int(is_active)),
            )
        return source_id

    def seed_default_sources(self) -> int:
        """Insert the default source list if no sources exist yet."""
        with self.exclusive() as conn, conn:
            count = conn.execute("SELECT COUNT(*) AS cnt FROM sources").fetchone()["cnt"]
            if count:
                return 0
            conn.executemany(
                "INSERT INTO sources (id, name, url, source_type, is_active) VALUES (?, ?, ?, ?, 1)",
                [
                    (f"source_{i}", name, url, source_type)
                    for i, (name, url, source_type) in enumerate(DEFAULT_SOURCES)
                ],
            )
        logger.info("Seeded %d default sources", len(DEFAULT_SOURCES))
        return len(DEFAULT_SOURCES)

    def set_source_active(self, name: str, is_active: bool) -> bool:
        """Enable or disable a source by name. Returns True if it exists."""
        with self.exclusive() as conn, conn:
            cursor = conn.execute(
                "UPDATE sources SET is_active = ? WHERE name = ?", (int(is_active), name)
            )
        return cursor.rowcount > 0

    def get_all_sources(self) -> list[dict]:
        """Return every source row, active or not."""
        rows = self.conn.execute(
            "SELECT id, name, url, source_type, is_active FROM sources ORDER BY rowid"
        ).fetchall()
        return [
            {
                "id": r["id"],
                "name": r["name"],
                "url": r["url"],
                "source_type": r["source_type"],
                "is_active": bool(r["is_active"]),
            }
            for r in rows
        ]

    def list_active_sources(self, limit: int = MAX_ACTIVE_SOURCES) -> list[Source]:
        """Snapshot of active sources with their adapter kind resolved."""
        with self.exclusive() as conn:
            rows = conn.execute(
                """SELECT id, name, url, source_type, is_active FROM sources
                   WHERE is_active = 1 ORDER BY rowid LIMIT ?""",
                (limit,),
            ).fetchall()

        sources = []
        for r in rows:
            kind = SourceKind.resolve(r["source_type"], r["url"])
            if kind is None:
                logger.warning(
                    "Source '%s' has unsupported type '%s', skipping", r["name"], r["source_type"]
                )
                continue
            sources.append(
                Source(
                    id=r["id"],
                    name=r["name"],
                    url=r["url"],
                    source_type=r["source_type"],
                    kind=kind,
                    is_active=bool(r["is_active"]),
                )
            )
        return sources

    # --- Article writes ---

    def insert_articles(self, batch: list[PendingArticle]) -> int:
        """Insert fetched articles, skipping URLs already stored.

        The whole batch runs under one exclusive scope; each article and its
        index entry are committed together or not at all.

        Returns:
            Number of articles actually inserted.
        """
        inserted = 0
        with self.exclusive() as conn:
            for pending in batch:
                item = pending.item
                url = normalize_url(item.url)
                if self._article_exists(conn, url):
                    continue
                article = Article(
                    id=str(uuid.uuid4()),
                    title=item.title,
                    summary=pending.summary,
                    content=item.content,
                    url=url,
                    source=pending.source_name,
                    category=categorize_source(pending.source_name),
                    published_at=item.published_at,
                    fetched_at=utc_now().isoformat(),
                    image_url=item.image_url or "",
                )
                try:
                    with conn:
                        self._insert_article_row(conn, article)
                except sqlite3.IntegrityError:
                    # The UNIQUE constraint backs the existence check
                    continue
                inserted += 1
        return inserted

    def insert_article(self, article: Article) -> Article:
        """Insert a single article together with its index entry.

        Raises:
            DuplicateArticleError: If the normalized URL is already stored.
        """
        article.url = normalize_url(article.url)
        with self.exclusive() as conn:
            if self._article_exists(conn, article.url):
                raise DuplicateArticleError("This link has already been added")
            with conn:
                self._insert_article_row(conn, article)
        return article

    def article_exists(self, url: str) -> bool:
        with self.exclusive() as conn:
            return self._article_exists(conn, normalize_url(url))

    def update_summary(self, article_id: str, summary: str) -> bool:
        """Replace an article's summary and refresh its index entry."""
        with self.exclusive() as conn, conn:
            row = conn.execute(
                "SELECT rowid FROM articles WHERE id = ?", (article_id,)
            ).fetchone()
            if row is None:
                return False
            conn.execute("UPDATE articles SET summary = ? WHERE rowid = ?", (summary, row["rowid"]))
            conn.execute(
                "UPDATE articles_fts SET summary = ? WHERE rowid = ?", (summary, row["rowid"])
            )
        return True

    def set_bookmark(self, article_id: str, value: bool) -> bool:
        """Pin or unpin an article. Returns True if it exists."""
        with self.exclusive() as conn, conn:
            cursor = conn.execute(
                "UPDATE articles SET is_bookmarked = ? WHERE id = ?", (int(value), article_id)
            )
        return cursor.rowcount > 0

    def mark_read(self, article_id: str) -> bool:
        """Mark an article as read. Returns True if it exists."""
        with self.exclusive() as conn, conn:
            cursor = conn.execute("UPDATE articles SET is_read = 1 WHERE id = ?", (article_id,))
        return cursor.rowcount > 0

    def cleanup_old_articles(self, max_articles: int = MAX_ARTICLES) -> int:
        """Evict the oldest non-bookmarked articles beyond ``max_articles``.

        Bookmarked articles are never removed, so the store may stay above
        the cap when they alone exceed it.

        Returns:
            Number of articles deleted.
        """
        deleted = 0
        with self.exclusive() as conn:
            total = conn.execute("SELECT COUNT(*) AS cnt FROM articles").fetchone()["cnt"]
            if total <= max_articles:
                return 0

            excess = total - max_articles
            rowids = [
                r["rowid"]
                for r in conn.execute(
                    """SELECT rowid FROM articles WHERE is_bookmarked = 0
                       ORDER BY fetched_at ASC, rowid ASC LIMIT ?""",
                    (excess,),
                ).fetchall()
            ]
            for rowid in rowids:
                with conn:
                    conn.execute("DELETE FROM articles_fts WHERE rowid = ?", (rowid,))
                    conn.execute("DELETE FROM articles WHERE rowid = ?", (rowid,))
                deleted += 1

        if deleted:
            logger.info("Evicted %d old articles (cap %d)", deleted, max_articles)
        return deleted

    # --- Article reads ---

    def get_article(self, article_id: str) -> Article | None:
        with self.exclusive() as conn:
            row = conn.execute(
                f"SELECT {ARTICLE_COLUMNS} FROM articles WHERE id = ?", (article_id,)
            ).fetchone()
        return _row_to_article(row) if row else None

    def get_article_by_url(self, url: str) -> Article | None:
        with self.exclusive() as conn:
            row = conn.execute(
                f"SELECT {ARTICLE_COLUMNS} FROM articles WHERE url = ?", (normalize_url(url),)
            ).fetchone()
        return _row_to_article(row) if row else None

    def count_articles(self) -> int:
        with self.exclusive() as conn:
            row = conn.execute("SELECT COUNT(*) AS cnt FROM articles").fetchone()
        return row["cnt"] if row else 0

    def count_index_entries(self) -> int:
        with self.exclusive() as conn:
            row = conn.execute("SELECT COUNT(*) AS cnt FROM articles_fts").fetchone()
        return row["cnt"] if row else 0

    def list_articles(
        self, page: int = 1, page_size: int = 20, category: str | None = None
    ) -> tuple[list[Article], int]:
        """Get a page of articles, newest first, optionally by category.

        Returns:
            Tuple of (articles on the page, total matching count).
        """
        page = max(page, 1)
        where = ""
        params: list = []
        if category and category != "all":
            where = " WHERE category = ?"
            params.append(category)

        with self.exclusive() as conn:
            total = conn.execute(f"SELECT COUNT(*) AS cnt FROM articles{where}", params).fetchone()["cnt"]
            rows = conn.execute(
                f"""SELECT {ARTICLE_COLUMNS} FROM articles{where}
                    ORDER BY published_at DESC, fetched_at DESC
                    LIMIT ? OFFSET ?""",
                [*params, page_size, (page - 1) * page_size],
            ).fetchall()
        return [_row_to_article(r) for r in rows], total

    def search_articles(self, keyword: str, limit: int = 100) -> list[Article]:
        """Prefix search over title, summary and content using FTS5."""
        term = _fts_prefix_query(keyword)
        if not term:
            return []
        with self.exclusive() as conn:
            rows = conn.execute(
                f"""SELECT {", ".join(f"a.{c}" for c in ARTICLE_FIELDS)}
                    FROM articles a
                    JOIN articles_fts ON a.rowid = articles_fts.rowid
                    WHERE articles_fts MATCH ?
                    ORDER BY a.published_at DESC
                    LIMIT ?""",
                (term, limit),
            ).fetchall()
        return [_row_to_article(r) for r in rows]

    def articles_needing_summary(self, marker: str) -> list[tuple[str, str, str]]:
        """Return (id, title, content) of articles with a template or empty summary."""
        with self.exclusive() as conn:
            rows = conn.execute(
                """SELECT id, title, content FROM articles
                   WHERE summary LIKE ? OR summary IS NULL OR summary = ''
                   ORDER BY rowid""",
                (f"%{marker}%",),
            ).fetchall()
        return [(r["id"], r["title"], r["content"] or "") for r in rows]

    # --- Settings ---

    def get_setting(self, key: str, default: str = "") -> str:
        row = self.conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        if row is None or row["value"] is None:
            return default
        return row["value"]

    def set_setting(self, key: str, value: str) -> None:
        with self.exclusive() as conn, conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value)
            )

    # --- Internals ---

    @staticmethod
    def _article_exists(conn: sqlite3.Connection, url: str) -> bool:
        row = conn.execute("SELECT 1 FROM articles WHERE url = ?", (url,)).fetchone()
        return row is not None

    @staticmethod
    def _insert_article_row(conn: sqlite3.Connection, article: Article) -> None:
        cursor = conn.execute(
            f"INSERT INTO articles ({ARTICLE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                article.id,
                article.title,
                article.summary,
                article.content,
                article.url,
                article.source,
                article.category,
                article.published_at,
                article.fetched_at,
                article.heat_score,
                int(article.is_read),
                int(article.is_bookmarked),
                article.image_url,
            ),
        )
        conn.execute(
            "INSERT INTO articles_fts (rowid, title, summary, content) VALUES (?, ?, ?, ?)",
            (cursor.lastrowid, article.title, article.summary, article.content),
        )


# --- Helper functions ---


def _fts_prefix_query(keyword: str) -> str:
    """Turn free text into an FTS5 prefix query, quoting each term."""
    terms = [t.replace('"', '""') for t in keyword.split()]
    return " ".join(f'"{t}"*' for t in terms if t)


def _row_to_article(row: sqlite3.Row) -> Article:
    """Convert a database row to an Article dataclass."""
    return Article(
        id=row["id"],
        title=row["title"],
        summary=row["summary"] or "",
        content=row["content"] or "",
        url=row["url"],
        source=row["source"] or "",
        category=row["category"] or "",
        published_at=row["published_at"] or "",
        fetched_at=row["fetched_at"] or "",
        heat_score=row["heat_score"] or 0.0,
        is_read=bool(row["is_read"]),
        is_bookmarked=bool(row["is_bookmarked"]),
        image_url=row["image_url"] or "",
    )
