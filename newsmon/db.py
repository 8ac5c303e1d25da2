"""SQLite database schema, migrations, and query helpers.

UNIQUE constraints here are what actually decide duplicates. Callers pre-check
to save work, but concurrent runs can both pass a pre-check, so every insert
that can collide surfaces sqlite3.IntegrityError to the caller.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

from newsmon.models import (
    Article,
    ArticleEntityLink,
    Entity,
    EntityMention,
    IngestionRun,
    Page,
    ReviewItem,
    Signals,
    SIGNALS_VERSION,
    utcnow,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SIGNAL_COLUMNS = [f"signal_{name}" for name in Signals.names()]

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_api TEXT NOT NULL,
    source_id TEXT NOT NULL,
    url TEXT NOT NULL,
    url_hash TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    title_normalized TEXT NOT NULL UNIQUE,
    content_raw TEXT,
    content_normalized TEXT,
    content_snippet TEXT NOT NULL DEFAULT '',
    published_at TEXT,
    source_name TEXT,
    source_domain TEXT NOT NULL DEFAULT 'unknown',
    author TEXT,
    language TEXT NOT NULL DEFAULT 'en',
    matched_keywords TEXT NOT NULL DEFAULT '[]',
    relevant INTEGER NOT NULL DEFAULT 0,
    signal_financial_decline INTEGER NOT NULL DEFAULT 0,
    signal_fraud INTEGER NOT NULL DEFAULT 0,
    signal_misstated_financials INTEGER NOT NULL DEFAULT 0,
    signal_shareholder_dispute INTEGER NOT NULL DEFAULT 0,
    signal_director_duties INTEGER NOT NULL DEFAULT 0,
    signal_regulatory_investigation INTEGER NOT NULL DEFAULT 0,
    signals_version INTEGER NOT NULL DEFAULT 1,
    confidence REAL,
    entity_mentions TEXT NOT NULL DEFAULT '[]',
    requires_review INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'classified', 'failed')),
    processing_errors TEXT NOT NULL DEFAULT '[]',
    classification_result TEXT NOT NULL DEFAULT '{}',
    ingested_at TEXT NOT NULL,
    classified_at TEXT,
    entities_resolved_at TEXT
);

CREATE TABLE IF NOT EXISTS entities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_name TEXT NOT NULL,
    normalized_name TEXT NOT NULL UNIQUE,
    entity_type TEXT NOT NULL DEFAULT 'ORG'
        CHECK (entity_type IN ('ORG', 'PERSON', 'GPE', 'RO_PROVIDER')),
    aliases TEXT NOT NULL DEFAULT '[]',
    article_count INTEGER NOT NULL DEFAULT 0,
    first_seen TEXT NOT NULL,
    last_seen TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}'
);

CREATE TABLE IF NOT EXISTS article_entities (
    article_id INTEGER NOT NULL REFERENCES articles(id),
    entity_id INTEGER NOT NULL REFERENCES entities(id),
    confidence REAL,
    mention_count INTEGER NOT NULL DEFAULT 1,
    PRIMARY KEY (article_id, entity_id)
);

CREATE TABLE IF NOT EXISTS ingestion_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_api TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'started',
    triggered_by TEXT NOT NULL DEFAULT 'manual',
    started_at TEXT NOT NULL,
    finished_at TEXT,
    articles_fetched INTEGER NOT NULL DEFAULT 0,
    articles_new INTEGER NOT NULL DEFAULT 0,
    articles_duplicate INTEGER NOT NULL DEFAULT 0,
    articles_relevant INTEGER NOT NULL DEFAULT 0,
    articles_filtered INTEGER NOT NULL DEFAULT 0,
    errors TEXT NOT NULL DEFAULT '[]',
    metadata TEXT NOT NULL DEFAULT '{}'
);

CREATE TABLE IF NOT EXISTS source_quota (
    source_api TEXT NOT NULL,
    period TEXT NOT NULL,
    requests INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (source_api, period)
);

CREATE TABLE IF NOT EXISTS review_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_type TEXT NOT NULL,
    item_id INTEGER NOT NULL,
    reason TEXT NOT NULL,
    priority TEXT NOT NULL DEFAULT 'medium',
    reviewed INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at);
CREATE INDEX IF NOT EXISTS idx_articles_status ON articles(status);
CREATE INDEX IF NOT EXISTS idx_articles_source_domain ON articles(source_domain);
CREATE INDEX IF NOT EXISTS idx_entities_type ON entities(entity_type);
CREATE INDEX IF NOT EXISTS idx_article_entities_entity ON article_entities(entity_id);
CREATE INDEX IF NOT EXISTS idx_ingestion_runs_started ON ingestion_runs(started_at);
CREATE INDEX IF NOT EXISTS idx_review_queue_reviewed ON review_queue(reviewed);
"""


def get_connection(db_path: str) -> sqlite3.Connection:
    """Get a SQLite connection with WAL mode enabled.

    Write transactions start with BEGIN IMMEDIATE so concurrent writers queue
    on the busy timeout instead of failing on a stale read snapshot.
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=30, isolation_level="IMMEDIATE")
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str) -> None:
    """Create all tables and set schema version."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA_SQL)
        conn.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()
    finally:
        conn.close()


def _dt_str(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_dt(s: str | None) -> datetime | None:
    if s is None:
        return None
    return datetime.fromisoformat(s)


def _today() -> str:
    return utcnow().date().isoformat()


# --- Article helpers ---


def insert_article(conn: sqlite3.Connection, article: Article) -> int:
    """Insert an article, returning its ID.

    Raises sqlite3.IntegrityError when the URL hash or normalized title is
    already stored.
    """
    signal_values = [int(getattr(article.signals, name)) for name in Signals.names()]
    with conn:
        cur = conn.execute(
            f"""INSERT INTO articles
               (source_api, source_id, url, url_hash, title, title_normalized,
                content_raw, content_normalized, content_snippet, published_at,
                source_name, source_domain, author, language, matched_keywords,
                relevant, {', '.join(SIGNAL_COLUMNS)}, signals_version,
                confidence, entity_mentions, requires_review, status,
                processing_errors, ingested_at)
               VALUES ({', '.join('?' * (23 + len(SIGNAL_COLUMNS)))})""",
            (
                article.source_api,
                article.source_id,
                article.url,
                article.url_hash,
                article.title,
                article.title_normalized,
                article.content_raw,
                article.content_normalized,
                article.content_snippet,
                _dt_str(article.published_at),
                article.source_name,
                article.source_domain,
                article.author,
                article.language,
                json.dumps(article.matched_keywords),
                int(article.relevant),
                *signal_values,
                SIGNALS_VERSION,
                article.confidence,
                json.dumps([m.to_dict() for m in article.entity_mentions]),
                int(article.requires_review),
                article.status,
                json.dumps(article.processing_errors),
                _dt_str(article.ingested_at),
            ),
        )
    return cur.lastrowid


def find_article_id_by_hash(conn: sqlite3.Connection, url_hash: str) -> int | None:
    row = conn.execute("SELECT id FROM articles WHERE url_hash = ?", (url_hash,)).fetchone()
    return row["id"] if row else None


def find_article_id_by_title(conn: sqlite3.Connection, title_normalized: str) -> int | None:
    row = conn.execute(
        "SELECT id FROM articles WHERE title_normalized = ?", (title_normalized,)
    ).fetchone()
    return row["id"] if row else None


def get_article(conn: sqlite3.Connection, article_id: int) -> Article | None:
    row = conn.execute("SELECT * FROM articles WHERE id = ?", (article_id,)).fetchone()
    return _row_to_article(row) if row else None


def get_pending_articles(conn: sqlite3.Connection, limit: int) -> list[Article]:
    """Oldest-first pending articles awaiting classification."""
    rows = conn.execute(
        "SELECT * FROM articles WHERE status = 'pending' ORDER BY id LIMIT ?", (limit,)
    ).fetchall()
    return [_row_to_article(row) for row in rows]


def get_articles_needing_entities(conn: sqlite3.Connection, limit: int) -> list[Article]:
    """Classified articles with entity mentions not yet resolved."""
    rows = conn.execute(
        """SELECT * FROM articles
           WHERE status = 'classified'
             AND entity_mentions != '[]'
             AND entities_resolved_at IS NULL
           ORDER BY id LIMIT ?""",
        (limit,),
    ).fetchall()
    return [_row_to_article(row) for row in rows]


def update_article_classification(
    conn: sqlite3.Connection,
    article_id: int,
    *,
    status: str,
    relevant: bool,
    confidence: float | None,
    signals: Signals,
    entity_mentions: list[EntityMention],
    requires_review: bool,
    processing_errors: list[str] | None = None,
    classification_result: dict | None = None,
) -> None:
    """Store a classifier verdict and move the article out of pending.

    classification_result keeps what the classifier said beyond the columns
    (reasoning, summary, signal details, token usage).
    """
    assignments = ", ".join(f"{col} = ?" for col in SIGNAL_COLUMNS)
    with conn:
        conn.execute(
            f"""UPDATE articles SET
               status = ?, relevant = ?, confidence = ?, {assignments},
               signals_version = ?, entity_mentions = ?, requires_review = ?,
               processing_errors = ?, classification_result = ?, classified_at = ?
               WHERE id = ?""",
            (
                status,
                int(relevant),
                confidence,
                *[int(getattr(signals, name)) for name in Signals.names()],
                SIGNALS_VERSION,
                json.dumps([m.to_dict() for m in entity_mentions]),
                int(requires_review),
                json.dumps(processing_errors or []),
                json.dumps(classification_result or {}),
                _dt_str(utcnow()) if status == "classified" else None,
                article_id,
            ),
        )


def mark_article_failed(conn: sqlite3.Connection, article_id: int, errors: list[str]) -> None:
    with conn:
        conn.execute(
            "UPDATE articles SET status = 'failed', processing_errors = ? WHERE id = ?",
            (json.dumps(errors), article_id),
        )


def mark_entities_resolved(conn: sqlite3.Connection, article_id: int) -> None:
    with conn:
        conn.execute(
            "UPDATE articles SET entities_resolved_at = ? WHERE id = ?",
            (_dt_str(utcnow()), article_id),
        )


def _row_to_article(row: sqlite3.Row) -> Article:
    signals = Signals(**{
        name: bool(row[f"signal_{name}"]) for name in Signals.names()
    })
    return Article(
        id=row["id"],
        source_api=row["source_api"],
        source_id=row["source_id"],
        url=row["url"],
        url_hash=row["url_hash"],
        title=row["title"],
        title_normalized=row["title_normalized"],
        content_raw=row["content_raw"],
        content_normalized=row["content_normalized"],
        content_snippet=row["content_snippet"],
        published_at=_parse_dt(row["published_at"]),
        source_name=row["source_name"],
        source_domain=row["source_domain"],
        author=row["author"],
        language=row["language"],
        matched_keywords=json.loads(row["matched_keywords"]),
        relevant=bool(row["relevant"]),
        signals=signals,
        confidence=row["confidence"],
        entity_mentions=[EntityMention(**m) for m in json.loads(row["entity_mentions"])],
        requires_review=bool(row["requires_review"]),
        status=row["status"],
        processing_errors=json.loads(row["processing_errors"]),
        classification_result=json.loads(row["classification_result"]),
        ingested_at=_parse_dt(row["ingested_at"]),
        classified_at=_parse_dt(row["classified_at"]),
        entities_resolved_at=_parse_dt(row["entities_resolved_at"]),
    )


# --- IngestionRun helpers ---


def insert_run(conn: sqlite3.Connection, run: IngestionRun) -> int:
    with conn:
        cur = conn.execute(
            """INSERT INTO ingestion_runs
               (source_api, status, triggered_by, started_at, metadata)
               VALUES (?, ?, ?, ?, ?)""",
            (
                run.source_api,
                run.status,
                run.triggered_by,
                _dt_str(run.started_at),
                json.dumps(run.metadata),
            ),
        )
    return cur.lastrowid


def update_run_status(
    conn: sqlite3.Connection, run_id: int, status: str, metadata: dict | None = None,
) -> None:
    with conn:
        if metadata is None:
            conn.execute(
                "UPDATE ingestion_runs SET status = ? WHERE id = ?", (status, run_id)
            )
        else:
            conn.execute(
                "UPDATE ingestion_runs SET status = ?, metadata = ? WHERE id = ?",
                (status, json.dumps(metadata), run_id),
            )


def finish_run(conn: sqlite3.Connection, run_id: int, run: IngestionRun) -> None:
    with conn:
        conn.execute(
            """UPDATE ingestion_runs SET
               status = ?, finished_at = ?, articles_fetched = ?,
               articles_new = ?, articles_duplicate = ?, articles_relevant = ?,
               articles_filtered = ?, errors = ?, metadata = ?
               WHERE id = ?""",
            (
                run.status,
                _dt_str(run.finished_at),
                run.articles_fetched,
                run.articles_new,
                run.articles_duplicate,
                run.articles_relevant,
                run.articles_filtered,
                json.dumps(run.errors),
                json.dumps(run.metadata),
                run_id,
            ),
        )


def get_run(conn: sqlite3.Connection, run_id: int) -> IngestionRun | None:
    row = conn.execute("SELECT * FROM ingestion_runs WHERE id = ?", (run_id,)).fetchone()
    if row is None:
        return None
    return IngestionRun(
        id=row["id"],
        source_api=row["source_api"],
        status=row["status"],
        triggered_by=row["triggered_by"],
        started_at=_parse_dt(row["started_at"]),
        finished_at=_parse_dt(row["finished_at"]),
        articles_fetched=row["articles_fetched"],
        articles_new=row["articles_new"],
        articles_duplicate=row["articles_duplicate"],
        articles_relevant=row["articles_relevant"],
        articles_filtered=row["articles_filtered"],
        errors=json.loads(row["errors"]),
        metadata=json.loads(row["metadata"]),
    )


def get_recent_runs(conn: sqlite3.Connection, limit: int = 10) -> list[dict]:
    """Fetch recent ingestion runs for stats display."""
    rows = conn.execute(
        "SELECT * FROM ingestion_runs ORDER BY started_at DESC, id DESC LIMIT ?", (limit,)
    ).fetchall()
    return [dict(row) for row in rows]


# --- Quota helpers ---


def get_quota_usage(conn: sqlite3.Connection, source_api: str, period: str | None = None) -> int:
    """Requests made against a source in the given period (default: today, UTC)."""
    row = conn.execute(
        "SELECT requests FROM source_quota WHERE source_api = ? AND period = ?",
        (source_api, period or _today()),
    ).fetchone()
    return row["requests"] if row else 0


def set_quota_usage(
    conn: sqlite3.Connection, source_api: str, requests: int, period: str | None = None,
) -> None:
    """Overwrite the request counter, e.g. after a manual reset."""
    with conn:
        conn.execute(
            """INSERT INTO source_quota (source_api, period, requests) VALUES (?, ?, ?)
               ON CONFLICT (source_api, period) DO UPDATE SET requests = excluded.requests""",
            (source_api, period or _today(), requests),
        )


def try_consume_quota(
    conn: sqlite3.Connection, source_api: str, daily_limit: int, period: str | None = None,
) -> bool:
    """Atomically take one request from the quota if any is left.

    Returns False, leaving the counter untouched, when the limit is reached.
    """
    period = period or _today()
    with conn:
        conn.execute(
            "INSERT OR IGNORE INTO source_quota (source_api, period, requests) VALUES (?, ?, 0)",
            (source_api, period),
        )
        cur = conn.execute(
            """UPDATE source_quota SET requests = requests + 1
               WHERE source_api = ? AND period = ? AND requests < ?""",
            (source_api, period, daily_limit),
        )
    return cur.rowcount == 1


# --- Entity helpers ---


def find_entity_by_name(conn: sqlite3.Connection, normalized_name: str) -> Entity | None:
    row = conn.execute(
        "SELECT * FROM entities WHERE normalized_name = ?", (normalized_name,)
    ).fetchone()
    return _row_to_entity(row) if row else None


def get_entity(conn: sqlite3.Connection, entity_id: int) -> Entity | None:
    row = conn.execute("SELECT * FROM entities WHERE id = ?", (entity_id,)).fetchone()
    return _row_to_entity(row) if row else None


def insert_entity(conn: sqlite3.Connection, entity: Entity) -> int:
    """Insert an entity. Raises sqlite3.IntegrityError if the name exists."""
    with conn:
        cur = conn.execute(
            """INSERT INTO entities
               (entity_name, normalized_name, entity_type, aliases,
                article_count, first_seen, last_seen, metadata)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                entity.entity_name,
                entity.normalized_name,
                entity.entity_type,
                json.dumps(entity.aliases),
                entity.article_count,
                _dt_str(entity.first_seen),
                _dt_str(entity.last_seen),
                json.dumps(entity.metadata),
            ),
        )
    return cur.lastrowid


def get_or_create_entity(
    conn: sqlite3.Connection,
    entity_name: str,
    normalized_name: str,
    entity_type: str = "ORG",
    metadata: dict | None = None,
) -> tuple[Entity, bool]:
    """Return the entity for normalized_name, creating it if needed.

    Insert-then-reread: if a concurrent writer creates the same entity between
    our lookup and insert, the UNIQUE constraint rejects ours and we use theirs.
    The boolean is True only when this call created the row. A spelling that
    differs from the stored name is recorded as an alias.
    """
    existing = find_entity_by_name(conn, normalized_name)
    if existing is not None:
        _add_alias(conn, existing, entity_name)
        return existing, False

    entity = Entity(
        entity_name=entity_name,
        normalized_name=normalized_name,
        entity_type=entity_type,
        metadata=metadata or {},
    )
    try:
        entity.id = insert_entity(conn, entity)
    except sqlite3.IntegrityError:
        winner = find_entity_by_name(conn, normalized_name)
        if winner is None:
            raise
        _add_alias(conn, winner, entity_name)
        return winner, False
    return entity, True


def _add_alias(conn: sqlite3.Connection, entity: Entity, name: str) -> None:
    if name == entity.entity_name or name in entity.aliases:
        return
    entity.aliases.append(name)
    with conn:
        conn.execute(
            "UPDATE entities SET aliases = ? WHERE id = ?",
            (json.dumps(entity.aliases), entity.id),
        )


def link_article_entity(
    conn: sqlite3.Connection,
    article_id: int,
    entity_id: int,
    confidence: float | None = None,
) -> bool:
    """Link an article to an entity. Returns True if the link is new.

    A new link bumps the entity's article_count in the same transaction, so
    the counter always equals the number of linked articles. An existing link
    only gets its mention_count bumped.
    """
    seen = _dt_str(utcnow())
    try:
        with conn:
            conn.execute(
                """INSERT INTO article_entities
                   (article_id, entity_id, confidence, mention_count)
                   VALUES (?, ?, ?, 1)""",
                (article_id, entity_id, confidence),
            )
            conn.execute(
                """UPDATE entities SET article_count = article_count + 1, last_seen = ?
                   WHERE id = ?""",
                (seen, entity_id),
            )
        return True
    except sqlite3.IntegrityError:
        with conn:
            cur = conn.execute(
                """UPDATE article_entities SET
                   mention_count = mention_count + 1,
                   confidence = MAX(COALESCE(confidence, 0), COALESCE(?, 0))
                   WHERE article_id = ? AND entity_id = ?""",
                (confidence, article_id, entity_id),
            )
            if cur.rowcount == 0:
                # Not a duplicate link: a foreign key or other constraint failed
                raise
            conn.execute("UPDATE entities SET last_seen = ? WHERE id = ?", (seen, entity_id))
        return False


def get_article_links(conn: sqlite3.Connection, article_id: int) -> list[ArticleEntityLink]:
    rows = conn.execute(
        "SELECT * FROM article_entities WHERE article_id = ? ORDER BY entity_id",
        (article_id,),
    ).fetchall()
    return [
        ArticleEntityLink(
            article_id=row["article_id"],
            entity_id=row["entity_id"],
            confidence=row["confidence"],
            mention_count=row["mention_count"],
        )
        for row in rows
    ]


def count_entity_links(conn: sqlite3.Connection, entity_id: int) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM article_entities WHERE entity_id = ?", (entity_id,)
    ).fetchone()
    return row["n"]


def list_entities(
    conn: sqlite3.Connection, limit: int = 20, entity_type: str | None = None,
) -> list[Entity]:
    """Entities ordered by how many articles mention them."""
    sql = "SELECT * FROM entities"
    params: list = []
    if entity_type:
        sql += " WHERE entity_type = ?"
        params.append(entity_type)
    sql += " ORDER BY article_count DESC, id LIMIT ?"
    params.append(limit)
    return [_row_to_entity(row) for row in conn.execute(sql, params).fetchall()]


def _row_to_entity(row: sqlite3.Row) -> Entity:
    return Entity(
        id=row["id"],
        entity_name=row["entity_name"],
        normalized_name=row["normalized_name"],
        entity_type=row["entity_type"],
        aliases=json.loads(row["aliases"]),
        article_count=row["article_count"],
        first_seen=_parse_dt(row["first_seen"]),
        last_seen=_parse_dt(row["last_seen"]),
        metadata=json.loads(row["metadata"]),
    )


# --- Review queue helpers ---


def insert_review_item(conn: sqlite3.Connection, item: ReviewItem) -> int:
    with conn:
        cur = conn.execute(
            """INSERT INTO review_queue
               (item_type, item_id, reason, priority, reviewed, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                item.item_type,
                item.item_id,
                item.reason,
                item.priority,
                int(item.reviewed),
                _dt_str(item.created_at),
            ),
        )
    return cur.lastrowid


def emit_review_item(conn: sqlite3.Connection, item: ReviewItem) -> int | None:
    """Queue an item for human review. Failures are logged, not raised."""
    try:
        return insert_review_item(conn, item)
    except sqlite3.Error:
        logger.exception(
            "Failed to queue review item for %s %s", item.item_type, item.item_id
        )
        return None


def get_review_items(conn: sqlite3.Connection, reviewed: bool = False) -> list[ReviewItem]:
    rows = conn.execute(
        "SELECT * FROM review_queue WHERE reviewed = ? ORDER BY id", (int(reviewed),)
    ).fetchall()
    return [
        ReviewItem(
            id=row["id"],
            item_type=row["item_type"],
            item_id=row["item_id"],
            reason=row["reason"],
            priority=row["priority"],
            reviewed=bool(row["reviewed"]),
            created_at=_parse_dt(row["created_at"]),
        )
        for row in rows
    ]


# --- Query helpers ---


def list_articles(
    conn: sqlite3.Connection,
    page: int = 1,
    page_size: int = 20,
    relevant: bool | None = None,
    signal: str | None = None,
    source: str | None = None,
    status: str | None = None,
) -> Page:
    """One page of articles, newest published first."""
    if signal is not None and signal not in Signals.names():
        raise ValueError(f"Unknown signal: {signal}")

    clauses = []
    params: list = []
    if relevant is not None:
        clauses.append("relevant = ?")
        params.append(int(relevant))
    if signal is not None:
        clauses.append(f"signal_{signal} = 1")
    if source is not None:
        clauses.append("source_api = ?")
        params.append(source)
    if status is not None:
        clauses.append("status = ?")
        params.append(status)
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

    return _paginate(
        conn,
        f"SELECT COUNT(*) AS n FROM articles{where}",
        f"""SELECT * FROM articles{where}
            ORDER BY published_at IS NULL, published_at DESC, id DESC""",
        params,
        page,
        page_size,
    )


def list_entity_articles(
    conn: sqlite3.Connection, entity_id: int, page: int = 1, page_size: int = 20,
) -> Page:
    """Articles linked to one entity, newest published first."""
    return _paginate(
        conn,
        "SELECT COUNT(*) AS n FROM article_entities WHERE entity_id = ?",
        """SELECT a.* FROM articles a
           JOIN article_entities ae ON ae.article_id = a.id
           WHERE ae.entity_id = ?
           ORDER BY a.published_at IS NULL, a.published_at DESC, a.id DESC""",
        [entity_id],
        page,
        page_size,
    )


def _paginate(
    conn: sqlite3.Connection,
    count_sql: str,
    select_sql: str,
    params: list,
    page: int,
    page_size: int,
) -> Page:
    page = max(page, 1)
    page_size = max(min(page_size, 100), 1)
    total = conn.execute(count_sql, params).fetchone()["n"]
    rows = conn.execute(
        f"{select_sql} LIMIT ? OFFSET ?", [*params, page_size, (page - 1) * page_size]
    ).fetchall()
    return Page(
        items=[_row_to_article(row) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


def get_stats(conn: sqlite3.Connection) -> dict:
    """Aggregate counts for the dashboard."""

    def count(sql: str, params: tuple = ()) -> int:
        return conn.execute(sql, params).fetchone()[0]

    total = count("SELECT COUNT(*) FROM articles")
    relevant = count("SELECT COUNT(*) FROM articles WHERE relevant = 1")
    since = _dt_str(utcnow() - timedelta(hours=24))

    by_signal = {
        name: count(f"SELECT COUNT(*) FROM articles WHERE signal_{name} = 1")
        for name in Signals.names()
    }
    by_source = {
        row["source_api"]: row["n"]
        for row in conn.execute(
            "SELECT source_api, COUNT(*) AS n FROM articles GROUP BY source_api"
        ).fetchall()
    }
    top_entities = [
        {
            "id": e.id,
            "entity_name": e.entity_name,
            "entity_type": e.entity_type,
            "article_count": e.article_count,
        }
        for e in list_entities(conn, limit=10)
    ]
    last_run = conn.execute(
        """SELECT * FROM ingestion_runs WHERE status = 'completed'
           ORDER BY finished_at DESC LIMIT 1"""
    ).fetchone()

    return {
        "total_articles": total,
        "relevant_articles": relevant,
        "relevant_percentage": round(relevant / total * 100, 1) if total else 0.0,
        "by_signal": by_signal,
        "by_source": by_source,
        "recent_24h": {
            "total": count("SELECT COUNT(*) FROM articles WHERE ingested_at >= ?", (since,)),
            "relevant": count(
                "SELECT COUNT(*) FROM articles WHERE ingested_at >= ? AND relevant = 1",
                (since,),
            ),
            "requires_review": count(
                "SELECT COUNT(*) FROM articles WHERE ingested_at >= ? AND requires_review = 1",
                (since,),
            ),
        },
        "top_entities": top_entities,
        "last_ingestion": dict(last_run) if last_run else None,
        "pending": count("SELECT COUNT(*) FROM articles WHERE status = 'pending'"),
        "failed": count("SELECT COUNT(*) FROM articles WHERE status = 'failed'"),
    }
