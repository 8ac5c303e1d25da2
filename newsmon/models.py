"""Core data models for the news monitor."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone

SIGNALS_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Signals:
    """Risk signals attached to an article.

    The field set is closed; bump SIGNALS_VERSION when adding one so stored
    rows can be told apart.
    """

    financial_decline: bool = False
    fraud: bool = False
    misstated_financials: bool = False
    shareholder_dispute: bool = False
    director_duties: bool = False
    regulatory_investigation: bool = False

    @classmethod
    def names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_names(cls, names: list[str]) -> Signals:
        """Build from a list of signal names, ignoring unknown ones."""
        known = set(cls.names())
        return cls(**{name: True for name in names if name in known})

    def active(self) -> list[str]:
        return [name for name, value in asdict(self).items() if value]

    @property
    def high_risk(self) -> bool:
        return self.fraud or self.regulatory_investigation


@dataclass
class RawRecord:
    """A record as delivered by a source feed, before normalization."""

    url: str
    title: str
    source_api: str  # newsapi, gdelt
    description: str | None = None
    content: str | None = None
    author: str | None = None
    source_id: str | None = None
    source_name: str | None = None
    published: str | None = None  # raw timestamp string from the feed
    language: str = "en"
    meta: dict = field(default_factory=dict)


@dataclass
class EntityMention:
    """An entity mentioned in an article, as produced by classification."""

    name: str
    type: str = "ORG"  # ORG, PERSON, GPE, RO_PROVIDER
    confidence: float = 0.5

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Article:
    """A single ingested news article."""

    source_api: str
    source_id: str
    url: str
    url_hash: str
    title: str
    title_normalized: str
    content_raw: str | None = None
    content_normalized: str | None = None
    content_snippet: str = ""
    published_at: datetime | None = None
    source_name: str | None = None
    source_domain: str = "unknown"
    author: str | None = None
    language: str = "en"
    matched_keywords: list[str] = field(default_factory=list)
    relevant: bool = False
    signals: Signals = field(default_factory=Signals)
    confidence: float | None = None
    entity_mentions: list[EntityMention] = field(default_factory=list)
    requires_review: bool = False
    status: str = "pending"  # pending, classified, failed
    processing_errors: list[str] = field(default_factory=list)
    classification_result: dict = field(default_factory=dict)
    ingested_at: datetime = field(default_factory=utcnow)
    classified_at: datetime | None = None
    entities_resolved_at: datetime | None = None
    id: int | None = None


@dataclass
class IngestionRun:
    """Record of a single ingestion run against one source."""

    source_api: str
    triggered_by: str = "manual"  # manual, scheduled
    status: str = "started"  # started, running, completed, failed
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    articles_fetched: int = 0
    articles_new: int = 0
    articles_duplicate: int = 0
    articles_relevant: int = 0
    articles_filtered: int = 0
    errors: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    id: int | None = None

    @property
    def finished(self) -> bool:
        return self.status in ("completed", "failed")


@dataclass
class Entity:
    """A recognized organization, person or place."""

    entity_name: str
    normalized_name: str
    entity_type: str = "ORG"
    aliases: list[str] = field(default_factory=list)
    article_count: int = 0
    first_seen: datetime = field(default_factory=utcnow)
    last_seen: datetime = field(default_factory=utcnow)
    metadata: dict = field(default_factory=dict)
    id: int | None = None


@dataclass
class ArticleEntityLink:
    """Many-to-many link between an article and an entity."""

    article_id: int
    entity_id: int
    confidence: float | None = None
    mention_count: int = 1


@dataclass
class ReviewItem:
    """Something a human should look at."""

    item_type: str  # article, ingestion_run
    item_id: int
    reason: str
    priority: str = "medium"  # high, medium, low
    reviewed: bool = False
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass
class RunResult:
    """Outcome of one ingestion run, as reported to the caller."""

    source: str
    success: bool
    run_id: int | None = None
    status_code: int = 200
    error: str | None = None
    articles_fetched: int = 0
    articles_new: int = 0
    articles_duplicate: int = 0
    articles_relevant: int = 0
    articles_filtered: int = 0
    errors: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        if not data["errors"]:
            data.pop("errors")
        return data


@dataclass
class BatchResult:
    """Aggregate of several ingestion runs triggered together."""

    results: list[RunResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def errors(self) -> list[str]:
        return [f"{r.source}: {r.error}" for r in self.results if not r.success]

    @property
    def run_ids(self) -> list[int]:
        return [r.run_id for r in self.results if r.run_id is not None]

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "run_id": self.run_ids[0] if self.run_ids else None,
            "results": [r.to_dict() for r in self.results],
            "errors": self.errors,
        }


@dataclass
class Page:
    """One page of a paginated query."""

    items: list
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size

    @property
    def has_next(self) -> bool:
        return self.page < self.pages
