"""Resolve entity mentions on classified articles into the shared entity graph."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

from newsmon import db
from newsmon.models import EntityMention
from newsmon.process.normalize import normalize_title

logger = logging.getLogger(__name__)

ENTITY_TYPES = {"ORG", "PERSON", "GPE", "RO_PROVIDER"}
MIN_NAME_LENGTH = 2


@dataclass
class ResolutionResult:
    articles_processed: int = 0
    entities_created: int = 0
    links_created: int = 0
    links_existing: int = 0
    skipped: int = 0
    resolved_articles: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def merge(self, other: ResolutionResult) -> None:
        self.articles_processed += other.articles_processed
        self.entities_created += other.entities_created
        self.links_created += other.links_created
        self.links_existing += other.links_existing
        self.skipped += other.skipped
        self.resolved_articles.extend(other.resolved_articles)
        self.errors.extend(other.errors)


class EntityResolver:
    """Turns (article, mentions) pairs into entities and article links.

    Safe to run concurrently with other resolvers on the same database:
    entity creation goes through db.get_or_create_entity and linking through
    db.link_article_entity, both of which converge on constraint conflicts.
    """

    def resolve_article(
        self, conn: sqlite3.Connection, article_id: int, mentions: list[EntityMention],
    ) -> ResolutionResult:
        result = ResolutionResult(articles_processed=1)
        for mention in mentions:
            try:
                self._resolve_mention(conn, article_id, mention, result)
            except Exception as exc:
                logger.exception("Entity %r on article %d failed", mention.name, article_id)
                result.errors.append(f"Article {article_id} entity {mention.name!r}: {exc}")
        if not result.errors:
            result.resolved_articles.append(article_id)
        return result

    def resolve_batch(
        self, conn: sqlite3.Connection, items: list[tuple[int, list[EntityMention]]],
    ) -> ResolutionResult:
        total = ResolutionResult()
        for article_id, mentions in items:
            try:
                total.merge(self.resolve_article(conn, article_id, mentions))
            except Exception as exc:
                logger.exception("Entity resolution failed for article %d", article_id)
                total.errors.append(f"Article {article_id}: {exc}")
        logger.info(
            "Resolved %d articles: %d new entities, %d new links, %d errors",
            total.articles_processed, total.entities_created,
            total.links_created, len(total.errors),
        )
        return total

    def _resolve_mention(
        self,
        conn: sqlite3.Connection,
        article_id: int,
        mention: EntityMention,
        result: ResolutionResult,
    ) -> None:
        name = (mention.name or "").strip()
        normalized = normalize_title(name)
        if len(normalized) < MIN_NAME_LENGTH:
            result.skipped += 1
            return
        entity_type = mention.type if mention.type in ENTITY_TYPES else "ORG"

        entity, created = db.get_or_create_entity(
            conn, name, normalized, entity_type,
            metadata={"first_article_id": article_id},
        )
        if created:
            result.entities_created += 1

        if db.link_article_entity(conn, article_id, entity.id, mention.confidence):
            result.links_created += 1
        else:
            result.links_existing += 1
