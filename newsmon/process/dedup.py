"""Deduplication gate: exact URL hash, then exact normalized title."""

from __future__ import annotations

import enum
import logging
import sqlite3
from dataclasses import dataclass

from newsmon import db
from newsmon.models import Article

logger = logging.getLogger(__name__)


class DedupVerdict(enum.Enum):
    NEW = "new"
    EXACT_DUPLICATE = "exact_duplicate"  # same URL hash
    NEAR_DUPLICATE = "near_duplicate"  # same normalized title


@dataclass
class AdmitResult:
    verdict: DedupVerdict
    article_id: int | None = None

    @property
    def inserted(self) -> bool:
        return self.verdict is DedupVerdict.NEW


class DedupGate:
    """Decides whether an incoming article is already stored.

    check() is a cheap pre-filter. The database UNIQUE constraints on
    url_hash and title_normalized are the final word: a concurrent run that
    inserts the same article first turns our insert into a duplicate.
    Title matching has no time window.
    """

    def check(self, conn: sqlite3.Connection, url_hash: str, title_normalized: str) -> DedupVerdict:
        if db.find_article_id_by_hash(conn, url_hash) is not None:
            return DedupVerdict.EXACT_DUPLICATE
        if title_normalized and db.find_article_id_by_title(conn, title_normalized) is not None:
            return DedupVerdict.NEAR_DUPLICATE
        return DedupVerdict.NEW

    def admit(self, conn: sqlite3.Connection, article: Article) -> AdmitResult:
        """Insert the article unless it duplicates a stored one."""
        verdict = self.check(conn, article.url_hash, article.title_normalized)
        if verdict is not DedupVerdict.NEW:
            return AdmitResult(verdict)

        try:
            article_id = db.insert_article(conn, article)
        except sqlite3.IntegrityError:
            # Lost a race with another writer; find out which key collided
            verdict = self.check(conn, article.url_hash, article.title_normalized)
            if verdict is DedupVerdict.NEW:
                raise
            logger.debug("Concurrent insert of %s resolved as %s", article.url, verdict.value)
            return AdmitResult(verdict)

        article.id = article_id
        return AdmitResult(DedupVerdict.NEW, article_id)
