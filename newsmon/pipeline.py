"""Run coordination: ingestion per source, classification and entity sweeps.

Every entry point opens its own database connection and keeps no state
between calls, so overlapping invocations only meet in the database.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import timedelta

from newsmon.config import (
    MonitorSettings,
    get_active_sources,
    get_db_path,
    get_monitor_settings,
    get_source_config,
)
from newsmon.db import (
    emit_review_item,
    finish_run,
    get_articles_needing_entities,
    get_connection,
    get_pending_articles,
    get_quota_usage,
    insert_run,
    mark_article_failed,
    mark_entities_resolved,
    try_consume_quota,
    update_article_classification,
    update_run_status,
)
from newsmon.errors import ConfigurationError, MonitorError, QuotaExhaustedError
from newsmon.ingest import SOURCES
from newsmon.ingest.base import BaseSource
from newsmon.llm import get_provider_for_task
from newsmon.models import (
    Article,
    BatchResult,
    IngestionRun,
    RawRecord,
    ReviewItem,
    RunResult,
    utcnow,
)
from newsmon.process.classify import (
    Classification,
    classify_heuristic,
    is_relevant,
    review_reason,
)
from newsmon.process.dedup import DedupGate
from newsmon.process.entities import EntityResolver, ResolutionResult
from newsmon.process.llm_classifier import classify_batch
from newsmon.process.normalize import (
    create_snippet,
    extract_domain,
    normalize_content,
    normalize_title,
    url_hash,
)

logger = logging.getLogger(__name__)

DEFAULT_RESOLUTION_LIMIT = 100


# --- Ingestion ---


def build_article(
    record: RawRecord,
    source: BaseSource,
    settings: MonitorSettings,
    matched_keywords: list[str],
) -> Article:
    """Normalize a raw feed record into a pending Article."""
    url = record.url.strip()
    title = record.title.strip()
    title_normalized = normalize_title(title)
    if not title_normalized:
        raise ValueError("title is empty after normalization")

    hashed = url_hash(url)
    # Always from the URL, so the stored domain matches the allow list check
    domain = extract_domain(url)
    return Article(
        source_api=source.name,
        source_id=record.source_id or hashed[:32],
        url=url,
        url_hash=hashed,
        title=title,
        title_normalized=title_normalized,
        content_raw=record.content,
        content_normalized=normalize_content(record.content) or None,
        content_snippet=create_snippet(
            record.description or record.content or title, settings.snippet_length,
        ),
        published_at=source.parse_published(record.published),
        source_name=record.source_name or domain,
        source_domain=domain,
        author=record.author,
        language=record.language,
        matched_keywords=matched_keywords,
    )


def _ingest_record(
    conn: sqlite3.Connection,
    gate: DedupGate,
    source: BaseSource,
    record: RawRecord,
    settings: MonitorSettings,
    languages: set[str],
    run: IngestionRun,
) -> None:
    if not source.is_allowed(record.url):
        logger.debug("Filtered out %s (domain not allowed)", record.url)
        run.articles_filtered += 1
        return
    if record.language not in languages:
        run.articles_filtered += 1
        return

    matched = is_relevant(record.title, record.description, settings.keywords, record.content)
    if not matched:
        run.articles_filtered += 1
        return
    run.articles_relevant += 1

    article = build_article(record, source, settings, matched)
    if gate.admit(conn, article).inserted:
        run.articles_new += 1
    else:
        run.articles_duplicate += 1


def _check_runnable(settings: MonitorSettings, source_cfg: dict, source: BaseSource) -> None:
    if not settings.enabled:
        raise ConfigurationError("Monitor is disabled in settings")
    if not source_cfg.get("enabled", False):
        raise ConfigurationError(f"{source.name} ingestion is disabled")
    if source.api_key_field and not source.api_key:
        raise ConfigurationError(f"{source.name} API key not configured")


async def run_ingestion(
    config: dict,
    source_name: str,
    triggered_by: str = "manual",
    lookback_hours: int | None = None,
) -> RunResult:
    """Run one ingestion cycle against one source.

    Never raises for run-level failures; the outcome, including the HTTP-style
    status code, is in the returned RunResult. Once a run record exists it is
    always finalized as completed or failed.
    """
    if source_name not in SOURCES:
        return RunResult(
            source=source_name, success=False, status_code=ConfigurationError.status_code,
            error=f"Unknown source: {source_name}",
        )

    run = IngestionRun(source_api=source_name, triggered_by=triggered_by)
    result = RunResult(source=source_name, success=False)

    conn = None
    try:
        settings = get_monitor_settings(config)
        source_cfg = get_source_config(config, source_name) or {}
        conn = get_connection(get_db_path(config))
        run.id = insert_run(conn, run)
        logger.info("Ingestion run #%d started for %s", run.id, source_name)

        source = SOURCES[source_name](config, source_cfg)
        _check_runnable(settings, source_cfg, source)

        hours = lookback_hours or source_cfg.get("lookback_hours") or settings.lookback_hours
        run.metadata["lookback_hours"] = hours

        limit = source.daily_limit
        if limit is not None:
            used = get_quota_usage(conn, source.name)
            run.metadata.update(requests_today=used, daily_limit=limit)
            if not try_consume_quota(conn, source.name, limit):
                raise QuotaExhaustedError(
                    f"{source.name} daily limit reached ({limit} requests)",
                    requests=used, limit=limit,
                )

        run.status = "running"
        update_run_status(conn, run.id, run.status, run.metadata)

        records = await source.fetch(utcnow() - timedelta(hours=hours))
        run.articles_fetched = len(records)

        gate = DedupGate()
        languages = set(source_cfg.get("languages") or ["en"])
        for record in records:
            try:
                _ingest_record(conn, gate, source, record, settings, languages, run)
            except Exception as exc:
                logger.warning("Failed to ingest %s: %s", record.url, exc)
                run.errors.append(f"Article {record.url}: {exc}")

        run.status = "completed"
        result.success = True
    except MonitorError as exc:
        logger.error("Ingestion run for %s failed: %s", source_name, exc)
        run.status = "failed"
        run.errors.append(str(exc))
        result.status_code = exc.status_code
        result.error = str(exc)
    except Exception as exc:
        logger.exception("Ingestion run for %s failed", source_name)
        run.status = "failed"
        run.errors.append(f"{type(exc).__name__}: {exc}")
        result.status_code = 500
        result.error = str(exc)
    finally:
        if not run.finished:
            # Cancelled mid-run
            run.status = "failed"
            run.errors.append("Run interrupted")
        run.finished_at = utcnow()
        if run.id is not None:
            try:
                finish_run(conn, run.id, run)
            except sqlite3.Error:
                logger.exception("Could not finalize ingestion run #%d", run.id)
        if conn is not None:
            conn.close()

    result.run_id = run.id
    result.articles_fetched = run.articles_fetched
    result.articles_new = run.articles_new
    result.articles_duplicate = run.articles_duplicate
    result.articles_relevant = run.articles_relevant
    result.articles_filtered = run.articles_filtered
    result.errors = list(run.errors)
    result.metadata = dict(run.metadata)

    logger.info(
        "Ingestion run #%s for %s %s: %d fetched, %d new, %d duplicate, %d filtered",
        run.id, source_name, run.status, run.articles_fetched,
        run.articles_new, run.articles_duplicate, run.articles_filtered,
    )
    return result


async def run_all_ingestion(
    config: dict,
    sources: list[str] | None = None,
    triggered_by: str = "manual",
    lookback_hours: int | None = None,
) -> BatchResult:
    """Ingest from several sources concurrently; one failure does not stop the rest."""
    names = sources if sources is not None else get_active_sources(config)
    outcomes = await asyncio.gather(
        *[
            run_ingestion(config, name, triggered_by=triggered_by, lookback_hours=lookback_hours)
            for name in names
        ],
        return_exceptions=True,
    )
    results = []
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, RunResult):
            results.append(outcome)
        elif isinstance(outcome, Exception):
            logger.error("Ingestion for %s raised: %s", name, outcome)
            results.append(RunResult(
                source=name, success=False, status_code=500,
                error=f"{type(outcome).__name__}: {outcome}",
            ))
        else:
            raise outcome
    batch = BatchResult(results=results)
    if not batch.success:
        logger.warning("Ingestion finished with errors: %s", "; ".join(batch.errors))
    return batch


# --- Classification ---


def _store_classification(
    conn: sqlite3.Connection,
    article: Article,
    classification: Classification,
    settings: MonitorSettings,
) -> None:
    review = review_reason(classification, settings.review_threshold)
    update_article_classification(
        conn,
        article.id,
        status="classified",
        relevant=classification.relevant,
        confidence=classification.confidence,
        signals=classification.signals,
        entity_mentions=classification.entities,
        requires_review=review is not None,
        classification_result=classification.details(),
    )
    if review is not None:
        reason, priority = review
        emit_review_item(conn, ReviewItem("article", article.id, reason, priority))


def _heuristic(article: Article, settings: MonitorSettings) -> Classification:
    return classify_heuristic(
        article.title,
        article.content_raw or article.content_snippet,
        settings.keywords,
        settings.ro_providers,
        settings.min_segment_matches,
    )


async def run_classification(config: dict, limit: int | None = None) -> dict:
    """Classify pending articles, with the LLM when configured.

    If the LLM call fails, each article gets the heuristic verdict but stays
    marked failed so it can be told apart from a real classification.
    """
    settings = get_monitor_settings(config)
    conn = get_connection(get_db_path(config))
    try:
        articles = get_pending_articles(conn, limit or settings.batch_size)
        if not articles:
            logger.info("No pending articles to classify")
            return {"processed": 0, "failed": 0, "method": None}

        try:
            provider = get_provider_for_task(config, "classify")
        except ValueError as exc:
            # Articles stay pending until the provider config is fixed
            logger.error("LLM provider misconfigured: %s", exc)
            return {
                "processed": 0,
                "failed": 0,
                "method": None,
                "error": f"LLM provider misconfigured: {exc}",
            }
        method = "llm" if provider is not None else "heuristic"
        processed = failed = 0

        if provider is None:
            results = {a.id: _heuristic(a, settings) for a in articles}
        else:
            try:
                results = await classify_batch(provider, articles, settings)
            except Exception as exc:
                logger.exception("LLM classification failed, falling back to heuristics")
                error = f"LLM classification failed: {exc}"
                for article in articles:
                    fallback = _heuristic(article, settings)
                    update_article_classification(
                        conn,
                        article.id,
                        status="failed",
                        relevant=fallback.relevant,
                        confidence=fallback.confidence,
                        signals=fallback.signals,
                        entity_mentions=fallback.entities,
                        requires_review=True,
                        processing_errors=[error],
                        classification_result=fallback.details(),
                    )
                    emit_review_item(conn, ReviewItem("article", article.id, error, "medium"))
                return {
                    "processed": 0,
                    "failed": len(articles),
                    "method": "heuristic_fallback",
                    "error": error,
                }

        for article in articles:
            classification = results.get(article.id)
            try:
                if classification is None:
                    raise ValueError("No classification returned for article")
                _store_classification(conn, article, classification, settings)
                processed += 1
            except Exception as exc:
                logger.warning("Classification of article %d failed: %s", article.id, exc)
                mark_article_failed(conn, article.id, [str(exc)])
                emit_review_item(
                    conn, ReviewItem("article", article.id, f"Classification failed: {exc}", "medium"),
                )
                failed += 1

        logger.info(
            "Classified %d articles (%s), %d failed", processed, method, failed,
        )
        return {"processed": processed, "failed": failed, "method": method}
    finally:
        conn.close()


# --- Entity resolution ---


def run_entity_resolution(config: dict, limit: int | None = None) -> ResolutionResult:
    """Resolve entity mentions of classified articles not yet processed."""
    conn = get_connection(get_db_path(config))
    try:
        articles = get_articles_needing_entities(conn, limit or DEFAULT_RESOLUTION_LIMIT)
        if not articles:
            logger.info("No articles awaiting entity resolution")
            return ResolutionResult()

        result = EntityResolver().resolve_batch(
            conn, [(a.id, a.entity_mentions) for a in articles],
        )
        for article_id in result.resolved_articles:
            mark_entities_resolved(conn, article_id)
        return result
    finally:
        conn.close()
