"""Batch relevance and risk-signal classification through an LLM."""

from __future__ import annotations

import json
import logging
import re

from newsmon.config import MonitorSettings
from newsmon.llm.base import BaseLLMProvider
from newsmon.llm.prompts import CLASSIFY_BATCH, SYSTEM_ANALYST
from newsmon.models import Article, EntityMention, Signals
from newsmon.process.classify import Classification, relevant_segments

logger = logging.getLogger(__name__)

MAX_PROMPT_CONTENT = 2000
ENTITY_TYPES = {"ORG", "PERSON", "GPE", "RO_PROVIDER"}


def _normalize_quotes(text: str) -> str:
    """Replace smart/curly quotes with straight quotes for JSON parsing."""
    return (
        text
        .replace("\u201c", '"')
        .replace("\u201d", '"')
        .replace("\u2018", "'")
        .replace("\u2019", "'")
    )


def _try_parse(text: str):
    for candidate in (text, _normalize_quotes(text)):
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
    return None


def parse_classifications(text: str) -> list[dict] | None:
    """Pull the list of per-article results out of an LLM reply.

    Accepts a bare JSON array, an object with a ``classifications`` list, or
    either wrapped in markdown fences or surrounding prose.
    """
    data = _try_parse(text)
    if data is None:
        fenced = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
        if fenced:
            data = _try_parse(fenced.group(1))
    if data is None:
        block = re.search(r"[\[{].*[\]}]", text, re.DOTALL)
        if block:
            data = _try_parse(block.group(0))

    if isinstance(data, dict):
        data = data.get("classifications", [data])
    if not isinstance(data, list):
        return None
    return [entry for entry in data if isinstance(entry, dict)]


def _clamp(value, default: float = 0.0) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return default


def _to_classification(entry: dict, article: Article, settings: MonitorSettings) -> Classification:
    entities = []
    for raw in entry.get("entities") or []:
        if not isinstance(raw, dict) or not raw.get("name"):
            continue
        entity_type = raw.get("type") if raw.get("type") in ENTITY_TYPES else "ORG"
        entities.append(
            EntityMention(
                name=str(raw["name"]),
                type=entity_type,
                confidence=_clamp(raw.get("confidence"), 0.5),
            )
        )
    return Classification(
        relevant=bool(entry.get("relevant", False)),
        confidence=_clamp(entry.get("confidence")),
        signals=Signals.from_names(entry.get("signals_detected") or []),
        entities=entities,
        matched_keywords=article.matched_keywords,
        relevant_segments=relevant_segments(
            article.content_raw, min_matches=settings.min_segment_matches,
        ),
        reasoning=str(entry.get("reasoning", "")),
        summary=str(entry.get("summary", "")),
        method="llm",
    )


def build_prompt(articles: list[Article], settings: MonitorSettings) -> str:
    payload = [
        {
            "id": article.id,
            "title": article.title,
            "content": (article.content_raw or article.content_snippet or article.title)[
                :MAX_PROMPT_CONTENT
            ],
        }
        for article in articles
    ]
    return CLASSIFY_BATCH.format(
        jurisdiction=settings.jurisdiction,
        count=len(articles),
        keywords=", ".join(settings.keywords),
        ro_providers=", ".join(settings.ro_providers),
        articles=json.dumps(payload, indent=2),
    )


async def classify_batch(
    provider: BaseLLMProvider, articles: list[Article], settings: MonitorSettings,
) -> dict[int, Classification]:
    """Classify articles in one LLM call, keyed by article id.

    Articles the reply does not cover are absent from the result. Raises
    ValueError when the reply cannot be parsed at all.
    """
    response = await provider.complete(build_prompt(articles, settings), system=SYSTEM_ANALYST)
    entries = parse_classifications(response.text)
    if entries is None:
        raise ValueError("Failed to parse LLM classification response")

    by_id = {}
    for entry in entries:
        try:
            by_id[int(entry.get("id"))] = entry
        except (TypeError, ValueError):
            continue

    # Usage is per call; each article records the batch it shared
    usage = {
        "model": response.model,
        "input_tokens": response.input_tokens,
        "output_tokens": response.output_tokens,
        "batch_size": len(articles),
    }
    results = {}
    for index, article in enumerate(articles):
        entry = by_id.get(article.id)
        if entry is None and not by_id and index < len(entries):
            # Reply without ids; fall back to position
            entry = entries[index]
        if entry is not None:
            classification = _to_classification(entry, article, settings)
            classification.token_usage = usage
            results[article.id] = classification

    logger.info(
        "LLM classified %d/%d articles (%d input, %d output tokens)",
        len(results), len(articles), response.input_tokens, response.output_tokens,
    )
    return results
