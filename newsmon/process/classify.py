"""Keyword heuristics for relevance, risk signals and basic entity spotting.

These run on every ingested record (relevance) and serve as the classifier
when no LLM is configured, or as the fallback when the LLM call fails.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from newsmon.models import EntityMention, Signals

DEFAULT_KEYWORDS = [
    "Cayman Islands",
    "Cayman",
    "Grand Cayman",
    "Cayman domiciled",
    "Cayman-registered",
    "CIMA",
]

DEFAULT_RO_PROVIDERS = [
    "MaplesFS",
    "Maples",
    "Walkers",
    "Ogier",
    "Carey Olsen",
    "Appleby",
    "Campbells",
]

SIGNAL_KEYWORDS = {
    "financial_decline": [
        "bankrupt", "insolvency", "liquidation", "financial distress",
        "debt default", "asset decline",
    ],
    "fraud": [
        "fraud", "fraudulent", "embezzlement", "misappropriation",
        "corruption", "ponzi",
    ],
    "misstated_financials": [
        "accounting irregularities", "restatement", "audit",
        "financial misstatement", "cooking the books",
    ],
    "shareholder_dispute": [
        "shareholder lawsuit", "derivative action", "oppression",
        "governance conflict",
    ],
    "director_duties": [
        "breach of fiduciary duty", "director liability", "wrongful trading",
        "governance failure",
    ],
    "regulatory_investigation": [
        "sec investigation", "regulatory enforcement", "doj", "fca",
        "sanctions", "enforcement action",
    ],
}

# Insolvency vocabulary used to find review-worthy passages.
SEGMENT_TERMS = [
    "petition", "winding up", "liquidator", "debt", "creditor",
    "order", "respondent", "petitioner", "registered office",
]

DEFAULT_MIN_SEGMENT_MATCHES = 2
DEFAULT_REVIEW_THRESHOLD = 0.70
MAX_BASIC_ENTITIES = 10

_PAGE_BREAK = re.compile(r"\n--- PAGE \d+ ---\n", re.IGNORECASE)
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_COMPANY_NAME = re.compile(
    r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)\s+"
    r"(?:Limited|Ltd|Incorporated|Inc|Corporation|Corp|Fund|Trust)\b"
)


@dataclass
class HeuristicResult:
    likely_relevant: bool
    confidence: float
    matched_keywords: list[str] = field(default_factory=list)
    matched_ro_providers: list[str] = field(default_factory=list)


@dataclass
class Classification:
    """Classifier verdict for one article, from the LLM or heuristics."""

    relevant: bool
    confidence: float
    signals: Signals = field(default_factory=Signals)
    entities: list[EntityMention] = field(default_factory=list)
    matched_keywords: list[str] = field(default_factory=list)
    relevant_segments: list[int] = field(default_factory=list)
    reasoning: str = ""
    summary: str = ""
    method: str = "heuristic"  # heuristic, llm
    token_usage: dict = field(default_factory=dict)

    def details(self) -> dict:
        """What the classifier said beyond the stored columns."""
        data = {
            "method": self.method,
            "reasoning": self.reasoning,
            "summary": self.summary,
            "signal_details": self.signals.active(),
            "relevant_segments": self.relevant_segments,
        }
        if self.token_usage:
            data["token_usage"] = self.token_usage
        return data


def contains_keywords(text: str | None, keywords: list[str]) -> list[str]:
    """Return every keyword found in text (case-insensitive), in list order."""
    if not text:
        return []
    lowered = text.lower()
    return [kw for kw in keywords if kw and kw.lower() in lowered]


def is_relevant(
    title: str | None,
    description: str | None,
    keywords: list[str],
    content: str | None = None,
) -> list[str]:
    """Keywords a record matches if it is relevant, else an empty list.

    Relevance is decided on title and description only; the returned list
    also covers the body so statistics see every keyword present.
    """
    if not (contains_keywords(title, keywords) or contains_keywords(description, keywords)):
        return []
    combined = " ".join(part for part in (title, description, content) if part)
    return contains_keywords(combined, keywords)


def split_segments(text: str) -> list[str]:
    if _PAGE_BREAK.search(text):
        return _PAGE_BREAK.split(text)
    return _PARAGRAPH_BREAK.split(text)


def relevant_segments(
    text: str | None,
    terms: list[str] = SEGMENT_TERMS,
    min_matches: int = DEFAULT_MIN_SEGMENT_MATCHES,
) -> list[int]:
    """1-based indices of segments containing at least min_matches distinct terms."""
    if not text:
        return []
    hits = []
    for index, segment in enumerate(split_segments(text), start=1):
        if len(contains_keywords(segment, terms)) >= min_matches:
            hits.append(index)
    return hits


def check_heuristics(
    text: str, keywords: list[str], ro_providers: list[str],
) -> HeuristicResult:
    """Quick relevance check with a keyword-derived confidence."""
    matched_keywords = contains_keywords(text, keywords)
    matched_providers = contains_keywords(text, ro_providers)

    confidence = 0.0
    if matched_keywords:
        confidence += 0.5
    if matched_providers:
        confidence += 0.3
    if len(matched_keywords) > 1:
        confidence += 0.1
    if len(matched_providers) > 1:
        confidence += 0.1
    # Heuristics alone never reach full confidence
    confidence = round(min(confidence, 0.9), 2)

    return HeuristicResult(
        likely_relevant=bool(matched_keywords or matched_providers),
        confidence=confidence,
        matched_keywords=matched_keywords,
        matched_ro_providers=matched_providers,
    )


def detect_signals(text: str | None) -> Signals:
    """Flag each signal whose keyword cluster appears in the text."""
    if not text:
        return Signals()
    lowered = text.lower()
    found = [
        signal for signal, terms in SIGNAL_KEYWORDS.items()
        if any(term in lowered for term in terms)
    ]
    return Signals.from_names(found)


def extract_basic_entities(text: str | None, ro_providers: list[str]) -> list[EntityMention]:
    """Spot registered-office providers and ``Xxx Yyy Ltd``-style company names."""
    if not text:
        return []
    entities: list[EntityMention] = []
    seen: set[str] = set()

    for provider in contains_keywords(text, ro_providers):
        entities.append(EntityMention(name=provider, type="RO_PROVIDER"))
        seen.add(provider)

    for match in _COMPANY_NAME.finditer(text):
        name = match.group(0)
        if name not in seen:
            seen.add(name)
            entities.append(EntityMention(name=name, type="ORG"))

    return entities[:MAX_BASIC_ENTITIES]


def classify_heuristic(
    title: str,
    text: str | None,
    keywords: list[str],
    ro_providers: list[str],
    min_segment_matches: int = DEFAULT_MIN_SEGMENT_MATCHES,
) -> Classification:
    """Classify an article from keywords alone."""
    combined = f"{title} {text or ''}"
    heuristic = check_heuristics(combined, keywords, ro_providers)
    return Classification(
        relevant=heuristic.likely_relevant,
        confidence=heuristic.confidence,
        signals=detect_signals(combined),
        entities=extract_basic_entities(combined, ro_providers),
        matched_keywords=heuristic.matched_keywords,
        relevant_segments=relevant_segments(text, min_matches=min_segment_matches),
        reasoning="keyword heuristics",
    )


def review_reason(
    classification: Classification,
    threshold: float = DEFAULT_REVIEW_THRESHOLD,
) -> tuple[str, str] | None:
    """Return (reason, priority) when a human should review, else None."""
    if classification.signals.high_risk:
        names = ", ".join(
            s for s in ("fraud", "regulatory_investigation")
            if getattr(classification.signals, s)
        )
        return f"High-risk signals: {names}", "high"
    if classification.confidence < threshold:
        priority = "high" if classification.relevant_segments else "medium"
        return (
            f"Low confidence: {classification.confidence:.2f} < {threshold:.2f}",
            priority,
        )
    if classification.relevant_segments:
        return (
            f"Insolvency language in {len(classification.relevant_segments)} segment(s)",
            "low",
        )
    return None
