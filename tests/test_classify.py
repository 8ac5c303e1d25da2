"""Tests for keyword relevance, heuristics and review decisions."""

from __future__ import annotations

from newsmon.models import Signals
from newsmon.process.classify import (
    Classification,
    check_heuristics,
    classify_heuristic,
    contains_keywords,
    detect_signals,
    extract_basic_entities,
    is_relevant,
    relevant_segments,
    review_reason,
)

KEYWORDS = ["Cayman Islands", "CIMA"]


def test_contains_keywords_returns_all_matches():
    text = "The Cayman Islands Monetary Authority (CIMA) issued a notice."
    assert contains_keywords(text, KEYWORDS) == ["Cayman Islands", "CIMA"]


def test_contains_keywords_case_insensitive():
    assert contains_keywords("cayman islands regulator", KEYWORDS) == ["Cayman Islands"]


def test_contains_keywords_no_match():
    assert contains_keywords("Bermuda insurer files for bankruptcy", KEYWORDS) == []
    assert contains_keywords("", KEYWORDS) == []
    assert contains_keywords(None, KEYWORDS) == []


def test_is_relevant_uses_title_and_description():
    assert is_relevant("CIMA fines fund", None, KEYWORDS) == ["CIMA"]
    assert is_relevant("Fund fined", "Regulator in the Cayman Islands", KEYWORDS) == [
        "Cayman Islands"
    ]


def test_is_relevant_rejects_irrelevant_record():
    assert is_relevant("Bermuda insurer collapses", "Hamilton-based firm", KEYWORDS) == []


def test_is_relevant_ignores_body_only_mentions():
    """A keyword only in the body does not make a record relevant."""
    assert is_relevant("Hedge fund collapses", "Investors lose", KEYWORDS, "CIMA said") == []


def test_is_relevant_reports_body_matches_once_relevant():
    matched = is_relevant("CIMA fines fund", None, KEYWORDS, "based in the Cayman Islands")
    assert matched == ["Cayman Islands", "CIMA"]


def test_relevant_segments_by_paragraph():
    text = (
        "Opening paragraph about markets.\n\n"
        "The petitioner asked the court for a winding up order.\n\n"
        "A creditor was mentioned once."
    )
    assert relevant_segments(text) == [2]


def test_relevant_segments_by_page_marker():
    text = (
        "--- PAGE 1 ---\nCover page\n"
        "--- PAGE 2 ---\nThe liquidator notified each creditor of the debt.\n"
    )
    assert relevant_segments(text) == [2]


def test_relevant_segments_min_matches():
    text = "The petition was filed."
    assert relevant_segments(text) == []
    assert relevant_segments(text, min_matches=1) == [1]
    assert relevant_segments(None) == []


def test_check_heuristics_confidence():
    result = check_heuristics(
        "Cayman Islands fund, CIMA, Maples and Walkers", KEYWORDS, ["Maples", "Walkers"],
    )
    assert result.likely_relevant
    assert result.confidence == 0.9
    assert result.matched_ro_providers == ["Maples", "Walkers"]


def test_check_heuristics_single_keyword():
    result = check_heuristics("CIMA update", KEYWORDS, ["Maples"])
    assert result.confidence == 0.5
    assert check_heuristics("nothing here", KEYWORDS, ["Maples"]).confidence == 0.0


def test_detect_signals():
    signals = detect_signals("Fund placed into liquidation amid fraud allegations")
    assert signals.financial_decline
    assert signals.fraud
    assert not signals.shareholder_dispute
    assert signals.active() == ["financial_decline", "fraud"]


def test_detect_signals_regulatory_is_case_insensitive():
    assert detect_signals("An SEC investigation was opened").regulatory_investigation
    assert detect_signals(None) == Signals()


def test_extract_basic_entities():
    entities = extract_basic_entities(
        "Acme Capital Fund and Blue Horizon Ltd were advised by Maples.", ["Maples", "Ogier"],
    )
    names = [(e.name, e.type) for e in entities]
    assert ("Maples", "RO_PROVIDER") in names
    assert ("Acme Capital Fund", "ORG") in names
    assert ("Blue Horizon Ltd", "ORG") in names
    assert all(e.confidence == 0.5 for e in entities)


def test_extract_basic_entities_capped():
    names = [
        "Alpha", "Bravo", "Charlie", "Delta", "Echo", "Foxtrot", "Golf", "Hotel",
        "India", "Juliet", "Kilo", "Lima", "Mike", "November", "Oscar",
    ]
    text = ". ".join(f"{name} Holdings Ltd" for name in names)
    assert len(extract_basic_entities(text, [])) == 10


def test_classify_heuristic():
    result = classify_heuristic(
        "Cayman Islands fund enters liquidation",
        "The liquidator wrote to every creditor.",
        KEYWORDS,
        ["Maples"],
    )
    assert result.relevant
    assert result.method == "heuristic"
    assert result.signals.financial_decline
    assert result.relevant_segments == [1]


def test_review_reason_high_risk():
    c = Classification(relevant=True, confidence=0.95, signals=Signals(fraud=True))
    reason, priority = review_reason(c)
    assert priority == "high"
    assert "fraud" in reason


def test_review_reason_low_confidence():
    c = Classification(relevant=True, confidence=0.4)
    reason, priority = review_reason(c, threshold=0.7)
    assert priority == "medium"
    assert "0.40" in reason


def test_review_reason_none_when_confident():
    assert review_reason(Classification(relevant=True, confidence=0.9)) is None
    assert review_reason(Classification(relevant=False, confidence=0.9)) is None


def test_review_reason_low_confidence_irrelevant():
    """An uncertain "not relevant" verdict still goes to a human."""
    reason, priority = review_reason(Classification(relevant=False, confidence=0.2))
    assert priority == "medium"
    assert "0.20" in reason


def test_classification_details():
    c = Classification(
        relevant=True, confidence=0.8, signals=Signals(fraud=True),
        reasoning="charged", summary="A fund was charged.", method="llm",
        token_usage={"input_tokens": 10},
    )
    assert c.details() == {
        "method": "llm",
        "reasoning": "charged",
        "summary": "A fund was charged.",
        "signal_details": ["fraud"],
        "relevant_segments": [],
        "token_usage": {"input_tokens": 10},
    }
    assert "token_usage" not in Classification(relevant=False, confidence=0.0).details()


def test_review_reason_segments_only():
    c = Classification(relevant=True, confidence=0.9, relevant_segments=[2, 3])
    assert review_reason(c) == ("Insolvency language in 2 segment(s)", "low")
