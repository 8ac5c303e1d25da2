"""Prompt templates for LLM classification."""

SYSTEM_ANALYST = "You are a financial risk analyst. Respond only with valid JSON."

CLASSIFY_BATCH = """\
You are a financial risk analyst specializing in {jurisdiction} entities.

Analyze the following {count} news articles. For each article, determine:
1. Is it about a {jurisdiction} entity (company, fund, trust, or other vehicle)?
2. What risk signals are present?

RISK SIGNALS:
- financial_decline: Financial distress, bankruptcy, insolvency, declining revenues, liquidation
- fraud: Fraud, corruption, embezzlement, misappropriation
- misstated_financials: Accounting irregularities, restatements, audit issues
- shareholder_dispute: Shareholder lawsuits, oppression, governance conflicts
- director_duties: Director liability, breach of fiduciary duty, governance failures
- regulatory_investigation: Regulatory investigations, enforcement, sanctions

RELEVANCE INDICATORS:
- Mentions any of: {keywords}
- Registered office providers: {ro_providers}
- Entities registered, incorporated or based in {jurisdiction}

ARTICLES:
{articles}

Respond in EXACTLY this JSON format (no markdown, no extra text), one entry
per article, using each article's id:
{{
    "classifications": [
        {{
            "id": 1,
            "relevant": true,
            "confidence": 0.0,
            "reasoning": "brief explanation",
            "entities": [
                {{"name": "Entity Name", "type": "ORG|PERSON|GPE|RO_PROVIDER", "confidence": 0.0}}
            ],
            "signals_detected": ["signal_name"],
            "summary": "2-3 sentence summary"
        }}
    ]
}}"""
