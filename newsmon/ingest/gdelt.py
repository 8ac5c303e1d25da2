"""GDELT Doc 2.0 API source feed."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from newsmon.config import get_monitor_settings
from newsmon.errors import SourceError
from newsmon.ingest import register_source
from newsmon.ingest.base import BaseSource
from newsmon.models import RawRecord, utcnow
from newsmon.process.normalize import parse_gdelt_date

logger = logging.getLogger(__name__)

GDELT_API_URL = "https://api.gdeltproject.org/api/v2/doc/doc"
GDELT_MAX_RECORDS = 250
GDELT_MAX_HOURS = 30 * 24

DEFAULT_QUERY = (
    '("Cayman Islands" OR "Grand Cayman" OR "Cayman domiciled" OR "Cayman-registered") '
    "AND (fund OR hedge OR finance OR investment OR liquidation OR bankruptcy)"
)

# GDELT reports the language by name; everything else uses ISO codes
LANGUAGE_CODES = {"english": "en", "eng": "en"}


def gdelt_timespan(since: datetime, now: datetime | None = None) -> str:
    """Lookback window in GDELT's ``timespan`` syntax, clamped to 1h..30d."""
    hours = int(((now or utcnow()) - since).total_seconds() // 3600)
    hours = max(1, min(hours, GDELT_MAX_HOURS))
    if hours <= 48:
        return f"{hours}h"
    return f"{hours // 24}d"


@register_source("gdelt")
class GDELTSource(BaseSource):
    """Fetch articles from the GDELT Doc 2.0 API. No API key, no quota."""

    @property
    def name(self) -> str:
        return "gdelt"

    async def fetch(self, since: datetime) -> list[RawRecord]:
        max_articles = int(
            self.source_config.get("max_articles")
            or get_monitor_settings(self.config).max_articles_per_run
        )
        params = {
            "query": self.source_config.get("query") or DEFAULT_QUERY,
            "mode": "artlist",
            "maxrecords": str(min(max_articles, GDELT_MAX_RECORDS)),
            "format": "json",
            "sort": "datedesc",
            "timespan": gdelt_timespan(since),
        }

        # GDELT asks clients to space out requests
        courtesy_delay = float(self.source_config.get("courtesy_delay", 1.0))
        if courtesy_delay > 0:
            await asyncio.sleep(courtesy_delay)

        data = await self._get_json(GDELT_API_URL, params)
        if not isinstance(data, dict):
            raise SourceError("gdelt returned an unexpected payload", status_code=500)

        records = []
        for item in data.get("articles") or []:
            url = item.get("url", "")
            title = item.get("title", "")
            if not url or not title:
                continue
            language = (item.get("language") or "en").lower()
            records.append(
                RawRecord(
                    url=url,
                    title=title,
                    source_api=self.name,
                    source_name=item.get("domain"),
                    published=item.get("seendate"),
                    language=LANGUAGE_CODES.get(language, language),
                    meta={
                        "domain": item.get("domain"),
                        "sourcecountry": item.get("sourcecountry"),
                    },
                )
            )

        logger.info("GDELT fetched %d records (timespan %s)", len(records), params["timespan"])
        return records

    def parse_published(self, raw: str | None) -> datetime | None:
        return parse_gdelt_date(raw)
