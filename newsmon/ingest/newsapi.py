"""NewsAPI.org ``/v2/everything`` source feed."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from newsmon.errors import SourceError
from newsmon.ingest import register_source
from newsmon.ingest.base import BaseSource
from newsmon.models import RawRecord

logger = logging.getLogger(__name__)

NEWSAPI_URL = "https://newsapi.org/v2/everything"
NEWSAPI_MAX_PAGE_SIZE = 100

DEFAULT_QUERY = (
    '"Cayman Islands" OR "Grand Cayman" OR "Cayman-registered" '
    'OR "Cayman-domiciled" OR CIMA'
)


@register_source("newsapi")
class NewsAPISource(BaseSource):
    """Fetch articles from NewsAPI. Needs an API key and has a daily quota."""

    api_key_field = "api_key"
    default_daily_limit = 100

    @property
    def name(self) -> str:
        return "newsapi"

    def build_query(self) -> str:
        """Base query, narrowed by an optional extra clause from config."""
        query = self.source_config.get("query") or DEFAULT_QUERY
        extra = self.source_config.get("extra_query")
        if extra:
            return f"({query}) AND ({extra})"
        return query

    async def fetch(self, since: datetime) -> list[RawRecord]:
        page_size = int(self.source_config.get("page_size", NEWSAPI_MAX_PAGE_SIZE))
        params = {
            "q": self.build_query(),
            "from": since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "language": "en",
            "sortBy": "publishedAt",
            "pageSize": str(min(page_size, NEWSAPI_MAX_PAGE_SIZE)),
        }
        data = await self._get_json(NEWSAPI_URL, params, headers={"X-Api-Key": self.api_key})

        if not isinstance(data, dict) or data.get("status") != "ok":
            status = data.get("status") if isinstance(data, dict) else None
            message = data.get("message", "") if isinstance(data, dict) else ""
            raise SourceError(f"NewsAPI returned status: {status} {message}".rstrip())

        records = []
        for item in data.get("articles") or []:
            url = item.get("url") or ""
            title = item.get("title") or ""
            if not url or not title:
                continue
            source = item.get("source") or {}
            records.append(
                RawRecord(
                    url=url,
                    title=title,
                    source_api=self.name,
                    description=item.get("description"),
                    content=item.get("content"),
                    author=item.get("author"),
                    source_name=source.get("name"),
                    published=item.get("publishedAt"),
                    meta={"newsapi_source_id": source.get("id")},
                )
            )

        logger.info(
            "NewsAPI returned %d records (total available: %s)",
            len(records), data.get("totalResults"),
        )
        return records
