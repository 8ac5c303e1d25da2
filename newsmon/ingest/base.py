"""Abstract base class for all source feeds."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

import httpx

from newsmon.errors import SourceError
from newsmon.models import RawRecord
from newsmon.process.normalize import extract_domain, parse_date
from newsmon.retry import retry_async


class BaseSource(ABC):
    """Base class for news source feeds.

    Subclasses fetch and map records; they raise SourceError on any failure
    so the caller can fail the run instead of storing a partial result.
    """

    #: Config key holding the API key, or None for keyless sources.
    api_key_field: str | None = None
    #: Daily request allowance used when the source config does not set one.
    default_daily_limit: int | None = None

    def __init__(self, config: dict, source_config: dict | None = None):
        self.config = config
        self.source_config = source_config or {}
        self.timeout = float(self.source_config.get("timeout", 30))
        self.max_retries = int(self.source_config.get("max_retries", 2))
        self.allow_domains = {
            d.strip().lower() for d in self.source_config.get("allow_domains") or [] if d.strip()
        }

    @property
    @abstractmethod
    def name(self) -> str:
        """Source identifier stored on articles and runs."""
        ...

    @abstractmethod
    async def fetch(self, since: datetime) -> list[RawRecord]:
        """Fetch records published after since."""
        ...

    @property
    def api_key(self) -> str:
        if self.api_key_field is None:
            return ""
        return self.source_config.get(self.api_key_field) or ""

    @property
    def daily_limit(self) -> int | None:
        limit = self.source_config.get("daily_limit", self.default_daily_limit)
        return int(limit) if limit is not None else None

    def is_allowed(self, url: str) -> bool:
        """True unless an allow list is configured and the URL's domain is not on it."""
        if not self.allow_domains:
            return True
        return extract_domain(url).lower() in self.allow_domains

    async def _get_json(self, url: str, params: dict, headers: dict | None = None) -> dict:
        """GET url and decode JSON, retrying transient failures."""

        async def _request() -> dict:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params, headers=headers)
                resp.raise_for_status()
                return resp.json()

        try:
            return await retry_async(_request, max_retries=self.max_retries)
        except httpx.HTTPStatusError as exc:
            raise SourceError(
                f"{self.name} API error: HTTP {exc.response.status_code}", status_code=502,
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceError(
                f"{self.name} request failed: {type(exc).__name__}: {exc}", status_code=500,
            ) from exc
        except ValueError as exc:
            raise SourceError(
                f"{self.name} returned invalid JSON: {exc}", status_code=500,
            ) from exc

    def parse_published(self, raw: str | None) -> datetime | None:
        """Parse the feed's publication timestamp."""
        return parse_date(raw)
