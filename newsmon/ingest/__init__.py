"""Source feed registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from newsmon.ingest.base import BaseSource

SOURCES: dict[str, type[BaseSource]] = {}


def register_source(name: str):
    """Decorator to register a source feed."""

    def decorator(cls):
        SOURCES[name] = cls
        return cls

    return decorator


# Import implementations to trigger registration
from newsmon.ingest.gdelt import GDELTSource  # noqa: E402, F401
from newsmon.ingest.newsapi import NewsAPISource  # noqa: E402, F401
