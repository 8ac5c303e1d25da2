"""Shared test fixtures."""

from __future__ import annotations

import pytest

from newsmon.config import load_config
from newsmon.db import get_connection, init_db
from newsmon.models import Article
from newsmon.process.normalize import normalize_title, url_hash


@pytest.fixture
def sample_config(tmp_path):
    """Minimal config for testing (no real API keys, no delays)."""
    config_text = """
monitor:
  enabled: true
  keywords: ["Cayman Islands", "Grand Cayman", "CIMA"]
  ro_providers: ["Maples", "Walkers", "Ogier"]
  lookback_hours: 24
  classification:
    batch_size: 10
    confidence_threshold: 0.7

sources:
  newsapi:
    enabled: true
    api_key: "test-newsapi-key"
    daily_limit: 100
    max_retries: 0
  gdelt:
    enabled: true
    courtesy_delay: 0
    max_retries: 0

database:
  path: "DB_PATH_PLACEHOLDER"
"""
    db_path = str(tmp_path / "test.db")
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(config_text.replace("DB_PATH_PLACEHOLDER", db_path))
    return load_config(str(cfg_path))


@pytest.fixture
def db_path(sample_config):
    path = sample_config["database"]["path"]
    init_db(path)
    return path


@pytest.fixture
def db_conn(db_path):
    """Initialized test database connection."""
    conn = get_connection(db_path)
    yield conn
    conn.close()


@pytest.fixture
def make_article():
    """Factory for pending articles with consistent hash and normalized title."""

    def _make(
        url: str = "https://example.com/cayman-fund",
        title: str = "Cayman Islands fund enters liquidation",
        **kwargs,
    ) -> Article:
        kwargs.setdefault("source_api", "newsapi")
        kwargs.setdefault("content_snippet", title)
        kwargs.setdefault("source_domain", "example.com")
        hashed = url_hash(url)
        return Article(
            source_id=hashed[:32],
            url=url,
            url_hash=hashed,
            title=title,
            title_normalized=normalize_title(title),
            **kwargs,
        )

    return _make
