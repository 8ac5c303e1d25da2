"""Tests for config loading and env var resolution."""

from __future__ import annotations

import os

import pytest

from newsmon.config import (
    _load_dotenv,
    get_active_sources,
    get_db_path,
    get_llm_task_config,
    get_monitor_settings,
    get_source_config,
    load_config,
)
from newsmon.process.classify import DEFAULT_KEYWORDS


def test_load_config(sample_config):
    """Config loads and has expected structure."""
    assert "monitor" in sample_config
    assert "sources" in sample_config
    assert "llm" not in sample_config


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_load_config_from_env_path(tmp_path, monkeypatch):
    cfg_path = tmp_path / "other.yaml"
    cfg_path.write_text("database:\n  path: elsewhere.db\n")
    monkeypatch.setenv("CONFIG_PATH", str(cfg_path))
    assert get_db_path(load_config()) == "elsewhere.db"


def test_env_var_resolution(tmp_path, monkeypatch):
    """Environment variables in ${VAR} format are resolved."""
    monkeypatch.setenv("TEST_NEWSAPI_KEY", "my-secret-key")
    monkeypatch.delenv("UNSET_VAR_FOR_TEST", raising=False)
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("""
sources:
  newsapi:
    api_key: "${TEST_NEWSAPI_KEY}"
    note: "key=${TEST_NEWSAPI_KEY}"
    missing: "${UNSET_VAR_FOR_TEST}"
""")
    newsapi = load_config(str(cfg_path))["sources"]["newsapi"]
    assert newsapi["api_key"] == "my-secret-key"
    assert newsapi["note"] == "key=my-secret-key"
    assert newsapi["missing"] == ""


def test_load_dotenv_does_not_override(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("# comment\nDOTENV_NEW='from-file'\nDOTENV_SET=from-file\n")
    monkeypatch.delenv("DOTENV_NEW", raising=False)
    monkeypatch.setenv("DOTENV_SET", "from-env")

    _load_dotenv(env_file)

    assert os.environ["DOTENV_NEW"] == "from-file"
    assert os.environ["DOTENV_SET"] == "from-env"
    monkeypatch.delenv("DOTENV_NEW")


def test_get_monitor_settings(sample_config):
    settings = get_monitor_settings(sample_config)
    assert settings.keywords == ["Cayman Islands", "Grand Cayman", "CIMA"]
    assert settings.ro_providers == ["Maples", "Walkers", "Ogier"]
    assert settings.review_threshold == 0.7
    assert settings.batch_size == 10
    assert settings.enabled


def test_get_monitor_settings_defaults():
    settings = get_monitor_settings({})
    assert settings.keywords == DEFAULT_KEYWORDS
    assert settings.lookback_hours == 24
    assert settings.max_articles_per_run == 100
    assert settings.jurisdiction == "Cayman Islands"


def test_get_source_config(sample_config):
    assert get_source_config(sample_config, "newsapi")["api_key"] == "test-newsapi-key"
    assert get_source_config(sample_config, "bogus") is None


def test_get_active_sources(sample_config):
    """Only enabled sources are returned."""
    assert get_active_sources(sample_config) == ["newsapi", "gdelt"]
    sample_config["sources"]["gdelt"]["enabled"] = False
    assert get_active_sources(sample_config) == ["newsapi"]


def test_get_llm_task_config():
    """Task-to-provider mapping works."""
    config = {
        "llm": {
            "providers": {
                "mock": {
                    "type": "openai_compatible",
                    "api_key": "k",
                    "base_url": "https://api.example.com/v1",
                    "default_model": "test-model",
                },
            },
            "tasks": {"classify": {"provider": "mock"}},
        },
    }
    cfg = get_llm_task_config(config, "classify")
    assert cfg["provider_name"] == "mock"
    assert cfg["provider_type"] == "openai_compatible"
    assert cfg["model"] == "test-model"
    assert cfg["json_mode"] is False


def test_get_llm_task_config_unset(sample_config):
    assert get_llm_task_config(sample_config, "classify") is None


def test_get_db_path(sample_config):
    """DB path is extracted from config."""
    assert get_db_path(sample_config).endswith("test.db")
    assert get_db_path({}) == "data/newsmon.db"
