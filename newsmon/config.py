"""Load and validate configuration from YAML with env var substitution."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from newsmon.process.classify import (
    DEFAULT_KEYWORDS,
    DEFAULT_MIN_SEGMENT_MATCHES,
    DEFAULT_RO_PROVIDERS,
    DEFAULT_REVIEW_THRESHOLD,
)
from newsmon.process.normalize import DEFAULT_SNIPPET_LENGTH

DEFAULT_CONFIG_PATH = "config.yaml"


@dataclass
class MonitorSettings:
    """Monitor-wide settings shared by every source."""

    keywords: list[str] = field(default_factory=lambda: list(DEFAULT_KEYWORDS))
    ro_providers: list[str] = field(default_factory=lambda: list(DEFAULT_RO_PROVIDERS))
    lookback_hours: int = 24
    max_articles_per_run: int = 100
    snippet_length: int = DEFAULT_SNIPPET_LENGTH
    review_threshold: float = DEFAULT_REVIEW_THRESHOLD
    batch_size: int = 10
    min_segment_matches: int = DEFAULT_MIN_SEGMENT_MATCHES
    jurisdiction: str = "Cayman Islands"
    enabled: bool = True


def _load_dotenv(path: str | Path = ".env") -> None:
    """Load a .env file into os.environ (without overwriting existing vars)."""
    env_path = Path(path)
    if not env_path.is_file():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key and key not in os.environ:
                os.environ[key] = value


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${ENV_VAR} patterns in config values."""
    if isinstance(value, str):
        pattern = re.compile(r"\$\{([^}]+)\}")
        match = pattern.search(value)
        if match:
            if match.group(0) == value:
                return os.environ.get(match.group(1), "")
            return pattern.sub(lambda m: os.environ.get(m.group(1), ""), value)
        return value
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    """Load config from YAML file and resolve environment variables.

    Without an explicit path, CONFIG_PATH from the environment is used.
    """
    _load_dotenv()

    path = Path(path or os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH))
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return _resolve_env_vars(raw)


def get_monitor_settings(config: dict) -> MonitorSettings:
    """Build MonitorSettings from the ``monitor`` section, filling defaults."""
    monitor = config.get("monitor") or {}
    classification = monitor.get("classification") or {}
    defaults = MonitorSettings()
    return MonitorSettings(
        keywords=monitor.get("keywords") or defaults.keywords,
        ro_providers=monitor.get("ro_providers") or defaults.ro_providers,
        lookback_hours=int(monitor.get("lookback_hours", defaults.lookback_hours)),
        max_articles_per_run=int(
            monitor.get("max_articles_per_run", defaults.max_articles_per_run)
        ),
        snippet_length=int(monitor.get("snippet_length", defaults.snippet_length)),
        review_threshold=float(
            classification.get("confidence_threshold", defaults.review_threshold)
        ),
        batch_size=int(classification.get("batch_size", defaults.batch_size)),
        min_segment_matches=int(
            classification.get("min_segment_matches", defaults.min_segment_matches)
        ),
        jurisdiction=monitor.get("jurisdiction") or defaults.jurisdiction,
        enabled=bool(monitor.get("enabled", True)),
    )


def get_source_config(config: dict, name: str) -> dict | None:
    """Return one source's config section, or None if it is not configured."""
    sources = config.get("sources") or {}
    cfg = sources.get(name)
    if cfg is None:
        return None
    return dict(cfg)


def get_active_sources(config: dict) -> list[str]:
    """Return list of enabled source names."""
    sources = config.get("sources") or {}
    return [name for name, cfg in sources.items() if (cfg or {}).get("enabled", False)]


def get_llm_task_config(config: dict, task: str) -> dict | None:
    """Get provider name and model for a given LLM task, or None if unset."""
    llm = config.get("llm") or {}
    task_cfg = (llm.get("tasks") or {}).get(task)
    if not task_cfg:
        return None
    provider_name = task_cfg.get("provider", "openai")
    provider_cfg = (llm.get("providers") or {}).get(provider_name, {})

    return {
        "provider_name": provider_name,
        "provider_type": provider_cfg.get("type", "openai_compatible"),
        "api_key": provider_cfg.get("api_key", ""),
        "base_url": provider_cfg.get("base_url", ""),
        "model": task_cfg.get("model") or provider_cfg.get("default_model", ""),
        "max_retries": provider_cfg.get("max_retries", 3),
        "timeout": provider_cfg.get("timeout", 120),
        "json_mode": provider_cfg.get("json_mode", False),
    }


def get_db_path(config: dict) -> str:
    """Get database path from config."""
    return (config.get("database") or {}).get("path", "data/newsmon.db")
