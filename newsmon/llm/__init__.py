"""LLM provider registry and task routing."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from newsmon.llm.base import BaseLLMProvider

PROVIDERS: dict[str, type[BaseLLMProvider]] = {}


def register_provider(name: str):
    """Decorator to register an LLM provider."""

    def decorator(cls):
        PROVIDERS[name] = cls
        return cls

    return decorator


def get_provider_for_task(config: dict, task: str) -> BaseLLMProvider | None:
    """Build the configured provider for a task, or None if the task is unset.

    A fresh instance per call; nothing is cached between runs.
    """
    from newsmon.config import get_llm_task_config

    task_cfg = get_llm_task_config(config, task)
    if task_cfg is None or not task_cfg["api_key"]:
        return None

    provider_type = task_cfg["provider_type"]
    if provider_type not in PROVIDERS:
        raise ValueError(f"Unknown LLM provider type: {provider_type}")
    return PROVIDERS[provider_type](
        api_key=task_cfg["api_key"],
        base_url=task_cfg["base_url"],
        default_model=task_cfg["model"],
        max_retries=task_cfg["max_retries"],
        timeout=task_cfg["timeout"],
        json_mode=task_cfg["json_mode"],
    )


# Import implementations to trigger registration
from newsmon.llm.anthropic_provider import AnthropicProvider  # noqa: E402, F401
from newsmon.llm.openai_compat import OpenAICompatibleProvider  # noqa: E402, F401
