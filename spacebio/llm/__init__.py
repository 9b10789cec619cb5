"""LLM provider registry and task routing."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from spacebio.llm.base import BaseLLMProvider

PROVIDERS: dict[str, type[BaseLLMProvider]] = {}

_provider_instances: dict[tuple[str, str], BaseLLMProvider] = {}


def register_provider(name: str):
    """Decorator to register an LLM provider."""

    def decorator(cls):
        PROVIDERS[name] = cls
        return cls

    return decorator


def get_provider_for_task(config: dict, task: str) -> BaseLLMProvider:
    """Get the configured LLM provider instance for a given task."""
    from spacebio.config import get_llm_task_config

    task_cfg = get_llm_task_config(config, task)
    provider_type = task_cfg["provider_type"]
    model = task_cfg["model"]

    # One instance per (provider, model) so tasks never race on the model name
    cache_key = (task_cfg["provider_name"], model)
    if cache_key not in _provider_instances:
        if provider_type not in PROVIDERS:
            raise ValueError(f"Unknown LLM provider type: {provider_type}")
        cls = PROVIDERS[provider_type]
        _provider_instances[cache_key] = cls(
            api_key=task_cfg["api_key"],
            base_url=task_cfg["base_url"],
            default_model=model,
            max_retries=task_cfg["max_retries"],
            timeout=task_cfg["timeout"],
            json_mode=task_cfg["json_mode"],
            extra_headers=task_cfg["extra_headers"],
        )

    return _provider_instances[cache_key]


def clear_provider_cache() -> None:
    _provider_instances.clear()


# Import implementations to trigger registration
from spacebio.llm.anthropic_provider import AnthropicProvider  # noqa: E402, F401
from spacebio.llm.openai_compat import OpenAICompatibleProvider  # noqa: E402, F401
