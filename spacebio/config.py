"""Load and validate configuration from YAML with env var substitution."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

from spacebio.errors import ConfigError, MissingCredentialsError

DEFAULT_CSV_URL = (
    "https://raw.githubusercontent.com/jgalazka/SB_publications/"
    "refs/heads/main/SB_publication_PMC.csv"
)

# Upper bound on extracted article text
MAX_TEXT_CHARS = 20_000

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


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
            env_key = match.group(1)
            env_val = os.environ.get(env_key, "")
            # If the entire string is a single env var, return the resolved value
            if match.group(0) == value:
                return env_val
            return pattern.sub(lambda m: os.environ.get(m.group(1), ""), value)
        return value
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def load_config(path: str | Path = "config.yaml") -> dict[str, Any]:
    """Load config from YAML file and resolve environment variables."""
    _load_dotenv()

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping: {path}")

    return _resolve_env_vars(raw)


def is_task_configured(config: dict, task: str) -> bool:
    """True when an LLM task has an entry under llm.tasks."""
    tasks = config.get("llm", {}).get("tasks", {}) or {}
    return bool(tasks.get(task))


def get_llm_task_config(config: dict, task: str) -> dict:
    """Get provider name and model for a given LLM task."""
    tasks = config.get("llm", {}).get("tasks", {}) or {}
    task_cfg = tasks.get(task) or {}
    provider_name = task_cfg.get("provider", "openrouter")
    model_override = task_cfg.get("model")

    providers = config.get("llm", {}).get("providers", {}) or {}
    provider_cfg = providers.get(provider_name, {}) or {}

    return {
        "provider_name": provider_name,
        "provider_type": provider_cfg.get("type", "openai_compatible"),
        "api_key": provider_cfg.get("api_key", ""),
        "base_url": provider_cfg.get("base_url", ""),
        "model": model_override or provider_cfg.get("default_model", ""),
        "max_retries": provider_cfg.get("max_retries", 3),
        "timeout": provider_cfg.get("timeout", 120),
        "json_mode": bool(provider_cfg.get("json_mode", False)),
        "extra_headers": dict(provider_cfg.get("extra_headers") or {}),
    }


def require_credentials(config: dict, task: str) -> None:
    """Raise MissingCredentialsError when the task's provider has no API key."""
    task_cfg = get_llm_task_config(config, task)
    if not task_cfg["api_key"]:
        raise MissingCredentialsError(task, task_cfg["provider_name"])


def get_index_config(config: dict) -> dict:
    """Article index settings with defaults filled in."""
    cfg = config.get("index", {}) or {}
    fallback = cfg.get("rank_fallback", "first")
    if fallback not in ("first", "random"):
        raise ConfigError(f"index.rank_fallback must be 'first' or 'random', got {fallback!r}")
    return {
        "csv_url": cfg.get("csv_url", DEFAULT_CSV_URL),
        "local_path": cfg.get("local_path", "data/SB_publication_PMC.csv"),
        "ttl_seconds": float(cfg.get("ttl_seconds", 3600)),
        "timeout": float(cfg.get("timeout", 20)),
        "rank_fallback": fallback,
    }


def get_scrape_config(config: dict) -> dict:
    """Scraper, cache and sanitizer limits with defaults filled in."""
    cfg = config.get("scrape", {}) or {}
    max_text_chars = int(cfg.get("max_text_chars", MAX_TEXT_CHARS))
    if not 0 < max_text_chars <= MAX_TEXT_CHARS:
        raise ConfigError(
            f"scrape.max_text_chars must be between 1 and {MAX_TEXT_CHARS}, "
            f"got {max_text_chars}"
        )
    return {
        "timeout": float(cfg.get("timeout", 15)),
        "user_agent": cfg.get("user_agent", DEFAULT_USER_AGENT),
        "accept_language": cfg.get(
            "accept_language", "en-US,en;q=0.9,fr-FR;q=0.8,fr;q=0.7",
        ),
        "max_text_chars": max_text_chars,
        "max_page_bytes": int(cfg.get("max_page_bytes", 5 * 1024 * 1024)),
        "max_images": int(cfg.get("max_images", 18)),
        "text_ttl_seconds": float(cfg.get("text_ttl_seconds", 600)),
        "html_ttl_seconds": float(cfg.get("html_ttl_seconds", 600)),
        "node_limit": int(cfg.get("node_limit", 60)),
        "figure_limit": int(cfg.get("figure_limit", 8)),
        "max_concurrent": int(cfg.get("max_concurrent", 8)),
    }


def get_pipeline_config(config: dict) -> dict:
    """Per-turn pipeline settings."""
    cfg = config.get("pipeline", {}) or {}
    return {
        "max_articles": int(cfg.get("max_articles", 8)),
        "summarize": bool(cfg.get("summarize", True)),
        "image_proxy": cfg.get("image_proxy", "/api/image?url="),
    }


def get_log_path(config: dict) -> str:
    """Get log file path from config."""
    return (config.get("logging", {}) or {}).get("path", "data/spacebio.log")
