"""Tests for config loading and env var resolution."""

from __future__ import annotations

import pytest

from spacebio.config import (
    DEFAULT_CSV_URL,
    get_index_config,
    get_llm_task_config,
    get_log_path,
    get_pipeline_config,
    get_scrape_config,
    is_task_configured,
    load_config,
    require_credentials,
)
from spacebio.errors import ConfigError, MissingCredentialsError


def test_load_config(sample_config):
    """Config loads and has expected structure."""
    assert "llm" in sample_config
    assert "index" in sample_config
    assert "pipeline" in sample_config


def test_load_config_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "nope.yaml"))


def test_load_config_non_mapping(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config(str(cfg_path))


def test_env_var_resolution(tmp_path, monkeypatch):
    """Environment variables in ${VAR} format are resolved."""
    monkeypatch.setenv("TEST_API_KEY", "my-secret-key")
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("""
llm:
  providers:
    test:
      api_key: "${TEST_API_KEY}"
      base_url: "https://${TEST_API_KEY}.example.com"
""")
    config = load_config(str(cfg_path))
    provider = config["llm"]["providers"]["test"]
    assert provider["api_key"] == "my-secret-key"
    assert provider["base_url"] == "https://my-secret-key.example.com"


def test_get_llm_task_config(sample_config):
    """Task-to-provider mapping works."""
    cfg = get_llm_task_config(sample_config, "chat")
    assert cfg["provider_name"] == "mock"
    assert cfg["provider_type"] == "openai_compatible"
    assert cfg["model"] == "test-model"
    assert cfg["api_key"] == "test-key"
    assert cfg["json_mode"] is False
    assert cfg["extra_headers"] == {}


def test_is_task_configured(make_config):
    config = make_config(tasks=("chat",))
    assert is_task_configured(config, "chat")
    assert not is_task_configured(config, "fusion")


def test_require_credentials(make_config):
    config = make_config(api_key="")
    with pytest.raises(MissingCredentialsError) as exc_info:
        require_credentials(config, "chat")
    assert exc_info.value.provider == "mock"
    assert exc_info.value.task == "chat"


def test_index_defaults():
    cfg = get_index_config({})
    assert cfg["csv_url"] == DEFAULT_CSV_URL
    assert cfg["ttl_seconds"] == 3600
    assert cfg["rank_fallback"] == "first"


def test_index_rejects_unknown_fallback():
    with pytest.raises(ConfigError, match="rank_fallback"):
        get_index_config({"index": {"rank_fallback": "best"}})


@pytest.mark.parametrize("chars", [20_001, 0])
def test_scrape_rejects_text_cap_out_of_range(chars):
    with pytest.raises(ConfigError, match="max_text_chars"):
        get_scrape_config({"scrape": {"max_text_chars": chars}})


def test_scrape_and_pipeline_config(sample_config):
    scrape = get_scrape_config(sample_config)
    assert scrape["timeout"] == 5
    assert scrape["max_text_chars"] == 20_000
    assert scrape["max_page_bytes"] == 5 * 1024 * 1024
    assert scrape["max_images"] == 18
    assert scrape["node_limit"] == 60
    assert scrape["figure_limit"] == 8

    pipeline = get_pipeline_config(sample_config)
    assert pipeline["max_articles"] == 3
    assert pipeline["summarize"] is True


def test_get_log_path(sample_config):
    assert get_log_path(sample_config).endswith("spacebio.log")
    assert get_log_path({}) == "data/spacebio.log"
