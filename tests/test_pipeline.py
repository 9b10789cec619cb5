"""Tests for pipeline orchestration."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from spacebio.errors import IndexUnavailableError, MissingCredentialsError
from spacebio.llm.base import LLMResponse
from spacebio.llm.prompts import SYSTEM_GENERIC
from spacebio.models import StructuredHtmlResult, TurnState
from spacebio.pipeline import ChatPipeline

FUSION_REPLY = json.dumps({
    "language": "en",
    "sections": [
        {
            "heading": "Bone loss",
            "text_markdown": "Mice lost bone density in microgravity [1].",
            "imageRefs": [{"doc": 1, "img": 0, "caption": "Bone density after flight"}],
        },
    ],
})

DOMAIN_QUESTION = "How does microgravity affect bone?"


def _mock_llm_response(text):
    return LLMResponse(text=text, input_tokens=10, output_tokens=20, model="test")


def _pipeline(config, articles, scraped=None, html_sections=None):
    index = MagicMock()
    index.load = AsyncMock(return_value=articles)
    index.rank = MagicMock(side_effect=lambda query, corpus, k: corpus[:k])

    pipeline = ChatPipeline(config, index=index)
    pipeline.batch = MagicMock()
    pipeline.batch.scrape_text = AsyncMock(return_value=scraped or [])
    pipeline.batch.scrape_html = AsyncMock(return_value=html_sections or [])
    return pipeline


def _provider(text="", error=None):
    provider = MagicMock()
    provider.complete = AsyncMock(
        return_value=_mock_llm_response(text), side_effect=error,
    )
    return provider


@pytest.mark.asyncio
@patch("spacebio.pipeline.get_provider_for_task")
async def test_generic_query_skips_index_and_scraper(mock_get_provider, sample_config, sample_articles):
    """A non-domain question goes straight to the chat model."""
    provider = _provider("Sunny, probably.")
    mock_get_provider.return_value = provider
    pipeline = _pipeline(sample_config, sample_articles)

    result = await pipeline.answer("What's the weather today?")

    assert result.mode == "generic"
    assert result.reply == "Sunny, probably."
    assert provider.complete.call_args.kwargs["system"] == SYSTEM_GENERIC
    pipeline.index.load.assert_not_called()
    pipeline.batch.scrape_text.assert_not_called()
    pipeline.batch.scrape_html.assert_not_called()


@pytest.mark.asyncio
@patch("spacebio.pipeline.get_provider_for_task")
async def test_greeting_never_calls_model(mock_get_provider, sample_config, sample_articles):
    pipeline = _pipeline(sample_config, sample_articles)

    result = await pipeline.answer("Hello!")

    assert result.mode == "chitchat"
    assert "space-biology" in result.reply
    mock_get_provider.assert_not_called()
    pipeline.index.load.assert_not_called()


@pytest.mark.asyncio
async def test_missing_credentials_fail_fast(make_config, sample_articles):
    pipeline = _pipeline(make_config(api_key=""), sample_articles)
    with pytest.raises(MissingCredentialsError):
        await pipeline.answer("Hello!")


@pytest.mark.asyncio
async def test_index_unavailable_propagates(sample_config):
    pipeline = _pipeline(sample_config, [])
    pipeline.index.load.side_effect = IndexUnavailableError("empty")
    with pytest.raises(IndexUnavailableError):
        await pipeline.answer(DOMAIN_QUESTION)


@pytest.mark.asyncio
async def test_list_only_turn(sample_config, sample_articles):
    pipeline = _pipeline(sample_config, sample_articles)

    result = await pipeline.answer(DOMAIN_QUESTION, summarize=False)

    assert result.mode == "articles_only"
    assert result.articles == sample_articles
    assert result.states == [
        TurnState.RECEIVED, TurnState.RANKED, TurnState.ARTICLE_LIST_ONLY,
    ]
    pipeline.batch.scrape_text.assert_not_called()


@pytest.mark.asyncio
@patch("spacebio.pipeline.get_provider_for_task")
async def test_fusion_unconfigured_goes_to_structured_html(
    mock_get_provider, make_config, sample_articles,
):
    """Without a fusion model the turn goes straight to HTML excerpts."""
    excerpts = [StructuredHtmlResult(article=sample_articles[0], html="<p>Bone</p>")]
    pipeline = _pipeline(make_config(tasks=("chat",)), sample_articles, html_sections=excerpts)

    result = await pipeline.answer(DOMAIN_QUESTION)

    assert result.mode == "scraped"
    assert result.html_sections == excerpts
    assert "<p>Bone</p>" in result.html
    assert 'class="article-title">[1]' in result.html
    assert result.states == [
        TurnState.RECEIVED, TurnState.RANKED,
        TurnState.HTML_ATTEMPTED, TurnState.HTML_RESOLVED,
    ]
    pipeline.batch.scrape_text.assert_not_called()
    mock_get_provider.assert_not_called()


@pytest.mark.asyncio
@patch("spacebio.pipeline.get_provider_for_task")
async def test_fusion_success(mock_get_provider, sample_config, sample_articles, scraped_articles):
    mock_get_provider.return_value = _provider(FUSION_REPLY)
    pipeline = _pipeline(sample_config, sample_articles, scraped=scraped_articles)

    result = await pipeline.answer(DOMAIN_QUESTION)

    assert result.mode == "fused_json"
    assert result.language == "en"
    assert result.sections[0].heading == "Bone loss"
    image = result.sections[0].images[0]
    assert image.src.startswith("/api/image?url=https%3A%2F%2F")
    assert image.cite_index == 1
    assert "## Bone loss" in result.markdown
    assert "### Sources" in result.markdown
    assert result.states == [
        TurnState.RECEIVED, TurnState.RANKED, TurnState.SCRAPED,
        TurnState.FUSION_ATTEMPTED, TurnState.FUSION_RESOLVED,
    ]
    pipeline.batch.scrape_html.assert_not_called()


@pytest.mark.asyncio
@patch("spacebio.pipeline.get_provider_for_task")
async def test_unparseable_fusion_falls_back_to_html(
    mock_get_provider, sample_config, sample_articles, scraped_articles,
):
    mock_get_provider.return_value = _provider("I'm sorry, here is a summary in prose.")
    excerpts = [StructuredHtmlResult(article=sample_articles[2], html="<p>Roots</p>")]
    pipeline = _pipeline(
        sample_config, sample_articles, scraped=scraped_articles, html_sections=excerpts,
    )

    result = await pipeline.answer(DOMAIN_QUESTION)

    assert result.mode == "scraped"
    assert TurnState.FUSION_FAILED in result.states
    assert result.states[-1] == TurnState.HTML_RESOLVED


@pytest.mark.asyncio
@patch("spacebio.pipeline.get_provider_for_task")
async def test_everything_fails_lists_articles(
    mock_get_provider, sample_config, sample_articles, scraped_articles,
):
    """Model error and no HTML still leave the ranked article list."""
    mock_get_provider.return_value = _provider(error=RuntimeError("LLM down"))
    pipeline = _pipeline(sample_config, sample_articles, scraped=scraped_articles)

    result = await pipeline.answer(DOMAIN_QUESTION)

    assert result.mode == "articles_only"
    assert result.articles == sample_articles
    assert result.states[-4:] == [
        TurnState.FUSION_FAILED, TurnState.HTML_ATTEMPTED,
        TurnState.HTML_FAILED, TurnState.ARTICLE_LIST_ONLY,
    ]


@pytest.mark.asyncio
@patch("spacebio.llm.openai_compat.httpx.AsyncClient")
async def test_pipeline_end_to_end(
    mock_httpx, sample_config, sample_csv, article_html, page_stream, tmp_path,
):
    """Local CSV, mocked page fetches and a mocked fusion model."""
    (tmp_path / "index.csv").write_text(sample_csv)

    llm_resp = MagicMock()
    llm_resp.json.return_value = {
        "choices": [{"message": {"content": f"```json\n{FUSION_REPLY}\n```"}}],
        "usage": {"prompt_tokens": 50, "completion_tokens": 30},
    }
    llm_resp.raise_for_status = MagicMock()

    # Page fetches and the model call share the patched httpx client
    mock_client = AsyncMock()
    mock_client.stream = MagicMock(return_value=page_stream(article_html))
    mock_client.post.return_value = llm_resp
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_httpx.return_value = mock_client

    result = await ChatPipeline(sample_config).answer(DOMAIN_QUESTION)

    assert result.mode == "fused_json"
    assert result.articles[0].title.startswith("Microgravity, bone loss")
    assert result.sections[0].images[0].caption == "Bone density after flight"
    assert mock_client.stream.call_count == 3
    assert mock_client.post.await_count == 1
