"""Shared test fixtures."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from spacebio.config import load_config
from spacebio.llm import clear_provider_cache
from spacebio.models import ArticleRef, ScrapedArticle, ScrapedImage

CONFIG_TEMPLATE = """
llm:
  providers:
    mock:
      type: "openai_compatible"
      api_key: "API_KEY_PLACEHOLDER"
      base_url: "http://localhost:9999"
      default_model: "test-model"
  tasks:
TASKS_PLACEHOLDER

index:
  csv_url: ""
  local_path: "CSV_PATH_PLACEHOLDER"
  ttl_seconds: 3600

scrape:
  timeout: 5
  max_concurrent: 4

pipeline:
  max_articles: 3
  summarize: true
  image_proxy: "/api/image?url="

logging:
  path: "LOG_PATH_PLACEHOLDER"
"""

SAMPLE_CSV = (
    "Title,Link\n"
    '"Microgravity, bone loss and muscle atrophy in mice",'
    "https://www.ncbi.nlm.nih.gov/pmc/articles/PMC0000001/\n"
    "Spaceflight alters the immune system of astronauts,"
    "https://www.ncbi.nlm.nih.gov/pmc/articles/PMC0000002/\n"
    "Plant root growth on the International Space Station,"
    "https://www.ncbi.nlm.nih.gov/pmc/articles/PMC0000003/\n"
)


@pytest.fixture(autouse=True)
def _fresh_providers():
    """Provider instances are cached module-wide; isolate each test."""
    clear_provider_cache()
    yield
    clear_provider_cache()


@pytest.fixture
def make_config(tmp_path):
    """Build a config from YAML written to tmp_path.

    ``tasks`` lists the LLM tasks routed to the mock provider.
    """

    def _make(tasks=("chat", "fusion"), api_key="test-key"):
        task_lines = "\n".join(f'    {t}: {{ provider: "mock" }}' for t in tasks)
        text = (
            CONFIG_TEMPLATE
            .replace("API_KEY_PLACEHOLDER", api_key)
            .replace("TASKS_PLACEHOLDER", task_lines or "    {}")
            .replace("CSV_PATH_PLACEHOLDER", str(tmp_path / "index.csv"))
            .replace("LOG_PATH_PLACEHOLDER", str(tmp_path / "spacebio.log"))
        )
        cfg_path = tmp_path / "config.yaml"
        cfg_path.write_text(text)
        return load_config(str(cfg_path))

    return _make


@pytest.fixture
def sample_config(make_config):
    """Minimal config for testing (no real API keys)."""
    return make_config()


@pytest.fixture
def sample_articles():
    return [
        ArticleRef(
            title="Microgravity, bone loss and muscle atrophy in mice",
            link="https://www.ncbi.nlm.nih.gov/pmc/articles/PMC0000001/",
        ),
        ArticleRef(
            title="Spaceflight alters the immune system of astronauts",
            link="https://www.ncbi.nlm.nih.gov/pmc/articles/PMC0000002/",
        ),
        ArticleRef(
            title="Plant root growth on the International Space Station",
            link="https://www.ncbi.nlm.nih.gov/pmc/articles/PMC0000003/",
        ),
    ]


@pytest.fixture
def scraped_articles(sample_articles):
    return [
        ScrapedArticle(
            title=sample_articles[0].title,
            link=sample_articles[0].link,
            text="Mice flown for 30 days lost bone density in the femur.",
            images=[
                ScrapedImage(
                    src="https://www.ncbi.nlm.nih.gov/pmc/fig1.png",
                    alt="Femur bone density chart",
                    caption="Figure 1. Bone density after flight",
                ),
            ],
        ),
        ScrapedArticle(
            title=sample_articles[1].title,
            link=sample_articles[1].link,
            text="",
        ),
        ScrapedArticle(
            title=sample_articles[2].title,
            link=sample_articles[2].link,
            text="Roots grew in random directions without gravity cues.",
            images=[
                ScrapedImage(src="https://www.ncbi.nlm.nih.gov/pmc/roots.jpg", alt="Root tips"),
            ],
        ),
    ]


@pytest.fixture
def article_html():
    """A publication page with navigation chrome, a figure and lazy images."""
    return """
<html>
<head><title>Bone loss</title><style>body { color: red; }</style></head>
<body>
  <header>Site header</header>
  <main>
    <nav>Breadcrumbs</nav>
    <h1>Microgravity and bone</h1>
    <p>Mice   flown in
       space lost bone.</p>
    <figure>
      <img data-src="/fig1.png">
      <figcaption>Figure 1.  Bone density after flight</figcaption>
    </figure>
    <img src="data:image/gif;base64,R0lGOD" data-src="/fig2.png" alt="Chart">
    <img src="/fig1.png">
    <script>track();</script>
  </main>
  <footer>Copyright</footer>
</body>
</html>
"""


@pytest.fixture
def sample_csv():
    return SAMPLE_CSV


@pytest.fixture
def page_stream():
    """Factory for what a mocked ``client.stream("GET", ...)`` returns.

    ``chunks`` overrides the body split; by default ``text`` is one chunk.
    """

    def _make(text="", headers=None, status_error=None, chunks=None):
        resp = MagicMock()
        resp.headers = headers or {}
        resp.encoding = "utf-8"
        resp.raise_for_status = MagicMock(side_effect=status_error)
        body = [text.encode("utf-8")] if chunks is None else chunks

        async def _aiter_bytes():
            for chunk in body:
                yield chunk

        resp.aiter_bytes = _aiter_bytes

        stream_ctx = MagicMock()
        stream_ctx.__aenter__ = AsyncMock(return_value=resp)
        stream_ctx.__aexit__ = AsyncMock(return_value=False)
        return stream_ctx

    return _make
