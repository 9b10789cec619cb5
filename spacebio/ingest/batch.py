"""Cached, concurrent scraping of article batches."""

from __future__ import annotations

import asyncio
import logging

from spacebio.cache import TTLCache
from spacebio.config import get_scrape_config
from spacebio.ingest.scraper import ContentExtractor
from spacebio.models import (
    ArticleRef,
    ExtractedContent,
    ScrapedArticle,
    StructuredHtmlResult,
)

logger = logging.getLogger(__name__)


class ScrapeCache:
    """URL-keyed TTL caches in front of a ContentExtractor.

    Plain-text results and structured-HTML results live in separate caches
    with their own TTLs. State is per instance (and so per process).
    """

    def __init__(
        self,
        extractor: ContentExtractor,
        text_ttl: float = 600,
        html_ttl: float = 600,
    ):
        self.extractor = extractor
        self.text_cache: TTLCache[ExtractedContent] = TTLCache(text_ttl)
        self.html_cache: TTLCache[str] = TTLCache(html_ttl)

    @classmethod
    def from_config(cls, config: dict) -> ScrapeCache:
        cfg = get_scrape_config(config)
        return cls(
            ContentExtractor.from_config(config),
            text_ttl=cfg["text_ttl_seconds"],
            html_ttl=cfg["html_ttl_seconds"],
        )

    async def get_text(self, url: str) -> ExtractedContent:
        return await self.text_cache.get_or_compute(
            url, lambda: self.extractor.extract_text(url),
        )

    async def get_html(
        self, url: str, node_limit: int = 60, figure_limit: int = 8,
    ) -> str:
        # Empty excerpts are not cached so the next turn retries the page
        return await self.html_cache.get_or_compute(
            url,
            lambda: self.extractor.extract_structured_html(
                url, node_limit=node_limit, figure_limit=figure_limit,
            ),
            should_store=lambda html: bool(html and html.strip()),
        )


class BatchScraper:
    """Fan out cached extractions over a list of articles.

    Results are positionally aligned with the input; one article failing
    never fails the batch.
    """

    def __init__(self, cache: ScrapeCache, max_concurrent: int = 8):
        self.cache = cache
        self.max_concurrent = max_concurrent

    async def scrape_text(self, articles: list[ArticleRef]) -> list[ScrapedArticle]:
        """One ScrapedArticle per input, empty text/images where a fetch failed."""
        if not articles:
            return []
        sem = asyncio.Semaphore(self.max_concurrent)

        async def _one(article: ArticleRef) -> ScrapedArticle:
            async with sem:
                try:
                    content = await self.cache.get_text(article.link)
                except Exception:
                    logger.exception("Text scrape failed for %s", article.link)
                    content = ExtractedContent.empty()
            return ScrapedArticle.from_ref(article, content)

        results = await asyncio.gather(*[_one(a) for a in articles])
        logger.info(
            "Scraped %d/%d articles with text",
            sum(1 for r in results if r.text), len(results),
        )
        return list(results)

    async def scrape_html(
        self,
        articles: list[ArticleRef],
        node_limit: int = 60,
        figure_limit: int = 8,
    ) -> list[StructuredHtmlResult]:
        """Structured HTML per article, keeping only non-blank excerpts."""
        if not articles:
            return []
        sem = asyncio.Semaphore(self.max_concurrent)

        async def _one(article: ArticleRef) -> StructuredHtmlResult:
            async with sem:
                try:
                    html = await self.cache.get_html(
                        article.link, node_limit=node_limit, figure_limit=figure_limit,
                    )
                except Exception:
                    logger.exception("HTML scrape failed for %s", article.link)
                    html = ""
            return StructuredHtmlResult(article=article, html=html)

        sections = await asyncio.gather(*[_one(a) for a in articles])
        kept = [s for s in sections if s.html and s.html.strip()]
        logger.info("Structured HTML for %d/%d articles", len(kept), len(sections))
        return kept
