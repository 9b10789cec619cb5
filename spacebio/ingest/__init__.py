"""Article index, page scraping and batch extraction."""

from __future__ import annotations

from spacebio.ingest.batch import BatchScraper, ScrapeCache
from spacebio.ingest.index import ArticleIndex
from spacebio.ingest.scraper import ContentExtractor

__all__ = ["ArticleIndex", "BatchScraper", "ContentExtractor", "ScrapeCache"]
