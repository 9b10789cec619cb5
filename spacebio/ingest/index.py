"""CSV-backed publication index with lexical ranking."""

from __future__ import annotations

import logging
import random
import re
import time
from pathlib import Path
from typing import Callable

import httpx

from spacebio.config import get_index_config
from spacebio.errors import IndexUnavailableError
from spacebio.models import ArticleRef

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[^\W_]+")
_HTTP_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)


def tokenize(text: str) -> list[str]:
    """Lowercased runs of letters/digits in any script."""
    return _TOKEN_RE.findall(text.lower())


def _quoted_row_pattern(title_idx: int) -> re.Pattern:
    # Plain columns before the title, then a double-quoted title that may
    # contain commas and "" escapes, then the rest of the row.
    return re.compile(
        r'^((?:[^,"]*,){%d})\s*"((?:[^"]|"")*)"\s*(,.*)?$' % title_idx
    )


def _split_quoted(match: re.Match) -> list[str]:
    before, title, after = match.group(1), match.group(2), match.group(3)
    cols = before.split(",")[:-1] if before else []
    cols.append(title.replace('""', '"'))
    if after:
        cols.extend(after[1:].split(","))
    return cols


def parse_csv(text: str) -> list[ArticleRef]:
    """Parse ``title``/``link`` rows; malformed rows are skipped, not errors."""
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        return []

    header = [
        h.strip().strip('"').strip().lower()
        for h in lines[0].lstrip("\ufeff").split(",")
    ]
    title_idx = next((i for i, h in enumerate(header) if h.startswith("title")), -1)
    link_idx = next((i for i, h in enumerate(header) if h in ("link", "url")), -1)
    if title_idx == -1 or link_idx == -1:
        logger.warning("CSV header has no title/link columns: %s", lines[0][:200])
        return []

    quoted = _quoted_row_pattern(title_idx)
    needed = max(title_idx, link_idx) + 1
    articles = []
    for line in lines[1:]:
        match = quoted.match(line)
        cols = _split_quoted(match) if match else line.split(",")
        if len(cols) < needed:
            continue
        title = cols[title_idx].strip()
        link = cols[link_idx].strip().strip('"').strip()
        if not title or not _HTTP_RE.match(link):
            continue
        articles.append(ArticleRef(title=title, link=link))

    return articles


def rank(
    query: str,
    articles: list[ArticleRef],
    k: int,
    fallback: str = "first",
    rng: random.Random | None = None,
) -> list[ArticleRef]:
    """Top-k articles by count of query tokens found in the title.

    Ties keep corpus order. When nothing overlaps, the first k articles are
    returned (or a random k with ``fallback="random"``) so a non-empty corpus
    always yields ``min(k, len(articles))`` results.
    """
    if k <= 0 or not articles:
        return []

    tokens = tokenize(query)
    scores = []
    for article in articles:
        title = article.title.lower()
        scores.append(sum(1 for t in tokens if t in title))

    if not any(scores):
        if fallback == "random":
            return sample(articles, k, rng=rng)
        return list(articles[:k])

    order = sorted(range(len(articles)), key=lambda i: -scores[i])
    return [articles[i] for i in order[:k]]


def sample(
    articles: list[ArticleRef], n: int, rng: random.Random | None = None,
) -> list[ArticleRef]:
    """Uniform pick of ``n`` articles without replacement (partial Fisher-Yates)."""
    rng = rng or random.Random()
    pool = list(articles)
    count = max(0, min(n, len(pool)))
    for i in range(count):
        j = rng.randrange(i, len(pool))
        pool[i], pool[j] = pool[j], pool[i]
    return pool[:count]


class ArticleIndex:
    """Publication list loaded from a remote CSV with a local snapshot fallback.

    The parsed list is held on the instance for ``ttl_seconds``; callers
    within the window get the same list object back.
    """

    def __init__(
        self,
        csv_url: str | None,
        local_path: str | Path | None = None,
        ttl_seconds: float = 3600,
        timeout: float = 20,
        rank_fallback: str = "first",
        clock: Callable[[], float] = time.time,
    ):
        self.csv_url = csv_url
        self.local_path = Path(local_path) if local_path else None
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self.rank_fallback = rank_fallback
        self._clock = clock
        self._articles: list[ArticleRef] | None = None
        self._last_fetch = 0.0

    @classmethod
    def from_config(cls, config: dict) -> ArticleIndex:
        cfg = get_index_config(config)
        return cls(
            csv_url=cfg["csv_url"],
            local_path=cfg["local_path"],
            ttl_seconds=cfg["ttl_seconds"],
            timeout=cfg["timeout"],
            rank_fallback=cfg["rank_fallback"],
        )

    async def load(self) -> list[ArticleRef]:
        now = self._clock()
        if self._articles and (now - self._last_fetch) < self.ttl_seconds:
            return self._articles

        articles = []
        if self.csv_url:
            text = await self._fetch_remote(self.csv_url)
            if text:
                articles = parse_csv(text)
                if not articles:
                    logger.warning("Remote CSV %s yielded no rows", self.csv_url)

        if not articles and self.local_path:
            text = self._read_local(self.local_path)
            if text:
                articles = parse_csv(text)

        if not articles:
            raise IndexUnavailableError(
                "No article index available (remote and local sources empty)"
            )

        logger.info("Loaded %d articles into the index", len(articles))
        self._articles = articles
        self._last_fetch = now
        return articles

    def rank(self, query: str, articles: list[ArticleRef], k: int) -> list[ArticleRef]:
        return rank(query, articles, k, fallback=self.rank_fallback)

    async def _fetch_remote(self, url: str) -> str | None:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True,
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                return resp.text
        except httpx.HTTPError as exc:
            logger.warning("CSV fetch failed for %s: %s", url, exc)
            return None

    @staticmethod
    def _read_local(path: Path) -> str | None:
        if not path.is_file():
            logger.debug("No local CSV snapshot at %s", path)
            return None
        try:
            return path.read_text(encoding="utf-8-sig")
        except OSError as exc:
            logger.warning("Could not read local CSV %s: %s", path, exc)
            return None
