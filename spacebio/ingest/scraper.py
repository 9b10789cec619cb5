"""Article page fetching and plain-text/figure extraction."""

from __future__ import annotations

import logging
import re
from typing import Callable
from urllib.parse import urljoin, urlsplit

import httpx
import trafilatura
from bs4 import BeautifulSoup, Tag

from spacebio.config import DEFAULT_USER_AGENT, MAX_TEXT_CHARS, get_scrape_config
from spacebio.models import ExtractedContent, ScrapedImage

logger = logging.getLogger(__name__)

MAX_MAIN_TEXT_CHARS = MAX_TEXT_CHARS
MAX_PAGE_BYTES = 5 * 1024 * 1024
MAX_IMAGES = 18
MAX_CAPTION_CHARS = 400
MAX_ALT_FROM_CAPTION = 120

BOILERPLATE_TAGS = ["script", "style", "nav", "header", "footer", "aside"]
IMG_SOURCE_ATTRS = ("src", "data-src", "data-original", "data-lazy-src")
SRCSET_ATTRS = ("srcset", "data-srcset")

_IMAGE_HREF_RE = re.compile(r"\.(png|jpe?g|webp|gif|bmp|tiff?)($|\?)", re.IGNORECASE)
_WS_RE = re.compile(r"\s+")


def collapse_ws(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def absolutize(url: str, base: str) -> str:
    """Resolve ``url`` against ``base``; unparseable input is returned as is."""
    try:
        return urljoin(base, url.strip())
    except ValueError:
        return url


def first_srcset_url(srcset: str | None) -> str | None:
    if not srcset:
        return None
    first = srcset.split(",")[0].strip()
    if not first:
        return None
    return first.split()[0] or None


def _usable(value: str | None) -> str | None:
    # Lazy-loading placeholders are usually inline data: URIs
    if not value:
        return None
    value = value.strip()
    if not value or value.lower().startswith("data:"):
        return None
    return value


# --- main content selection --------------------------------------------------

def _select_main(soup: BeautifulSoup) -> Tag | None:
    return soup.find("main")


def _select_article(soup: BeautifulSoup) -> Tag | None:
    return soup.find("article")


def _select_body(soup: BeautifulSoup) -> Tag | None:
    return soup.body


def _select_document(soup: BeautifulSoup) -> Tag | None:
    return soup


MAIN_CONTENT_STRATEGIES: list[Callable[[BeautifulSoup], Tag | None]] = [
    _select_main,
    _select_article,
    _select_body,
    _select_document,
]


def select_main_content(soup: BeautifulSoup) -> Tag:
    for strategy in MAIN_CONTENT_STRATEGIES:
        found = strategy(soup)
        if found is not None:
            return found
    return soup


# --- image source resolution ---------------------------------------------------

def _from_img_attrs(scope: Tag) -> str | None:
    img = scope if scope.name == "img" else scope.find(["img", "amp-img"])
    if img is None:
        return None
    for attr in IMG_SOURCE_ATTRS:
        value = _usable(img.get(attr))
        if value:
            return value
    return None


def _from_img_srcset(scope: Tag) -> str | None:
    img = scope if scope.name == "img" else scope.find(["img", "amp-img"])
    if img is None:
        return None
    for attr in SRCSET_ATTRS:
        value = _usable(first_srcset_url(img.get(attr)))
        if value:
            return value
    return None


def _from_picture_source(scope: Tag) -> str | None:
    source = scope.find("source")
    if source is None:
        return None
    for attr in SRCSET_ATTRS:
        value = _usable(first_srcset_url(source.get(attr)))
        if value:
            return value
    return None


def _from_image_link(scope: Tag) -> str | None:
    anchor = scope.find("a", href=True)
    if anchor is None:
        return None
    href = anchor["href"]
    return href if _IMAGE_HREF_RE.search(href) else None


FIGURE_SOURCE_STRATEGIES = [
    _from_img_attrs,
    _from_img_srcset,
    _from_picture_source,
    _from_image_link,
]
IMG_SOURCE_STRATEGIES = [_from_img_attrs, _from_img_srcset]


def resolve_image_source(scope: Tag, strategies=FIGURE_SOURCE_STRATEGIES) -> str | None:
    """Try each strategy in order and return the first raw URL found."""
    for strategy in strategies:
        raw = strategy(scope)
        if raw:
            return raw
    return None


def _inside_figure(tag: Tag) -> bool:
    parent = tag.parent
    while parent is not None:
        if parent.name == "figure":
            return True
        parent = parent.parent
    return False


def extract_images(
    container: Tag, page_url: str, max_images: int = MAX_IMAGES,
) -> list[ScrapedImage]:
    """Figures first, then standalone ``<img>`` elements outside any figure."""
    images: list[ScrapedImage] = []
    seen: set[str] = set()

    for fig in container.find_all("figure")[:max_images]:
        raw = resolve_image_source(fig)
        if not raw:
            continue
        src = absolutize(raw, page_url)
        if src in seen:
            continue

        caption = None
        cap_el = fig.find("figcaption")
        if cap_el is not None:
            caption = collapse_ws(cap_el.get_text(" "))[:MAX_CAPTION_CHARS] or None

        img = fig.find(["img", "amp-img"])
        alt = (img.get("alt") or "").strip() if img is not None else ""
        if not alt and caption:
            alt = caption[:MAX_ALT_FROM_CAPTION]

        images.append(ScrapedImage(src=src, alt=alt or None, caption=caption))
        seen.add(src)
        if len(images) >= max_images:
            return images

    for img in container.find_all("img"):
        if len(images) >= max_images:
            break
        if _inside_figure(img):
            continue
        raw = resolve_image_source(img, IMG_SOURCE_STRATEGIES)
        if not raw:
            continue
        src = absolutize(raw, page_url)
        if src in seen:
            continue
        alt = (img.get("alt") or "").strip() or None
        images.append(ScrapedImage(src=src, alt=alt))
        seen.add(src)

    return images


def extract_text_from_html(
    html: str,
    page_url: str,
    max_text_chars: int = MAX_MAIN_TEXT_CHARS,
    max_images: int = MAX_IMAGES,
) -> ExtractedContent:
    """Main text (whitespace-collapsed, capped) and images from raw HTML."""
    soup = BeautifulSoup(html, "html.parser")
    container = select_main_content(soup)
    for tag in container.find_all(BOILERPLATE_TAGS):
        tag.decompose()

    text = collapse_ws(container.get_text(" "))
    if not text:
        fallback = trafilatura.extract(
            html, include_comments=False, include_tables=False,
        )
        text = collapse_ws(fallback or "")

    images = extract_images(container, page_url, max_images)
    return ExtractedContent(
        text=text[:min(max_text_chars, MAX_MAIN_TEXT_CHARS)], images=images,
    )


class ContentExtractor:
    """Fetch article pages and turn them into text, images or clean HTML."""

    def __init__(
        self,
        timeout: float = 15,
        user_agent: str = DEFAULT_USER_AGENT,
        accept_language: str = "en-US,en;q=0.9",
        max_text_chars: int = MAX_MAIN_TEXT_CHARS,
        max_images: int = MAX_IMAGES,
        max_page_bytes: int = MAX_PAGE_BYTES,
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self.accept_language = accept_language
        self.max_text_chars = min(max_text_chars, MAX_MAIN_TEXT_CHARS)
        self.max_images = max_images
        self.max_page_bytes = max_page_bytes

    @classmethod
    def from_config(cls, config: dict) -> ContentExtractor:
        cfg = get_scrape_config(config)
        return cls(
            timeout=cfg["timeout"],
            user_agent=cfg["user_agent"],
            accept_language=cfg["accept_language"],
            max_text_chars=cfg["max_text_chars"],
            max_images=cfg["max_images"],
            max_page_bytes=cfg["max_page_bytes"],
        )

    def _headers(self, url: str) -> dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": self.accept_language,
        }
        parts = urlsplit(url)
        if parts.scheme and parts.netloc:
            headers["Referer"] = f"{parts.scheme}://{parts.netloc}/"
        return headers

    async def fetch_html(self, url: str) -> str | None:
        """GET the page; any failure (status, timeout, transport) gives None.

        Bodies larger than ``max_page_bytes`` are abandoned mid-stream.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True,
            ) as client:
                async with client.stream(
                    "GET", url, headers=self._headers(url),
                ) as resp:
                    resp.raise_for_status()
                    declared = resp.headers.get("content-length", "")
                    if declared.isdigit() and int(declared) > self.max_page_bytes:
                        logger.debug("Skipping %s: %s bytes declared", url, declared)
                        return None
                    body = bytearray()
                    async for chunk in resp.aiter_bytes():
                        body.extend(chunk)
                        if len(body) > self.max_page_bytes:
                            logger.debug("Skipping %s: body over %d bytes", url, self.max_page_bytes)
                            return None
                    return body.decode(resp.encoding or "utf-8", errors="replace")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Fetch failed for %s: %s", url, exc)
            return None

    async def extract_text(self, url: str) -> ExtractedContent:
        """Text and images for ``url``; empty content when unavailable."""
        html = await self.fetch_html(url)
        if not html:
            return ExtractedContent.empty()
        try:
            content = extract_text_from_html(
                html, url, self.max_text_chars, self.max_images,
            )
        except Exception:
            logger.debug("Extraction failed for %s", url, exc_info=True)
            return ExtractedContent.empty()
        logger.info(
            "Scraped %s: %d chars, %d images",
            url, len(content.text), len(content.images),
        )
        return content

    async def extract_structured_html(
        self, url: str, node_limit: int = 60, figure_limit: int = 8,
    ) -> str:
        """Sanitized HTML excerpt for ``url``; empty string when unavailable."""
        # Import here to avoid circular import
        from spacebio.ingest.structured import structured_html_from_html

        html = await self.fetch_html(url)
        if not html:
            return ""
        try:
            return structured_html_from_html(html, url, node_limit, figure_limit)
        except Exception:
            logger.debug("Structured extraction failed for %s", url, exc_info=True)
            return ""
