"""Structured-HTML extraction: a sanitized, whitelisted excerpt of a page.

The sanitizer is a pure transformation over a parsed tree: the input
container is copied, a ``SanitizePolicy`` is applied (allow-list of tags,
attribute stripping, URL rewriting) and a fresh fragment is returned.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Tag

from spacebio.ingest.scraper import (
    IMG_SOURCE_STRATEGIES,
    absolutize,
    resolve_image_source,
)

logger = logging.getLogger(__name__)

MAIN_CONTAINER_SELECTORS = [
    "article",
    "main",
    '[role="main"]',
    "#content",
    "#main-content",
    ".post-content",
    ".entry-content",
    '[itemprop="articleBody"]',
    ".content",
]

ALLOWED_TAGS = frozenset({
    "h1", "h2", "h3", "h4", "p", "ul", "ol",
    "blockquote", "pre", "figure", "img", "table",
})
BLOCKED_TAGS = frozenset({
    "script", "style", "meta", "link", "iframe", "object", "embed", "noscript",
})
IMG_STRIP_ATTRS = frozenset({
    "srcset", "sizes", "integrity", "crossorigin", "referrerpolicy", "style",
})
SAFE_LINK_REL = "noopener nofollow noreferrer"
# Empty scheme covers fragment-only hrefs when the base URL is empty
SAFE_HREF_SCHEMES = frozenset({"http", "https", "mailto", ""})
IMG_STYLE = "max-width:100%;height:auto;display:block;margin:0.25rem 0;"
FIGURE_STYLE = "margin:0.75rem 0;"

_URL_CONTROL_RE = re.compile(r"[\x00-\x20\x7f]")


@dataclass(frozen=True)
class SanitizePolicy:
    """What survives sanitization and how URLs are rewritten."""

    base_url: str
    node_limit: int = 60
    figure_limit: int = 8
    allowed_tags: frozenset = ALLOWED_TAGS
    blocked_tags: frozenset = BLOCKED_TAGS
    link_rel: str = SAFE_LINK_REL


def pick_main_container(soup: BeautifulSoup) -> Tag:
    for selector in MAIN_CONTAINER_SELECTORS:
        found = soup.select_one(selector)
        if found is not None:
            return found
    return soup


def _strip_event_handlers(el: Tag) -> None:
    for attr in [a for a in el.attrs if a.lower().startswith("on")]:
        del el[attr]


def safe_href(href: str, base_url: str) -> str | None:
    """Absolute form of ``href``, or None when its scheme is not allowed.

    Browsers drop tabs and newlines inside URLs, so those are removed
    before the scheme is read.
    """
    url = absolutize(_URL_CONTROL_RE.sub("", href), base_url)
    try:
        scheme = urlsplit(url).scheme.lower()
    except ValueError:
        return None
    return url if scheme in SAFE_HREF_SCHEMES else None


def _rewrite_links(root: Tag, policy: SanitizePolicy) -> None:
    for anchor in root.find_all("a"):
        href = anchor.get("href")
        if href:
            url = safe_href(href, policy.base_url)
            if url is None:
                del anchor["href"]
            else:
                anchor["href"] = url
        anchor["target"] = "_blank"
        anchor["rel"] = policy.link_rel
        _strip_event_handlers(anchor)


def _rewrite_image(img: Tag, policy: SanitizePolicy) -> None:
    raw = resolve_image_source(img, IMG_SOURCE_STRATEGIES)
    if raw:
        img["src"] = absolutize(raw, policy.base_url)
    for attr in list(img.attrs):
        if attr.lower() in IMG_STRIP_ATTRS or attr.lower().startswith("on"):
            del img[attr]
    img["loading"] = "lazy"
    img["decoding"] = "async"
    img["alt"] = img.get("alt") or ""
    img["style"] = IMG_STYLE


def _rewrite_figures_and_images(root: Tag, policy: SanitizePolicy) -> None:
    for idx, fig in enumerate(root.find_all("figure")):
        if idx >= policy.figure_limit:
            fig.decompose()
            continue
        fig["style"] = FIGURE_STYLE
        # srcset candidates are dropped with the img srcset below
        for source in fig.find_all("source"):
            source.decompose()

    for img in root.find_all("img"):
        _rewrite_image(img, policy)


def _top_level_allowed(root: Tag, policy: SanitizePolicy) -> list[Tag]:
    """Allowed nodes in document order, skipping ones inside a kept node."""
    kept: list[Tag] = []
    kept_ids: set[int] = set()
    for node in root.find_all(list(policy.allowed_tags)):
        if len(kept) >= policy.node_limit:
            break
        if any(id(parent) in kept_ids for parent in node.parents):
            continue
        kept.append(node)
        kept_ids.add(id(node))
    return kept


def _clean_subtree(node: Tag, policy: SanitizePolicy) -> None:
    for bad in node.find_all(list(policy.blocked_tags)):
        bad.decompose()
    for el in [node, *node.find_all(True)]:
        _strip_event_handlers(el)
        if el.name not in ("img", "figure") and "style" in el.attrs:
            del el["style"]


def sanitize(container: Tag, policy: SanitizePolicy) -> BeautifulSoup:
    """Return a new fragment holding the sanitized, whitelisted nodes.

    ``container`` itself is left untouched.
    """
    root = copy.copy(container)
    _rewrite_links(root, policy)
    _rewrite_figures_and_images(root, policy)

    fragment = BeautifulSoup("", "html.parser")
    for node in _top_level_allowed(root, policy):
        node = node.extract()
        _clean_subtree(node, policy)
        fragment.append(node)
    return fragment


def render_fragment(fragment: BeautifulSoup) -> str:
    return "\n".join(str(node) for node in fragment.find_all(True, recursive=False))


def structured_html_from_html(
    html: str, page_url: str, node_limit: int = 60, figure_limit: int = 8,
) -> str:
    """Sanitized excerpt of the page's main container, or '' if nothing survives."""
    soup = BeautifulSoup(html, "html.parser")
    container = pick_main_container(soup)
    policy = SanitizePolicy(
        base_url=page_url, node_limit=node_limit, figure_limit=figure_limit,
    )
    rendered = render_fragment(sanitize(container, policy))
    return rendered if rendered.strip() else ""
