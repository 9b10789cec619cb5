"""Render pipeline results into HTML bundles and Markdown answers."""

from __future__ import annotations

import html

from spacebio.ingest.structured import SAFE_LINK_REL
from spacebio.models import ArticleRef, FusionSection, StructuredHtmlResult


def _e(text: str) -> str:
    """Escape text for safe HTML output."""
    return html.escape(text, quote=True)


def render_html_bundle(results: list[StructuredHtmlResult]) -> str:
    """Concatenate per-article excerpts, each under a linked header.

    The excerpts are already sanitized; only the headers are built here.
    """
    parts = []
    for i, result in enumerate(results, 1):
        article = result.article
        parts.append(
            f'<section class="article-excerpt">'
            f'<h2 class="article-title">[{i}] '
            f'<a href="{_e(article.link)}" target="_blank" rel="{SAFE_LINK_REL}">'
            f'{_e(article.title)}</a></h2>\n'
            f'{result.html}'
            f'</section>'
        )
    return "\n<hr/>\n".join(parts)


def render_sources(articles: list[ArticleRef]) -> str:
    return "\n".join(
        f"- [{i}] [{a.title}]({a.link})" for i, a in enumerate(articles, 1)
    )


def render_fused_markdown(
    sections: list[FusionSection], articles: list[ArticleRef],
) -> str:
    """Markdown answer: one ``##`` block per section, images, then sources."""
    blocks = []
    for section in sections:
        images = []
        for image in section.images:
            line = f"![{image.alt}]({image.src})"
            if image.caption:
                line += f"\n_{image.caption} [{image.cite_index}]_"
            images.append(line)
        block = f"## {section.heading}\n\n{section.markdown}\n\n" + "\n\n".join(images)
        blocks.append(block.strip())

    markdown = "\n\n".join(blocks)
    sources = render_sources(articles)
    if sources:
        markdown += f"\n\n### Sources\n{sources}"
    return markdown
