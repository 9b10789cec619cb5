"""Core data models for the space-biology assistant."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class ArticleRef:
    """One row of the publication index."""

    title: str
    link: str


@dataclass
class ScrapedImage:
    """An image discovered on an article page (src is always absolute)."""

    src: str
    alt: str | None = None
    caption: str | None = None


@dataclass
class ExtractedContent:
    """Plain text and images pulled from one article page."""

    text: str = ""
    images: list[ScrapedImage] = field(default_factory=list)

    @classmethod
    def empty(cls) -> ExtractedContent:
        return cls()


@dataclass
class ScrapedArticle:
    """An index entry together with its extracted content."""

    title: str
    link: str
    text: str = ""
    images: list[ScrapedImage] = field(default_factory=list)

    @classmethod
    def from_ref(
        cls, ref: ArticleRef, content: ExtractedContent | None = None,
    ) -> ScrapedArticle:
        content = content or ExtractedContent.empty()
        return cls(
            title=ref.title,
            link=ref.link,
            text=content.text,
            images=list(content.images),
        )

    @property
    def ref(self) -> ArticleRef:
        return ArticleRef(title=self.title, link=self.link)


@dataclass
class StructuredHtmlResult:
    """Sanitized HTML excerpt for one article."""

    article: ArticleRef
    html: str


@dataclass
class FusionImage:
    index: int  # 0-based within its document
    src: str
    alt: str = ""


@dataclass
class FusionDocument:
    """A scraped article as embedded in the fusion prompt."""

    index: int  # 1-based, used for citations
    title: str
    url: str
    text: str
    images: list[FusionImage] = field(default_factory=list)


@dataclass
class ImageRef:
    """A model-proposed pointer to a document image."""

    doc: int
    img: int
    caption: str = ""
    cite_index: int | None = None


@dataclass
class FusionSectionDraft:
    """A section exactly as the model returned it, after shape validation."""

    heading: str
    text_markdown: str
    image_refs: list[ImageRef] = field(default_factory=list)


@dataclass
class FusionPayload:
    """Validated model output for a fusion request."""

    language: str
    sections: list[FusionSectionDraft] = field(default_factory=list)


@dataclass
class ResolvedImage:
    src: str  # proxied URL
    alt: str
    caption: str
    cite_index: int


@dataclass
class FusionSection:
    heading: str
    markdown: str
    images: list[ResolvedImage] = field(default_factory=list)


@dataclass
class FusionResult:
    language: str
    sections: list[FusionSection]
    articles: list[ArticleRef]


class IntentKind(str, Enum):
    CHITCHAT = "chitchat"
    CAPABILITIES = "capabilities"
    DOMAIN = "domain"
    GENERIC = "generic"


@dataclass
class Intent:
    kind: IntentKind
    domain_aware: bool = False


class TurnState(str, Enum):
    """States of a single domain-query turn."""

    RECEIVED = "received"
    RANKED = "ranked"
    SCRAPED = "scraped"
    FUSION_ATTEMPTED = "fusion_attempted"
    FUSION_RESOLVED = "fusion_resolved"
    FUSION_FAILED = "fusion_failed"
    HTML_ATTEMPTED = "html_attempted"
    HTML_RESOLVED = "html_resolved"
    HTML_FAILED = "html_failed"
    ARTICLE_LIST_ONLY = "article_list_only"


@dataclass
class ChatResult:
    """What the pipeline hands back to the request layer for one turn."""

    mode: str  # chitchat, capabilities, generic, articles_only, scraped, fused_json
    reply: str = ""
    articles: list[ArticleRef] = field(default_factory=list)
    sections: list[FusionSection] = field(default_factory=list)
    html_sections: list[StructuredHtmlResult] = field(default_factory=list)
    html: str = ""
    markdown: str = ""
    language: str = ""
    states: list[TurnState] = field(default_factory=list)
