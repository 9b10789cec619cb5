"""Fuse scraped articles into one cited, illustrated answer via an LLM."""

from __future__ import annotations

import json
import logging
import re
from urllib.parse import quote

from spacebio.ingest.batch import BatchScraper
from spacebio.ingest.index import tokenize
from spacebio.llm.base import BaseLLMProvider
from spacebio.llm.prompts import (
    FUSE_ARTICLES,
    SYSTEM_FUSION,
    SYSTEM_TRANSLATE,
    TRANSLATE,
)
from spacebio.models import (
    ArticleRef,
    FusionDocument,
    FusionImage,
    FusionPayload,
    FusionResult,
    FusionSection,
    FusionSectionDraft,
    ImageRef,
    ResolvedImage,
    ScrapedArticle,
)

logger = logging.getLogger(__name__)

MAX_FUSION_ARTICLES = 8
DOC_TEXT_CHARS = 4000
DOC_IMAGES = 6
MAX_SECTION_IMAGES = 3

_JSON_FENCE_RE = re.compile(r"```json\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE_RE = re.compile(r"```[\w-]*\s*(.*?)```", re.DOTALL)
# A valid JSON escape, or a lone backslash that needs doubling
_BACKSLASH_RE = re.compile(r'\\(["\\/bfnrt]|u[0-9a-fA-F]{4})?')


def extract_json_candidate(raw: str) -> str | None:
    """Pick the most likely JSON object in a model reply."""
    if not raw:
        return None
    fenced = _JSON_FENCE_RE.search(raw)
    if fenced and fenced.group(1).strip():
        return fenced.group(1).strip()
    fenced = _ANY_FENCE_RE.search(raw)
    if fenced and fenced.group(1).strip():
        return fenced.group(1).strip()
    start, end = raw.find("{"), raw.rfind("}")
    if start != -1 and end > start:
        return raw[start:end + 1]
    return None


def repair_backslashes(text: str) -> str:
    """Double every backslash that does not begin a valid JSON escape."""
    return _BACKSLASH_RE.sub(
        lambda m: m.group(0) if m.group(1) else "\\\\", text,
    )


def _as_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    # json.loads accepts Infinity and NaN
    except (TypeError, ValueError, OverflowError):
        return None


def _as_str(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _validate_payload(data) -> FusionPayload | None:
    if not isinstance(data, dict) or not isinstance(data.get("sections"), list):
        return None

    sections = []
    for raw_section in data["sections"]:
        if not isinstance(raw_section, dict):
            continue
        refs = []
        raw_refs = raw_section.get("imageRefs") or []
        for raw_ref in raw_refs if isinstance(raw_refs, list) else []:
            if not isinstance(raw_ref, dict):
                continue
            doc, img = _as_int(raw_ref.get("doc")), _as_int(raw_ref.get("img"))
            if doc is None or img is None:
                continue
            refs.append(ImageRef(
                doc=doc,
                img=img,
                caption=_as_str(raw_ref.get("caption")),
                cite_index=_as_int(raw_ref.get("citeIndex")),
            ))
        sections.append(FusionSectionDraft(
            heading=_as_str(raw_section.get("heading")),
            text_markdown=_as_str(
                raw_section.get("text_markdown") or raw_section.get("markdown")
            ),
            image_refs=refs,
        ))

    return FusionPayload(language=_as_str(data.get("language")), sections=sections)


def parse_fusion_json(raw: str) -> FusionPayload | None:
    """Validated fusion payload, or None when the reply cannot be recovered.

    Tries the candidate as is, then once more after backslash repair.
    """
    candidate = extract_json_candidate(raw)
    if candidate is None:
        return None
    try:
        data = json.loads(candidate)
    except (ValueError, RecursionError):
        try:
            data = json.loads(repair_backslashes(candidate))
        except (ValueError, RecursionError):
            logger.warning("Fusion reply is not valid JSON even after repair")
            return None
    return _validate_payload(data)


def build_documents(
    scraped: list[ScrapedArticle],
    max_articles: int = MAX_FUSION_ARTICLES,
    text_chars: int = DOC_TEXT_CHARS,
    max_images: int = DOC_IMAGES,
) -> list[FusionDocument]:
    documents = []
    for i, article in enumerate(scraped[:max_articles], 1):
        documents.append(FusionDocument(
            index=i,
            title=article.title,
            url=article.link,
            text=article.text[:text_chars],
            images=[
                FusionImage(index=j, src=img.src, alt=img.alt or img.caption or "")
                for j, img in enumerate(article.images[:max_images])
            ],
        ))
    return documents


def build_prompt(question: str, documents: list[FusionDocument]) -> str:
    docs = [
        {
            "index": d.index,
            "title": d.title,
            "url": d.url,
            "text": d.text,
            "images": [{"index": im.index, "src": im.src, "alt": im.alt} for im in d.images],
        }
        for d in documents
    ]
    return FUSE_ARTICLES.format(
        question=question,
        documents=json.dumps(docs, ensure_ascii=False, indent=2),
    )


def proxy_url(src: str, prefix: str) -> str:
    return f"{prefix}{quote(src, safe='')}"


def resolve_sections(
    payload: FusionPayload,
    documents: list[FusionDocument],
    question: str,
    english_question: str = "",
    image_proxy: str = "/api/image?url=",
    max_images: int = MAX_SECTION_IMAGES,
) -> list[FusionSection]:
    """Map model image refs back to scraped images and keep the relevant ones.

    Unknown ``{doc, img}`` pairs are dropped. Images are ranked by how many
    tokens their alt/caption/source title share with the section text and
    question; up to ``max_images`` with positive overlap are kept, or just the
    first resolved image when nothing overlaps.
    """
    docs_by_index = {d.index: d for d in documents}
    question_tokens = set(tokenize(question)) | set(tokenize(english_question))
    resolved_sections = []

    for draft in payload.sections:
        if not draft.heading and not draft.text_markdown:
            continue
        context_tokens = set(tokenize(draft.text_markdown)) | question_tokens

        candidates = []
        seen: set[tuple[int, int]] = set()
        for ref in draft.image_refs:
            doc = docs_by_index.get(ref.doc)
            if doc is None or not 0 <= ref.img < len(doc.images):
                logger.debug("Dropping dangling image ref doc=%s img=%s", ref.doc, ref.img)
                continue
            if (ref.doc, ref.img) in seen:
                continue
            seen.add((ref.doc, ref.img))
            image = doc.images[ref.img]
            image_tokens = set(tokenize(f"{image.alt} {ref.caption} {doc.title}"))
            candidates.append((len(image_tokens & context_tokens), ref, doc, image))

        if any(score > 0 for score, *_ in candidates):
            ranked = sorted(candidates, key=lambda c: -c[0])
            kept = [c for c in ranked if c[0] > 0][:max_images]
        else:
            kept = candidates[:1]

        images = [
            ResolvedImage(
                src=proxy_url(image.src, image_proxy),
                alt=image.alt or ref.caption,
                caption=ref.caption or image.alt,
                cite_index=ref.cite_index or doc.index,
            )
            for _, ref, doc, image in kept
        ]
        resolved_sections.append(FusionSection(
            heading=draft.heading, markdown=draft.text_markdown, images=images,
        ))

    return resolved_sections


class Fuser:
    """Builds the fusion prompt, calls the model and resolves its reply."""

    def __init__(
        self,
        provider: BaseLLMProvider,
        scraper: BatchScraper,
        translator: BaseLLMProvider | None = None,
        max_articles: int = MAX_FUSION_ARTICLES,
        image_proxy: str = "/api/image?url=",
    ):
        self.provider = provider
        self.scraper = scraper
        self.translator = translator
        self.max_articles = max_articles
        self.image_proxy = image_proxy

    async def to_english(self, question: str) -> str:
        """Best-effort English rendering of the question; never raises."""
        if self.translator is None:
            return question
        try:
            response = await self.translator.complete(
                TRANSLATE.format(question=question),
                system=SYSTEM_TRANSLATE,
                temperature=0.0,
                max_tokens=300,
            )
        except Exception:
            logger.warning("Question translation failed, using original text")
            return question
        return response.text.strip() or question

    async def fuse(
        self, question: str, articles: list[ArticleRef],
    ) -> FusionResult | None:
        """Fused sections for ``question``, or None when fusion must be abandoned.

        Provider errors propagate; the caller decides how to degrade.
        """
        articles = articles[:self.max_articles]
        if not articles:
            return None
        scraped = await self.scraper.scrape_text(articles)
        return await self.fuse_scraped(question, scraped)

    async def fuse_scraped(
        self, question: str, scraped: list[ScrapedArticle],
    ) -> FusionResult | None:
        """Same as ``fuse`` for articles that were already scraped."""
        english = await self.to_english(question)
        # Pages that yielded no text are left out so citation numbers stay dense
        documents = build_documents([s for s in scraped if s.text], self.max_articles)
        if not documents:
            logger.warning("No article text available for fusion")
            return None

        response = await self.provider.complete(
            build_prompt(question, documents),
            system=SYSTEM_FUSION,
            temperature=0.3,
            max_tokens=3000,
            json_output=True,
        )
        payload = parse_fusion_json(response.text)
        if payload is None:
            logger.warning("Fusion reply unparseable (%d chars)", len(response.text))
            return None

        sections = resolve_sections(
            payload, documents, question, english, image_proxy=self.image_proxy,
        )
        if not sections:
            logger.warning("Fusion reply had no usable sections")
            return None

        logger.info(
            "Fused %d documents into %d sections (%d images)",
            len(documents), len(sections), sum(len(s.images) for s in sections),
        )
        return FusionResult(
            language=payload.language,
            sections=sections,
            articles=[ArticleRef(title=d.title, link=d.url) for d in documents],
        )
