"""Per-turn orchestration: intent routing and the degradation ladder.

A domain-query turn moves through
``received -> ranked -> scraped -> fusion_attempted`` and ends in one of
``fusion_resolved``, ``html_resolved`` or ``article_list_only``. A dead end
falls through to the next weaker answer instead of raising.
"""

from __future__ import annotations

import logging

from spacebio.config import (
    get_pipeline_config,
    get_scrape_config,
    is_task_configured,
    require_credentials,
)
from spacebio.ingest.batch import BatchScraper, ScrapeCache
from spacebio.ingest.index import ArticleIndex
from spacebio.llm import get_provider_for_task
from spacebio.llm.costs import start_cost_tracking
from spacebio.llm.prompts import SYSTEM_GENERIC
from spacebio.models import ArticleRef, ChatResult, IntentKind, TurnState
from spacebio.router import canned_reply, classify
from spacebio.synthesize.fuser import Fuser
from spacebio.synthesize.render import render_fused_markdown, render_html_bundle

logger = logging.getLogger(__name__)

OPTIONAL_TASKS = ("fusion", "translate")


class ChatPipeline:
    """Long-lived service owning the article index and the scrape caches.

    Each instance has its own caches; nothing is shared across processes.
    """

    def __init__(
        self,
        config: dict,
        index: ArticleIndex | None = None,
        scrape_cache: ScrapeCache | None = None,
    ):
        self.config = config
        self.settings = get_pipeline_config(config)
        self.scrape_settings = get_scrape_config(config)
        self.index = index or ArticleIndex.from_config(config)
        self.scrape_cache = scrape_cache or ScrapeCache.from_config(config)
        self.batch = BatchScraper(
            self.scrape_cache, max_concurrent=self.scrape_settings["max_concurrent"],
        )

    def _check_credentials(self) -> None:
        require_credentials(self.config, "chat")
        for task in OPTIONAL_TASKS:
            if is_task_configured(self.config, task):
                require_credentials(self.config, task)

    def _fuser(self) -> Fuser | None:
        if not is_task_configured(self.config, "fusion"):
            return None
        translator = None
        if is_task_configured(self.config, "translate"):
            translator = get_provider_for_task(self.config, "translate")
        return Fuser(
            provider=get_provider_for_task(self.config, "fusion"),
            scraper=self.batch,
            translator=translator,
            max_articles=self.settings["max_articles"],
            image_proxy=self.settings["image_proxy"],
        )

    async def answer(self, question: str, summarize: bool | None = None) -> ChatResult:
        """Answer one user message.

        Raises MissingCredentialsError before doing anything when a configured
        model has no key, and IndexUnavailableError when a domain query finds
        no article index.
        """
        self._check_credentials()
        tracker = start_cost_tracking()
        if summarize is None:
            summarize = self.settings["summarize"]

        intent = classify(question)
        canned = canned_reply(intent)
        if canned is not None:
            return ChatResult(mode=intent.kind.value, reply=canned)

        if intent.kind == IntentKind.GENERIC:
            provider = get_provider_for_task(self.config, "chat")
            response = await provider.complete(
                question, system=SYSTEM_GENERIC, temperature=0.7,
            )
            return ChatResult(mode="generic", reply=response.text)

        result = await self._answer_domain(question, summarize)
        logger.info(
            "Turn finished in mode %s (%d LLM calls, %d tokens, $%.4f)",
            result.mode, tracker.calls,
            tracker.total_input_tokens + tracker.total_output_tokens,
            tracker.total_cost_usd,
        )
        return result

    async def _answer_domain(self, question: str, summarize: bool) -> ChatResult:
        states = [TurnState.RECEIVED]

        def advance(state: TurnState) -> None:
            logger.info("Turn state: %s -> %s", states[-1].value, state.value)
            states.append(state)

        corpus = await self.index.load()
        ranked = self.index.rank(question, corpus, self.settings["max_articles"])
        advance(TurnState.RANKED)

        if not summarize:
            advance(TurnState.ARTICLE_LIST_ONLY)
            return ChatResult(mode="articles_only", articles=ranked, states=states)

        fuser = self._fuser()
        if fuser is not None:
            fused = await self._try_fusion(fuser, question, ranked, advance)
            if fused is not None:
                fused.states = states
                return fused

        advance(TurnState.HTML_ATTEMPTED)
        html_sections = await self.batch.scrape_html(
            ranked,
            node_limit=self.scrape_settings["node_limit"],
            figure_limit=self.scrape_settings["figure_limit"],
        )
        if html_sections:
            advance(TurnState.HTML_RESOLVED)
            return ChatResult(
                mode="scraped",
                articles=ranked,
                html_sections=html_sections,
                html=render_html_bundle(html_sections),
                states=states,
            )

        advance(TurnState.HTML_FAILED)
        advance(TurnState.ARTICLE_LIST_ONLY)
        return ChatResult(mode="articles_only", articles=ranked, states=states)

    async def _try_fusion(
        self, fuser: Fuser, question: str, ranked: list[ArticleRef], advance,
    ) -> ChatResult | None:
        scraped = await self.batch.scrape_text(ranked[:fuser.max_articles])
        advance(TurnState.SCRAPED)
        advance(TurnState.FUSION_ATTEMPTED)
        try:
            result = await fuser.fuse_scraped(question, scraped)
        except Exception:
            logger.exception("Fusion model call failed")
            result = None

        if result is None:
            advance(TurnState.FUSION_FAILED)
            return None

        advance(TurnState.FUSION_RESOLVED)
        return ChatResult(
            mode="fused_json",
            articles=result.articles,
            sections=result.sections,
            markdown=render_fused_markdown(result.sections, result.articles),
            language=result.language,
        )
