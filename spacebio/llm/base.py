"""Abstract base class for LLM providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from an LLM call."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""


class BaseLLMProvider(ABC):
    """Base class for LLM providers.

    The core only relies on ``complete``: a system instruction plus a user
    payload in, free text out.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        default_model: str,
        max_retries: int = 3,
        timeout: int = 120,
        json_mode: bool = False,
        extra_headers: dict[str, str] | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.default_model = default_model
        self.max_retries = max_retries
        self.timeout = timeout
        self.json_mode = json_mode
        self.extra_headers = dict(extra_headers or {})

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: str = "",
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 2000,
        json_output: bool = False,
    ) -> LLMResponse:
        """Send a completion request and return the response.

        ``json_output`` asks for a JSON-only reply where the backend supports
        it; callers must still parse the text defensively.
        """
        ...

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name."""
        ...

    def _track_cost(self, response: LLMResponse) -> None:
        """Report token usage to the tracker of the current turn, if any."""
        from spacebio.llm.costs import get_cost_tracker

        tracker = get_cost_tracker()
        if tracker and (response.input_tokens or response.output_tokens):
            tracker.track(
                response.input_tokens,
                response.output_tokens,
                response.model,
            )
