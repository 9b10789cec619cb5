"""Per-turn token accounting."""

from __future__ import annotations

import contextvars

# Rough pricing per 1M tokens (input, output); unknown models use the default
PRICING = {
    "meta-llama/llama-3.3-70b-instruct:free": (0.0, 0.0),
    "meta-llama/llama-3.3-70b-instruct": (0.13, 0.40),
    "deepseek/deepseek-chat": (0.14, 0.28),
    "claude-haiku-4-5-20251001": (0.80, 4.0),
    "claude-sonnet-4-5-20250514": (3.0, 15.0),
}
DEFAULT_PRICING = (1.0, 2.0)


def estimate_cost(input_tokens: int, output_tokens: int, model: str) -> float:
    """Rough cost estimate based on known pricing (per 1M tokens)."""
    input_rate, output_rate = PRICING.get(model, DEFAULT_PRICING)
    return (input_tokens * input_rate + output_tokens * output_rate) / 1_000_000


class CostTracker:
    """Accumulate LLM token usage and cost across one chat turn."""

    def __init__(self):
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.total_cost_usd = 0.0
        self.calls = 0

    def track(self, input_tokens: int, output_tokens: int, model: str) -> None:
        self.calls += 1
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens
        self.total_cost_usd += estimate_cost(input_tokens, output_tokens, model)


# Coroutine-safe: each turn's task sees its own tracker
_cost_tracker: contextvars.ContextVar[CostTracker | None] = contextvars.ContextVar(
    "_cost_tracker", default=None,
)


def start_cost_tracking() -> CostTracker:
    tracker = CostTracker()
    _cost_tracker.set(tracker)
    return tracker


def get_cost_tracker() -> CostTracker | None:
    return _cost_tracker.get()
