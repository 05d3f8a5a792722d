"""Stats aggregation over assistant-authored records."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from vizier.models import SessionStats, TokenUsage


@dataclass
class TokenInput:
    """Accounting carried by one assistant-authored record."""

    usage: TokenUsage | None = None
    model: str | None = None
    cost: float | None = None


def compute_stats(items: Iterable[TokenInput]) -> SessionStats:
    """Fold token usage and cost across records into a single summary.

    Token and cost sums are order-independent. ``model`` is last-write-wins.
    ``total_cost`` and ``total_reasoning_tokens`` are reported only when the
    sum is nonzero.

    Args:
        items: Accounting records, in discovery order.

    Returns:
        SessionStats with aggregated counts.
    """
    total_input_tokens = 0
    total_output_tokens = 0
    total_cache_read = 0
    total_cache_creation = 0
    total_reasoning_tokens = 0
    total_cost = 0.0
    model: str | None = None

    for item in items:
        usage = item.usage
        if usage is not None:
            total_input_tokens += usage.input_tokens
            total_output_tokens += usage.output_tokens
            total_cache_read += usage.cache_read_tokens
            total_cache_creation += usage.cache_creation_tokens
            total_reasoning_tokens += usage.reasoning_tokens
        if item.cost:
            total_cost += item.cost
        if item.model:
            model = item.model

    return SessionStats(
        total_input_tokens=total_input_tokens,
        total_output_tokens=total_output_tokens,
        total_cache_read=total_cache_read,
        total_cache_creation=total_cache_creation,
        model=model,
        total_cost=total_cost or None,
        total_reasoning_tokens=total_reasoning_tokens or None,
    )


def empty_stats() -> SessionStats:
    """Zero-valued stats for an empty session."""
    return SessionStats()
