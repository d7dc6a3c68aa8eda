"""Approximate token counting for before/after comparisons (no external tokenizer)."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

_SYMBOLS = re.compile(r"""[{}()\[\]<>:;,."'`~!@#$%^&*+=|\\/?-]""")

COST_PER_MILLION_TOKENS = 3.0


@dataclass(frozen=True)
class TokenSavings:
    saved: int
    percentage: int
    is_reduction: bool

    def to_dict(self) -> dict:
        return {"saved": self.saved, "percentage": self.percentage, "is_reduction": self.is_reduction}


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _word_units(word: str) -> int:
    n = len(word)
    if n <= 4:
        return 1
    if n <= 8:
        return 2
    if n <= 12:
        return 3
    return math.ceil(n / 4)


def estimate_tokens(text: str | None) -> int:
    """
    Rough token count: words bucketed by length, plus half a token per
    symbol and one per newline. Returns 0 only for empty input.
    """
    if not text:
        return 0
    tokens = sum(_word_units(w) for w in text.split())
    tokens += math.ceil(len(_SYMBOLS.findall(text)) / 2)
    tokens += text.count("\n")
    return max(1, tokens)


def format_count(tokens: int) -> str:
    if tokens >= 1000:
        thousands = (Decimal(tokens) / 1000).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        return f"{thousands}k"
    return str(tokens)


def calculate_savings(original: int, optimized: int) -> TokenSavings:
    saved = original - optimized
    percentage = _round_half_up(saved / original * 100) if original > 0 else 0
    return TokenSavings(saved=saved, percentage=percentage, is_reduction=saved > 0)


def estimate_cost(tokens: int) -> str:
    """Dollar estimate at a flat input-token rate."""
    cost = tokens / 1_000_000 * COST_PER_MILLION_TOKENS
    if cost < 0.001:
        return "<$0.001"
    if cost < 0.01:
        return f"${cost:.4f}"
    return f"${cost:.3f}"
