"""Value objects and generation-parameter rules for the MapyChat proxy.

Pure functions and constants that turn loosely-typed request fields into the
sampling temperature and output-token budget sent upstream.

Key Rules:
    - Temperature: numeric values clamped to [0, 2], anything else -> 0.8
    - Token budget priority: responseLevel > maxTokens > 512
    - Response level n (1-5) maps to 128 * 2**(n - 1) output tokens
"""

from __future__ import annotations

import math
from dataclasses import dataclass

TEMPERATURE_MIN = 0.0
TEMPERATURE_MAX = 2.0
DEFAULT_TEMPERATURE = 0.8

RESPONSE_LEVEL_MIN = 1
RESPONSE_LEVEL_MAX = 5

MIN_OUTPUT_TOKENS = 128
MAX_OUTPUT_TOKENS = 2048
DEFAULT_OUTPUT_TOKENS = 512

# JSON integers are unbounded; anything past this is clamped anyway
_INT_BOUND = 2**53


def _as_finite_number(value: object) -> float | None:
    # bool is an int subclass but never a meaningful number here
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if isinstance(value, int):
        return float(_clamp(value, -_INT_BOUND, _INT_BOUND))
    if not math.isfinite(value):
        return None
    return float(value)


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def clamp_temperature(value: object) -> float:
    """Return the sampling temperature to send upstream."""
    number = _as_finite_number(value)
    if number is None:
        return DEFAULT_TEMPERATURE
    return _clamp(number, TEMPERATURE_MIN, TEMPERATURE_MAX)


def tokens_for_level(level: int) -> int:
    """Map a response-length level to its output-token budget.

    Out-of-range levels clamp to the nearest valid level, so 0 -> 128 and
    9 -> 2048.
    """
    bounded = int(_clamp(level, RESPONSE_LEVEL_MIN, RESPONSE_LEVEL_MAX))
    budget = MIN_OUTPUT_TOKENS * 2 ** (bounded - 1)
    return int(_clamp(budget, MIN_OUTPUT_TOKENS, MAX_OUTPUT_TOKENS))


@dataclass(slots=True, frozen=True)
class TokenBudget:
    """Output-token budget resolved from the request.

    Attributes:
        value: Tokens forwarded as ``max_output_tokens``.
        source: Which request field decided the value ("response_level",
            "max_tokens" or "default"). Logged for observability.
    """

    value: int
    source: str

    def __post_init__(self) -> None:
        if not MIN_OUTPUT_TOKENS <= self.value <= MAX_OUTPUT_TOKENS:
            raise ValueError(
                f"Token budget must be between {MIN_OUTPUT_TOKENS} and {MAX_OUTPUT_TOKENS}"
            )

    @classmethod
    def resolve(cls, response_level: object = None, max_tokens: object = None) -> TokenBudget:
        """Resolve the budget with priority level > raw tokens > default."""
        level = _as_finite_number(response_level)
        if level is not None:
            return cls(tokens_for_level(int(level)), "response_level")

        raw = _as_finite_number(max_tokens)
        if raw is not None:
            return cls(int(_clamp(raw, MIN_OUTPUT_TOKENS, MAX_OUTPUT_TOKENS)), "max_tokens")

        return cls(DEFAULT_OUTPUT_TOKENS, "default")


__all__ = [
    "DEFAULT_OUTPUT_TOKENS",
    "DEFAULT_TEMPERATURE",
    "MAX_OUTPUT_TOKENS",
    "MIN_OUTPUT_TOKENS",
    "TokenBudget",
    "clamp_temperature",
    "tokens_for_level",
]
