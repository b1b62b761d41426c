"""
Anti-repetition guardrail for outbound replies.

Compares a candidate reply with the last few replies sent to the same
citizen using a shared-word ratio. When it is too close to any of them,
the reply is swapped for a phrasing from a per-situation variant pool,
chosen deterministically from the seed.

Usage:
    final = dedupe("Pode me mandar uma foto do problema?", recent, "photo", seed=3)
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from demand_intake.config import settings
from demand_intake.prompts.reply_templates import VARIANTS, select_variant

logger = logging.getLogger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s]")

WORD_SWAPS = [("Beleza", "Certo"), ("Entendi", "Anotei")]


@dataclass
class GuardrailResult:
    """Outcome of a single guardrail check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None
    similarity: float = 0.0


def significant_words(text: str, min_length: Optional[int] = None) -> set[str]:
    """Lowercased words of at least ``min_length`` characters, punctuation removed."""
    min_length = min_length or settings.guard.min_word_length
    cleaned = _PUNCTUATION.sub("", text.lower())
    return {w for w in cleaned.split() if len(w) >= min_length}


def similarity(a: str, b: str) -> float:
    """Shared significant words over the larger word set. 0.0 when either is empty."""
    words_a, words_b = significant_words(a), significant_words(b)
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / max(len(words_a), len(words_b))


class RepetitionGuardrail:
    """Detects and replaces replies that repeat recent ones."""

    def __init__(self, threshold: Optional[float] = None) -> None:
        self.threshold = settings.guard.similarity_threshold if threshold is None else threshold

    def check(self, candidate: str, recent: Sequence[str]) -> GuardrailResult:
        for previous in recent:
            score = similarity(candidate, previous)
            if score > self.threshold:
                return GuardrailResult(
                    passed=False,
                    violation_type="repetition",
                    message=f"Reply is {score:.0%} similar to a recent one.",
                    similarity=score,
                )
        return GuardrailResult(passed=True)

    def dedupe(self, candidate: str, recent: Sequence[str], situation: str, seed: int = 0) -> str:
        """Return the candidate, or a variant when it repeats a recent reply."""
        result = self.check(candidate, recent)
        if result.passed:
            return candidate
        logger.info("Anti-repetition: %s Using a '%s' variant.", result.message, situation)

        pool = VARIANTS.get(situation)
        if not pool:
            swapped = candidate
            for old, new in WORD_SWAPS:
                swapped = swapped.replace(old, new)
            return swapped

        history = list(recent) + [candidate]
        start = pool.index(select_variant(pool, situation, seed))
        for offset in range(len(pool)):
            variant = pool[(start + offset) % len(pool)]
            if variant != candidate and self.check(variant, history).passed:
                return variant
        for offset in range(len(pool)):
            variant = pool[(start + offset) % len(pool)]
            if variant != candidate:
                return variant
        return candidate


def dedupe(candidate: str, recent: Sequence[str], situation: str, seed: int = 0) -> str:
    """Module-level shortcut using the configured threshold."""
    return RepetitionGuardrail().dedupe(candidate, recent, situation, seed)
