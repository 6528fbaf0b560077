"""Lexical novelty check used to cut a debate short once arguments repeat."""

import logging
import re
from collections.abc import Sequence

from roundtable.models import Message

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.35
DEFAULT_WINDOW = 4
DEFAULT_MIN_ROUND = 3
_MIN_WORD_LEN = 5

_WORD = re.compile(r"\w+")


def novelty_ratio(texts: Sequence[str]) -> float:
    """unique / total over lower-cased words longer than four characters.

    Returns 1.0 when the texts contain no such words.
    """
    words = [
        w for text in texts for w in _WORD.findall(text.lower())
        if len(w) >= _MIN_WORD_LEN
    ]
    if not words:
        return 1.0
    return len(set(words)) / len(words)


def is_exhausted(
    texts: Sequence[str],
    round_number: int,
    threshold: float = DEFAULT_THRESHOLD,
    min_round: int = DEFAULT_MIN_ROUND,
) -> bool:
    """True when the round is late enough and the ratio is strictly below threshold."""
    if round_number < min_round:
        return False
    return novelty_ratio(texts) < threshold


class RepetitionDetector:
    """Applies is_exhausted to the trailing agent turns of a debate history."""

    def __init__(
        self,
        window: int = DEFAULT_WINDOW,
        threshold: float = DEFAULT_THRESHOLD,
        min_round: int = DEFAULT_MIN_ROUND,
    ) -> None:
        self.window = window
        self.threshold = threshold
        self.min_round = min_round

    def check(self, history: Sequence[Message], round_number: int) -> bool:
        turns = [m.content for m in history if m.role == "agent" and not m.is_summary]
        if len(turns) < self.window:
            return False
        recent = turns[-self.window:]
        exhausted = is_exhausted(recent, round_number, self.threshold, self.min_round)
        if exhausted:
            logger.info(
                "Arguments exhausted before round %d (novelty %.2f < %.2f)",
                round_number, novelty_ratio(recent), self.threshold,
            )
        return exhausted
