"""
Word accumulation and display state for recognized signs.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .config import CONF_THRESHOLD
from .message import PredictionResult

logger = logging.getLogger(__name__)

PLACEHOLDER = "-"


@dataclass
class PredictionDisplay:
    """Text shown to the user. "-" means nothing to show."""
    word: str = PLACEHOLDER
    confidence: str = PLACEHOLDER
    stacked_words: str = PLACEHOLDER
    sentence: str = PLACEHOLDER

    def blank_prediction(self) -> None:
        self.word = PLACEHOLDER
        self.confidence = PLACEHOLDER

    def reset(self) -> None:
        self.blank_prediction()
        self.stacked_words = PLACEHOLDER
        self.sentence = PLACEHOLDER


class WordAccumulator:
    """
    Ordered list of accepted words.

    A word is appended only if it differs from the last accepted word, so
    holding a sign across several windows yields it once. Non-adjacent
    repeats (A, B, A) are kept.
    """

    def __init__(self, threshold: float = CONF_THRESHOLD):
        self.threshold = threshold
        self._words: List[str] = []

    def __len__(self) -> int:
        return len(self._words)

    @property
    def words(self) -> List[str]:
        return list(self._words)

    @property
    def last(self) -> Optional[str]:
        return self._words[-1] if self._words else None

    def accepts(self, result: PredictionResult) -> bool:
        """True if the result is usable and at or above the threshold."""
        return result.usable and result.confidence >= self.threshold

    def add(self, word: str) -> bool:
        """Append word unless it repeats the last one. Returns True if appended."""
        if self._words and self._words[-1] == word:
            return False
        self._words.append(word)
        logger.info(f"Word added: {word!r} ({len(self._words)} total)")
        return True

    def pop(self) -> Optional[str]:
        if not self._words:
            return None
        return self._words.pop()

    def clear(self) -> None:
        self._words.clear()

    def text(self) -> str:
        return " ".join(self._words) if self._words else PLACEHOLDER
