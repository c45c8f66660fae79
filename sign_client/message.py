"""
Message Schema and Validation for classifier requests.

Defines the JSON bodies exchanged with the recognition service and
validates every window before it is sent.

Wire format:
    POST /predict   {"data": [[[128 floats] x 20]]}
        -> {"predicted_word": str, "confidence": float} | {"error": str}
    POST /sentence  {"words": [str, ...]}
        -> {"sentence": str} | {"error": str}
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .config import FEATURE_DIM, HAND_DIM, SEQ_LEN

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class PredictRequest:
    """
    Classification request for one window.

    Attributes:
        window: (SEQ_LEN, FEATURE_DIM) feature array, oldest frame first
    """
    window: np.ndarray

    def to_payload(self) -> Dict[str, Any]:
        """The service expects a batch, so the window is wrapped in a list."""
        return {"data": [np.asarray(self.window, dtype=float).tolist()]}

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_payload())


@dataclass
class PredictionResult:
    """
    Parsed classification response.

    Attributes:
        word: Predicted word label, if any
        confidence: Numeric confidence in [0, 1], None if missing or not a number
        error: Error text reported by the service
    """
    word: Optional[str] = None
    confidence: Optional[float] = None
    error: Optional[str] = None

    @property
    def usable(self) -> bool:
        """A result with a word, a numeric confidence and no error."""
        return not self.error and bool(self.word) and self.confidence is not None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'PredictionResult':
        conf = d.get("confidence")
        word = d.get("predicted_word")
        error = d.get("error")
        return cls(
            word=str(word) if word is not None else None,
            confidence=float(conf) if _is_number(conf) else None,
            error=str(error) if error else None,
        )

    @classmethod
    def from_json(cls, data: str) -> 'PredictionResult':
        """Deserialize from JSON string."""
        return cls.from_dict(json.loads(data))


@dataclass
class SentenceRequest:
    """Sentence generation request for the accumulated words."""
    words: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {"words": list(self.words)}


@dataclass
class SentenceResult:
    """Parsed sentence response."""
    sentence: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'SentenceResult':
        sentence = d.get("sentence")
        error = d.get("error")
        return cls(
            sentence=str(sentence) if sentence else None,
            error=str(error) if error else None,
        )


class WindowValidator:
    """
    Validates windows before transmission.

    Ensures:
    - Shape is (seq_len, feature_dim)
    - All values are finite (not NaN/Inf)
    - Presence flags are exactly 0.0 or 1.0
    """

    def __init__(self, seq_len: int = SEQ_LEN, feature_dim: int = FEATURE_DIM):
        self.seq_len = seq_len
        self.feature_dim = feature_dim
        self._dropped_count: int = 0
        self._validated_count: int = 0

    def validate(self, window: np.ndarray) -> Tuple[bool, str]:
        """
        Validate a window.

        Args:
            window: The window to validate

        Returns:
            Tuple of (is_valid, reason_string)
        """
        window = np.asarray(window)

        # Check 1: Shape
        if window.shape != (self.seq_len, self.feature_dim):
            self._dropped_count += 1
            logger.warning(
                f"Invalid window: shape {window.shape} != {(self.seq_len, self.feature_dim)}"
            )
            return False, "bad_shape"

        # Check 2: Finite values
        if not np.all(np.isfinite(window)):
            self._dropped_count += 1
            logger.warning("Invalid window: contains NaN or Inf")
            return False, "not_finite"

        # Check 3: Presence flags
        flags = window[:, 2 * HAND_DIM:]
        if not np.all((flags == 0.0) | (flags == 1.0)):
            self._dropped_count += 1
            logger.warning("Invalid window: presence flags must be 0 or 1")
            return False, "bad_presence"

        self._validated_count += 1
        return True, "ok"

    def get_stats(self) -> dict:
        """Get validation statistics."""
        total = self._validated_count + self._dropped_count
        return {
            "total_windows": total,
            "validated": self._validated_count,
            "dropped": self._dropped_count,
            "drop_rate": self._dropped_count / total if total > 0 else 0.0,
        }

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self._dropped_count = 0
        self._validated_count = 0
