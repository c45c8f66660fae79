"""
Temporal Window Buffer - Fixed-length sequence of per-frame features.

Frames accumulate until the buffer holds SEQ_LEN feature vectors. The full
window is then drained as one (SEQ_LEN, FEATURE_DIM) array and the buffer
starts over empty, so consecutive windows never overlap.
"""

import logging
from collections import deque
from typing import Deque

import numpy as np

from .config import FEATURE_DIM, SEQ_LEN

logger = logging.getLogger(__name__)


class WindowBuffer:
    """
    Bounded FIFO of feature vectors.

    If a frame is appended while the buffer is already full, the oldest
    frame is evicted first so the buffer always holds the most recent
    frames.
    """

    def __init__(self, seq_len: int = SEQ_LEN, feature_dim: int = FEATURE_DIM):
        if seq_len <= 0:
            raise ValueError(f"seq_len must be positive, got {seq_len}")
        self.seq_len = seq_len
        self.feature_dim = feature_dim
        self._frames: Deque[np.ndarray] = deque(maxlen=seq_len)

        # Statistics
        self._appended_count = 0
        self._evicted_count = 0
        self._windows_emitted = 0
        self._frames_discarded = 0

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def is_ready(self) -> bool:
        """True when a complete window is buffered."""
        return len(self._frames) == self.seq_len

    def append(self, feature: np.ndarray) -> None:
        """
        Append one frame's feature vector.

        Args:
            feature: Vector of length feature_dim

        Raises:
            ValueError: If the vector has the wrong length.
        """
        feature = np.asarray(feature, dtype=np.float64).reshape(-1)
        if feature.shape[0] != self.feature_dim:
            raise ValueError(
                f"Feature vector has {feature.shape[0]} values, expected {self.feature_dim}"
            )
        if self.is_ready:
            self._evicted_count += 1
            logger.debug("Window buffer full, evicting oldest frame")
        self._frames.append(feature)
        self._appended_count += 1

    def drain(self) -> np.ndarray:
        """
        Take the complete window and empty the buffer.

        Returns:
            (seq_len, feature_dim) array, oldest frame first

        Raises:
            RuntimeError: If the buffer does not hold a complete window.
        """
        if not self.is_ready:
            raise RuntimeError(
                f"Window not ready: {len(self._frames)}/{self.seq_len} frames"
            )
        window = np.stack(list(self._frames))
        self._frames.clear()
        self._windows_emitted += 1
        return window

    def clear(self) -> int:
        """Discard any partial window. Returns the number of frames dropped."""
        dropped = len(self._frames)
        self._frames.clear()
        self._frames_discarded += dropped
        return dropped

    def get_stats(self) -> dict:
        """Get buffer statistics."""
        return {
            "length": len(self._frames),
            "seq_len": self.seq_len,
            "frames_appended": self._appended_count,
            "frames_evicted": self._evicted_count,
            "frames_discarded": self._frames_discarded,
            "windows_emitted": self._windows_emitted,
        }
