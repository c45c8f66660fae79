"""
Capture and landmarker gates for the frame loop.

Broken frames from a webcam or network stream must not be turned into
features: a window built partly from garbage frames gives a garbage word.
A long run of invalid frames also discards the partial window, so a window
never spans a gap in the capture.
"""

import time
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .hand_features import HandDetection, detections_from_result

logger = logging.getLogger(__name__)


@dataclass
class FrameCheck:
    """Result of frame validation."""
    valid: bool
    reason: str
    frame: Optional[np.ndarray] = None


class CaptureGate:
    """
    Decides which captured frames are fit for landmark detection.

    A frame is rejected when the read failed, when it is missing or empty,
    when it is not a 3-channel image, or when its size differs from the
    previous good frame. Rejected frames are never turned into features.

    While frames keep being rejected the gate times the streak. Once the
    streak reaches gap_timeout_ms, gap_exceeded() reports a capture gap
    exactly once, and the caller drops its partially filled window.
    """

    def __init__(
        self,
        gap_timeout_ms: int = 500,
        allow_shape_change: bool = False,
    ):
        """
        Args:
            gap_timeout_ms: Length of a run of bad frames, in ms, that
                counts as a capture gap.
            allow_shape_change: Accept frames whose size differs from the
                last good one (e.g. a stream that renegotiates resolution).
        """
        self.gap_timeout_ms = gap_timeout_ms
        self.allow_shape_change = allow_shape_change

        self._invalid_since: Optional[float] = None
        self._last_valid_shape: Optional[Tuple[int, int, int]] = None
        self._total_invalid_count: int = 0
        self._total_valid_count: int = 0
        self._gap_reported: bool = False
        self._gap_count: int = 0

    def _rejection_reason(self, ok: bool, frame: Optional[np.ndarray]) -> Optional[str]:
        if not ok:
            return "read_failed"
        if frame is None:
            return "frame_none"
        if frame.size == 0:
            return "empty_frame"
        if frame.ndim != 3:
            return "invalid_dims"
        if frame.shape[2] != 3:
            return "invalid_channels"
        if (
            not self.allow_shape_change
            and self._last_valid_shape is not None
            and frame.shape != self._last_valid_shape
        ):
            logger.warning(
                f"Capture size changed from {self._last_valid_shape} to {frame.shape}"
            )
            return "shape_changed"
        return None

    def validate(self, ok: bool, frame: Optional[np.ndarray]) -> FrameCheck:
        """
        Check one (ok, frame) pair as returned by VideoCapture.read().

        Returns:
            FrameCheck carrying the frame when it is usable, otherwise the
            rejection reason.
        """
        reason = self._rejection_reason(ok, frame)
        if reason is not None:
            self._total_invalid_count += 1
            if self._invalid_since is None:
                self._invalid_since = time.monotonic()
                self._gap_reported = False
                logger.debug(f"Bad capture streak started ({reason})")
            return FrameCheck(False, reason)

        self._total_valid_count += 1
        self._last_valid_shape = frame.shape
        self._invalid_since = None
        self._gap_reported = False
        return FrameCheck(True, "ok", frame)

    def gap_exceeded(self) -> bool:
        """Report a capture gap once per bad-frame streak, when it reaches gap_timeout_ms."""
        if self._invalid_since is None or self._gap_reported:
            return False

        elapsed_ms = (time.monotonic() - self._invalid_since) * 1000
        if elapsed_ms >= self.gap_timeout_ms:
            self._gap_reported = True
            self._gap_count += 1
            logger.warning(f"Capture gap: {elapsed_ms:.0f}ms of invalid frames")
            return True
        return False

    def get_invalid_duration_ms(self) -> float:
        """Milliseconds since the current bad-frame streak started (0 if none)."""
        if self._invalid_since is None:
            return 0.0
        return (time.monotonic() - self._invalid_since) * 1000

    def reset(self) -> None:
        """Forget the current streak and the remembered capture size."""
        self._invalid_since = None
        self._last_valid_shape = None
        self._gap_reported = False

    def get_stats(self) -> dict:
        """Get capture statistics."""
        total = self._total_valid_count + self._total_invalid_count
        return {
            "total_frames": total,
            "valid_frames": self._total_valid_count,
            "invalid_frames": self._total_invalid_count,
            "valid_rate": self._total_valid_count / total if total > 0 else 0.0,
            "capture_gaps": self._gap_count,
            "current_invalid_duration_ms": self.get_invalid_duration_ms(),
            "last_valid_shape": self._last_valid_shape,
        }


class LandmarkerGate:
    """
    Gate for hand landmarker errors.

    Wraps the landmarker call so a failing frame is skipped instead of
    ending the frame loop, and tracks consecutive failures.
    """

    def __init__(self, max_consecutive_failures: int = 5):
        """
        Initialize LandmarkerGate.

        Args:
            max_consecutive_failures: Number of consecutive failures before
                the stream is reported as problematic.
        """
        self.max_consecutive_failures = max_consecutive_failures
        self._consecutive_failures = 0
        self._total_failures = 0
        self._total_successes = 0

    def detect(self, landmarker, image, timestamp_ms: int) -> Tuple[bool, List[HandDetection]]:
        """
        Run hand detection on one frame.

        Args:
            landmarker: MediaPipe HandLandmarker in VIDEO mode
            image: mp.Image wrapping the RGB frame
            timestamp_ms: Monotonically increasing frame timestamp

        Returns:
            Tuple of (success, detections)
        """
        try:
            result = landmarker.detect_for_video(image, timestamp_ms)
        except Exception as e:
            self._consecutive_failures += 1
            self._total_failures += 1
            logger.warning(f"Hand landmarker error: {e}")
            return False, []

        self._consecutive_failures = 0
        self._total_successes += 1
        return True, detections_from_result(result)

    def is_stream_problematic(self) -> bool:
        """Check if the stream has too many consecutive failures."""
        return self._consecutive_failures >= self.max_consecutive_failures

    def reset(self) -> None:
        """Reset failure tracking."""
        self._consecutive_failures = 0

    def get_stats(self) -> dict:
        """Get processing statistics."""
        total = self._total_successes + self._total_failures
        return {
            "total_processed": total,
            "successes": self._total_successes,
            "failures": self._total_failures,
            "success_rate": self._total_successes / total if total > 0 else 0.0,
            "consecutive_failures": self._consecutive_failures,
        }
