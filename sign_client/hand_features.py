"""
Hand Feature Extraction - Per-frame feature vectors from hand landmarks.

Converts MediaPipe hand landmarks into the fixed 128-value feature vector
the remote classifier is trained on:

    [left hand (63), right hand (63), left present, right present]

Each hand block is wrist-relative and scale-normalized so that hand
position in frame and distance from the camera do not change the features.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from .config import HAND_DIM, MIN_SCALE, NUM_LANDMARKS

logger = logging.getLogger(__name__)

# ============================================================================
# MediaPipe Landmark Indices
# ============================================================================

WRIST = 0
THUMB_CMC, THUMB_MCP, THUMB_IP, THUMB_TIP = 1, 2, 3, 4
INDEX_MCP, INDEX_PIP, INDEX_DIP, INDEX_TIP = 5, 6, 7, 8
MIDDLE_MCP, MIDDLE_PIP, MIDDLE_DIP, MIDDLE_TIP = 9, 10, 11, 12
RING_MCP, RING_PIP, RING_DIP, RING_TIP = 13, 14, 15, 16
PINKY_MCP, PINKY_PIP, PINKY_DIP, PINKY_TIP = 17, 18, 19, 20

HAND_CONNECTIONS = (
    (WRIST, THUMB_CMC), (THUMB_CMC, THUMB_MCP), (THUMB_MCP, THUMB_IP), (THUMB_IP, THUMB_TIP),
    (WRIST, INDEX_MCP), (INDEX_MCP, INDEX_PIP), (INDEX_PIP, INDEX_DIP), (INDEX_DIP, INDEX_TIP),
    (MIDDLE_MCP, MIDDLE_PIP), (MIDDLE_PIP, MIDDLE_DIP), (MIDDLE_DIP, MIDDLE_TIP),
    (RING_MCP, RING_PIP), (RING_PIP, RING_DIP), (RING_DIP, RING_TIP),
    (WRIST, PINKY_MCP), (PINKY_MCP, PINKY_PIP), (PINKY_PIP, PINKY_DIP), (PINKY_DIP, PINKY_TIP),
    (INDEX_MCP, MIDDLE_MCP), (MIDDLE_MCP, RING_MCP), (RING_MCP, PINKY_MCP),
)


# ============================================================================
# Canonical Detection Shape
# ============================================================================

@dataclass
class HandDetection:
    """
    One detected hand in a frame.

    Attributes:
        landmarks: (21, 3) array of image-relative x, y and relative depth z
        label: Handedness label reported by the detector, or None
        score: Detector confidence for the label (unused by the features)
    """
    landmarks: np.ndarray
    label: Optional[str] = None
    score: Optional[float] = None

    def __post_init__(self):
        self.landmarks = landmarks_to_array(self.landmarks)

    @property
    def mean_x(self) -> float:
        """Mean x-coordinate of all landmarks (screen position)."""
        return float(np.mean(self.landmarks[:, 0]))


def landmarks_to_array(hand: Any) -> np.ndarray:
    """
    Convert a landmark sequence to an (N, 3) float array.

    Accepts arrays, sequences of (x, y, z) tuples, or objects with
    ``x``/``y``/``z`` attributes (MediaPipe NormalizedLandmark).
    """
    if hand is None:
        return np.zeros((0, 3), dtype=np.float64)
    if isinstance(hand, np.ndarray):
        return hand.astype(np.float64, copy=False).reshape(-1, 3)

    pts = []
    for p in hand:
        if hasattr(p, "x"):
            pts.append((p.x, p.y, getattr(p, "z", 0.0)))
        else:
            pts.append((p[0], p[1], p[2] if len(p) > 2 else 0.0))
    return np.array(pts, dtype=np.float64).reshape(-1, 3)


def _is_present(hand: Optional[HandDetection]) -> bool:
    return hand is not None and len(hand.landmarks) > 0


# ============================================================================
# Landmark Normalizer
# ============================================================================

def normalize_hand(hand: Any, frame_width: float, frame_height: float) -> np.ndarray:
    """
    Normalize one hand into a flat 63-value block.

    The wrist (landmark 0) becomes the x/y origin. The hand's larger pixel
    extent, floored at MIN_SCALE, divided by max(width, height) is the
    denominator for every x and y. z is passed through untouched.

    Args:
        hand: 21 landmarks (array, tuples or landmark objects), or None
        frame_width: Frame width in pixels
        frame_height: Frame height in pixels

    Returns:
        Array of 63 values interleaved as x0, y0, z0, ..., x20, y20, z20.
        All zeros when no hand is given.

    Raises:
        ValueError: If a non-empty hand does not have exactly 21 landmarks.
    """
    pts = landmarks_to_array(hand)
    if len(pts) == 0:
        return np.zeros(HAND_DIM, dtype=np.float64)
    if len(pts) != NUM_LANDMARKS:
        raise ValueError(f"Expected {NUM_LANDMARKS} landmarks, got {len(pts)}")

    pts = pts.copy()
    pts[:, :2] -= pts[WRIST, :2]

    px = pts[:, 0] * frame_width
    py = pts[:, 1] * frame_height
    scale_raw = max(float(px.max() - px.min()), float(py.max() - py.min()), MIN_SCALE)
    denom = scale_raw / max(frame_width, frame_height)

    pts[:, 0] /= denom
    pts[:, 1] /= denom
    return pts.reshape(-1)


# ============================================================================
# Dual-Hand Feature Builder
# ============================================================================

def assign_hands(
    detections: Sequence[HandDetection],
) -> Tuple[Optional[HandDetection], Optional[HandDetection]]:
    """
    Resolve detections into (left, right) slots.

    Detections without landmarks are ignored.
    Labels are matched case-insensitively by substring, "left" before
    "right"; the first detection per side wins. If a slot is still empty,
    detections are ordered by mean x and the leftmost becomes left and the
    next (if any) becomes right.
    """
    present = [d for d in detections if _is_present(d)]
    left = None
    right = None

    for det in present:
        label = (det.label or "").lower()
        if "left" in label:
            if left is None:
                left = det
        elif "right" in label:
            if right is None:
                right = det

    if (left is None or right is None) and present:
        ordered = sorted(present, key=lambda d: d.mean_x)
        left = ordered[0]
        if len(ordered) >= 2:
            right = ordered[1]

    return left, right


def build_frame_features(
    detections: Sequence[HandDetection],
    frame_width: float,
    frame_height: float,
) -> np.ndarray:
    """
    Build the 128-value feature vector for one frame.

    Args:
        detections: Zero, one or two hand detections
        frame_width: Frame width in pixels
        frame_height: Frame height in pixels

    Returns:
        [left block (63), right block (63), presence left, presence right]
    """
    left, right = assign_hands(detections)

    left_block = normalize_hand(left.landmarks if left else None, frame_width, frame_height)
    right_block = normalize_hand(right.landmarks if right else None, frame_width, frame_height)
    presence = np.array(
        [1.0 if _is_present(left) else 0.0, 1.0 if _is_present(right) else 0.0],
        dtype=np.float64,
    )

    feat = np.concatenate([left_block, right_block, presence])
    return feat


# ============================================================================
# Perception Adapter
# ============================================================================

def _first_label(handedness: Any) -> Tuple[Optional[str], Optional[float]]:
    """Read label and score from a Tasks category list or a ClassificationList."""
    if handedness is None:
        return None, None
    categories = getattr(handedness, "classification", handedness)
    try:
        top = categories[0]
    except (IndexError, TypeError):
        return None, None
    label = getattr(top, "category_name", None) or getattr(top, "label", None)
    score = getattr(top, "score", None)
    return (str(label) if label else None), score


def detections_from_result(result: Any) -> List[HandDetection]:
    """
    Convert a MediaPipe hand result into canonical HandDetections.

    Supports the Tasks API result (``hand_landmarks``/``handedness``) and the
    legacy solutions result (``multi_hand_landmarks``/``multi_handedness``).
    Hands that do not have exactly 21 landmarks are dropped.

    Args:
        result: MediaPipe result object, or None

    Returns:
        List of HandDetection in detector order
    """
    if result is None:
        return []

    hands = getattr(result, "hand_landmarks", None)
    handedness = getattr(result, "handedness", None)
    if hands is None:
        hands = getattr(result, "multi_hand_landmarks", None)
        handedness = getattr(result, "multi_handedness", None)

    detections: List[HandDetection] = []
    for i, hand in enumerate(hands or []):
        points = getattr(hand, "landmark", hand)
        pts = landmarks_to_array(points)
        if len(pts) != NUM_LANDMARKS:
            logger.warning(f"Dropping hand {i}: {len(pts)} landmarks")
            continue

        hd = handedness[i] if handedness and i < len(handedness) else None
        label, score = _first_label(hd)
        detections.append(HandDetection(landmarks=pts, label=label, score=score))

    return detections
