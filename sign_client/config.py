"""
Client configuration and shared constants.

Environment Variables:
    PREDICT_URL: Classification endpoint (default: http://127.0.0.1:7860/predict)
    SENTENCE_URL: Sentence endpoint (default: http://127.0.0.1:7860/sentence)
    REQUEST_TIMEOUT: Classification timeout in seconds, 0 disables (default: 10)
    HAND_MODEL_PATH: Hand landmarker model file (default: hand_landmarker.task)
"""

import os
from dataclasses import dataclass
from typing import Optional

# ============================================================================
# Feature Layout
# ============================================================================

NUM_LANDMARKS = 21
HAND_DIM = NUM_LANDMARKS * 3
FEATURE_DIM = 2 * HAND_DIM + 2
SEQ_LEN = 20

CONF_THRESHOLD = 0.7
MIN_SCALE = 1e-3

DEFAULT_FRAME_WIDTH = 640
DEFAULT_FRAME_HEIGHT = 480

HAND_MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/hand_landmarker/"
    "hand_landmarker/float16/1/hand_landmarker.task"
)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass
class ClientConfig:
    """
    Runtime configuration for the sign client.

    Attributes:
        predict_url: URL of the window classification endpoint
        sentence_url: URL of the sentence generation endpoint
        request_timeout: Seconds before an outstanding classification is
            abandoned. None waits forever.
        camera_index: Camera device index (used if stream_url is None)
        stream_url: Video stream URL (overrides camera_index if set)
        model_path: Path of the MediaPipe hand landmarker model
        rate: Frame loop rate (Hz)
        mirror: Flip frames horizontally before detection
        show_preview: Whether to show the OpenCV preview window
        start_paused: Wait for the start key before detecting
        gap_timeout_ms: Invalid-frame streak after which the partial window
            is discarded
    """
    predict_url: str = "http://127.0.0.1:7860/predict"
    sentence_url: str = "http://127.0.0.1:7860/sentence"
    request_timeout: Optional[float] = 10.0
    camera_index: int = 0
    stream_url: Optional[str] = None
    model_path: str = "hand_landmarker.task"
    rate: float = 30.0
    mirror: bool = False
    show_preview: bool = True
    start_paused: bool = False
    gap_timeout_ms: int = 500

    @classmethod
    def from_env(cls) -> 'ClientConfig':
        """Build a config from environment variables, falling back to defaults."""
        timeout = _env_float("REQUEST_TIMEOUT", 10.0)
        return cls(
            predict_url=os.environ.get("PREDICT_URL", cls.predict_url),
            sentence_url=os.environ.get("SENTENCE_URL", cls.sentence_url),
            request_timeout=timeout if timeout > 0 else None,
            model_path=os.environ.get("HAND_MODEL_PATH", cls.model_path),
        )
