"""
Recognition Pipeline - Frame features to windows to recognized words.

Owns all mutable recognition state for one session: the window buffer,
the prediction gate, the accepted words and the text shown to the user.
The UI layer only calls methods on it.

Data flow per frame:
    detections -> build_frame_features -> WindowBuffer
    full window -> (gate idle?) -> WindowValidator -> PredictionGate -> service
    result -> handle_prediction -> WordAccumulator / PredictionDisplay
"""

import logging
from typing import Optional, Sequence

import numpy as np

from .api_client import ClassifierUnavailable
from .config import (
    CONF_THRESHOLD,
    DEFAULT_FRAME_HEIGHT,
    DEFAULT_FRAME_WIDTH,
    SEQ_LEN,
    ClientConfig,
)
from .hand_features import HandDetection, build_frame_features
from .message import PredictionResult, WindowValidator
from .prediction_gate import PredictionGate
from .window import WindowBuffer
from .words import PredictionDisplay, WordAccumulator

logger = logging.getLogger(__name__)

NO_WORDS_TEXT = "(no words detected)"
NO_SENTENCE_TEXT = "(no sentence)"
SENTENCE_FAILED_TEXT = "(error generating sentence)"


class RecognitionPipeline:
    """
    Stateful recognition session.

    Lifecycle:
        create() -> on_start_requested() -> on_frame()... -> dispose()

    The classifier is any object with async ``predict(window)`` and
    ``sentence(words)`` methods (normally a ClassifierClient).
    """

    def __init__(
        self,
        classifier,
        seq_len: int = SEQ_LEN,
        threshold: float = CONF_THRESHOLD,
        request_timeout: Optional[float] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            classifier: Service client used for predictions and sentences
            seq_len: Frames per window
            threshold: Minimum confidence for accepting a word (inclusive)
            request_timeout: Seconds before a classification is abandoned
        """
        self.classifier = classifier
        self.buffer = WindowBuffer(seq_len=seq_len)
        self.validator = WindowValidator(seq_len=seq_len)
        self.words = WordAccumulator(threshold=threshold)
        self.display = PredictionDisplay()
        self.gate = PredictionGate(
            self._classify,
            on_result=self.handle_prediction,
            timeout=request_timeout,
        )

        # State
        self._running = False
        self._disposed = False
        self._generation = 0
        self._dispatch_generation = 0

        # Statistics
        self._frames_processed = 0
        self._windows_dropped_busy = 0
        self._windows_dropped_invalid = 0

    @classmethod
    def create(cls, classifier, config: Optional[ClientConfig] = None) -> 'RecognitionPipeline':
        """Create a pipeline configured from a ClientConfig."""
        config = config or ClientConfig()
        return cls(classifier, request_timeout=config.request_timeout)

    @property
    def running(self) -> bool:
        """True while detection is active."""
        return self._running

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def on_start_requested(self) -> None:
        if self._disposed:
            raise RuntimeError("Pipeline has been disposed")
        self._running = True
        logger.info("Detection started")

    def on_pause_requested(self) -> None:
        """Stop producing windows. The partial window is kept for resume."""
        self._running = False
        logger.info("Detection paused")

    def on_delete_last_word(self) -> Optional[str]:
        word = self.words.pop()
        self.display.stacked_words = self.words.text()
        if word is not None:
            logger.info(f"Deleted word {word!r}")
        return word

    def on_clear_requested(self) -> None:
        """Clear words, the partial window and all displayed text."""
        self.words.clear()
        self.buffer.clear()
        self.display.reset()
        logger.info("Clear -> reset all")

    def on_camera_stopped(self) -> None:
        """
        Stop detection and drop the partial window.

        A request that is still in flight is not aborted; its result is
        discarded when it arrives.
        """
        self._running = False
        self._generation += 1
        dropped = self.buffer.clear()
        logger.info(f"Camera stopped, discarded {dropped} buffered frames")

    def on_capture_gap(self) -> None:
        """Drop the partial window after a run of unusable camera frames."""
        dropped = self.buffer.clear()
        if dropped:
            logger.warning(f"Capture gap, discarded {dropped} buffered frames")

    def reset(self) -> None:
        """Return to the freshly created state (paused, empty, nothing shown)."""
        self._running = False
        self._generation += 1
        self.words.clear()
        self.buffer.clear()
        self.display.reset()

    def dispose(self) -> None:
        """End the session. Late results are ignored and start is refused."""
        self.reset()
        self._disposed = True

    # ------------------------------------------------------------------
    # Frame processing
    # ------------------------------------------------------------------

    def on_frame(
        self,
        detections: Sequence[HandDetection],
        frame_width: int,
        frame_height: int,
    ) -> Optional[np.ndarray]:
        """
        Process the hand detections of one frame.

        Must be called from inside the running event loop, since a full
        window may start a classification request.

        Args:
            detections: Zero to two hands for this frame
            frame_width: Frame width in pixels (0 if unknown)
            frame_height: Frame height in pixels (0 if unknown)

        Returns:
            The frame's feature vector, or None while detection is paused
        """
        if not self._running:
            return None

        w = frame_width or DEFAULT_FRAME_WIDTH
        h = frame_height or DEFAULT_FRAME_HEIGHT

        feat = build_frame_features(detections, w, h)
        self.buffer.append(feat)
        self._frames_processed += 1

        if self.buffer.is_ready:
            window = self.buffer.drain()
            self._dispatch(window)
        return feat

    def _dispatch(self, window: np.ndarray) -> None:
        if self.gate.in_flight:
            self._windows_dropped_busy += 1
            logger.debug("Prediction pending, dropping window")
            return

        valid, reason = self.validator.validate(window)
        if not valid:
            self._windows_dropped_invalid += 1
            logger.warning(f"Window validation failed: {reason}")
            return

        self._dispatch_generation = self._generation
        self.gate.submit_if_idle(window)

    async def _classify(self, window: np.ndarray) -> Optional[PredictionResult]:
        generation = self._dispatch_generation
        result = await self.classifier.predict(window)
        if generation != self._generation:
            logger.info("Discarding prediction from a stopped session")
            return None
        return result

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def handle_prediction(self, result: PredictionResult) -> bool:
        """
        Apply a classification result to the display and the word list.

        Returns:
            True if a word was appended
        """
        if result.error:
            self.display.blank_prediction()
            return False

        if not self.words.accepts(result):
            self.display.blank_prediction()
            return False

        self.display.word = result.word
        self.display.confidence = f"{result.confidence * 100:.1f}%"
        appended = self.words.add(result.word)
        if appended:
            self.display.stacked_words = self.words.text()
        return appended

    async def request_sentence(self) -> str:
        """
        Build a sentence from the accumulated words.

        Returns:
            The text now shown as the sentence
        """
        if len(self.words) == 0:
            self.display.sentence = NO_WORDS_TEXT
            return self.display.sentence

        try:
            result = await self.classifier.sentence(self.words.words)
        except ClassifierUnavailable as e:
            logger.error(f"Sentence request failed: {e}")
            self.display.sentence = SENTENCE_FAILED_TEXT
            return self.display.sentence

        if result.sentence:
            self.display.sentence = result.sentence
        elif result.error:
            self.display.sentence = f"(Error: {result.error})"
        else:
            self.display.sentence = NO_SENTENCE_TEXT
        return self.display.sentence

    def get_stats(self) -> dict:
        """Get pipeline statistics."""
        return {
            "running": self._running,
            "frames_processed": self._frames_processed,
            "words": len(self.words),
            "windows_dropped_busy": self._windows_dropped_busy,
            "windows_dropped_invalid": self._windows_dropped_invalid,
            "buffer": self.buffer.get_stats(),
            "gate": self.gate.get_stats(),
            "validator": self.validator.get_stats(),
        }
