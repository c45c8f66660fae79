#!/usr/bin/env python3
"""
Sign Recognition Client - Main Entry Point

This client runs on a user laptop, extracts hand landmarks from camera
frames locally with MediaPipe, and sends 20-frame feature windows to a
recognition service over HTTP. Recognized words are stacked and can be
turned into a sentence.

Preview keys:
    space   start / pause detection
    d       delete last word
    c       clear everything
    i       interpret words into a sentence
    q, Esc  stop camera and quit

Usage:
    python -m sign_client.main --predict-url http://127.0.0.1:7860/predict --camera 0
    python -m sign_client.main --stream rtsp://10.0.0.5:8554/cam --mirror
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
import time
import urllib.request
from typing import List, Optional, Set

import cv2
import mediapipe as mp
import numpy as np
from mediapipe.tasks import python as mp_python
from mediapipe.tasks.python import vision

from .api_client import ClassifierClient
from .config import HAND_MODEL_URL, ClientConfig
from .frame_gate import CaptureGate, LandmarkerGate
from .hand_features import HAND_CONNECTIONS, HandDetection
from .pipeline import RecognitionPipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

KEY_ESC = 27
KEY_SPACE = 32


def ensure_hand_model(path: str, url: str = HAND_MODEL_URL) -> str:
    """Download the hand landmarker model if it is not on disk yet."""
    if not os.path.exists(path):
        logger.info(f"Downloading hand landmarker model to {path}...")
        urllib.request.urlretrieve(url, path)
        logger.info("Model downloaded")
    return path


class SignClient:
    """
    Main client that integrates all components:
    - Camera/stream capture
    - Capture quality gate
    - MediaPipe hand landmarker
    - Recognition pipeline (features, windows, prediction gate, words)
    - HTTP recognition service client
    - Preview window and keyboard controls
    """

    def __init__(self, config: ClientConfig):
        """
        Initialize the sign client.

        Args:
            config: Runtime configuration
        """
        self.config = config

        # Components
        self.capture_gate = CaptureGate(gap_timeout_ms=config.gap_timeout_ms)
        self.landmarker_gate = LandmarkerGate()
        self.classifier = ClassifierClient(
            predict_url=config.predict_url,
            sentence_url=config.sentence_url,
        )
        self.pipeline = RecognitionPipeline.create(self.classifier, config)

        # Camera
        self.cap: Optional[cv2.VideoCapture] = None

        # MediaPipe
        self.landmarker: Optional[vision.HandLandmarker] = None

        # State
        self._running = False
        self._stopped = False
        self._last_timestamp_ms = 0
        self._tasks: Set[asyncio.Task] = set()

        # UI font
        self.font = cv2.FONT_HERSHEY_SIMPLEX

    async def start(self) -> None:
        """Start the client."""
        logger.info("Starting Sign Client...")

        if not self._init_camera():
            raise RuntimeError("Failed to open camera source")

        model_path = ensure_hand_model(self.config.model_path)
        options = vision.HandLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=model_path),
            running_mode=vision.RunningMode.VIDEO,
            num_hands=2,
            min_hand_detection_confidence=0.5,
            min_hand_presence_confidence=0.5,
            min_tracking_confidence=0.5,
        )
        self.landmarker = vision.HandLandmarker.create_from_options(options)
        logger.info("HandLandmarker ready")

        self._running = True
        if not self.config.start_paused:
            self.pipeline.on_start_requested()
        logger.info("Sign Client started")

    def request_stop(self) -> None:
        """Ask the frame loop to exit after the current frame."""
        self._running = False

    async def stop(self) -> None:
        """Stop the client and clean up resources."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Stopping Sign Client...")
        self._running = False

        self.pipeline.on_camera_stopped()

        if self.cap:
            self.cap.release()
            self.cap = None

        if self.landmarker:
            self.landmarker.close()
            self.landmarker = None

        if self.config.show_preview:
            cv2.destroyAllWindows()

        # Give an outstanding request a moment before the connection closes
        try:
            await asyncio.wait_for(self.pipeline.gate.wait_idle(), timeout=1.0)
        except asyncio.TimeoutError:
            logger.warning("Prediction still pending at shutdown")

        for task in list(self._tasks):
            task.cancel()

        self.pipeline.dispose()
        await self.classifier.aclose()
        logger.info("Sign Client stopped")

    async def run(self) -> None:
        """Main frame loop."""
        target_dt = 1.0 / self.config.rate

        while self._running:
            loop_start = time.time()

            try:
                self._process_frame()
            except Exception as e:
                logger.error(f"Error in frame loop: {e}")

            if self.config.show_preview:
                self._handle_key(cv2.waitKey(1) & 0xFF)

            # Rate limiting; always yield so requests can progress
            elapsed = time.time() - loop_start
            await asyncio.sleep(max(target_dt - elapsed, 0.0))

    def _handle_key(self, key: int) -> None:
        if key in (KEY_ESC, ord('q')):
            logger.info("Quit requested")
            self.request_stop()
        elif key == KEY_SPACE:
            if self.pipeline.running:
                self.pipeline.on_pause_requested()
            else:
                self.pipeline.on_start_requested()
        elif key in (ord('d'), ord('D')):
            self.pipeline.on_delete_last_word()
        elif key in (ord('c'), ord('C')):
            self.pipeline.on_clear_requested()
        elif key in (ord('i'), ord('I')):
            self._spawn(self.pipeline.request_sentence())

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _next_timestamp_ms(self) -> int:
        """VIDEO mode requires strictly increasing timestamps."""
        ts = int(time.monotonic() * 1000)
        if ts <= self._last_timestamp_ms:
            ts = self._last_timestamp_ms + 1
        self._last_timestamp_ms = ts
        return ts

    def _process_frame(self) -> None:
        """Process a single frame through the pipeline."""
        ok, frame = self.cap.read()

        # ====== CAPTURE QUALITY GATE ======
        check = self.capture_gate.validate(ok, frame)
        if not check.valid:
            logger.debug(f"Frame invalid: {check.reason}")
            if self.capture_gate.gap_exceeded():
                self.pipeline.on_capture_gap()
            return

        frame = check.frame
        if self.config.mirror:
            frame = cv2.flip(frame, 1)
        h, w = frame.shape[:2]

        # ====== HAND LANDMARKS + RECOGNITION ======
        detections: List[HandDetection] = []
        if self.pipeline.running:
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
            mp_ok, detections = self.landmarker_gate.detect(
                self.landmarker, image, self._next_timestamp_ms()
            )
            if not mp_ok:
                if self.landmarker_gate.is_stream_problematic():
                    logger.warning("Hand landmarker keeps failing on this stream")
                return
            self.pipeline.on_frame(detections, w, h)

        # ====== PREVIEW DISPLAY ======
        if self.config.show_preview:
            self._draw_preview(frame, h, w, detections)
            cv2.imshow("Sign Client", frame)

    def _init_camera(self) -> bool:
        """Initialize video capture."""
        if self.config.stream_url:
            logger.info(f"Opening stream: {self.config.stream_url}")
            self.cap = cv2.VideoCapture(self.config.stream_url)
        else:
            logger.info(f"Opening camera index: {self.config.camera_index}")
            self.cap = cv2.VideoCapture(self.config.camera_index)

        if not self.cap.isOpened():
            logger.error("Failed to open camera source")
            return False

        width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        fps = self.cap.get(cv2.CAP_PROP_FPS)
        logger.info(f"Camera opened: {width}x{height} @ {fps:.1f} fps")
        return True

    def _draw_preview(
        self,
        frame: np.ndarray,
        h: int,
        w: int,
        detections: List[HandDetection],
    ) -> None:
        """Draw landmarks and recognition state."""
        for det in detections:
            pts = [(int(x * w), int(y * h)) for x, y, _ in det.landmarks]
            for a, b in HAND_CONNECTIONS:
                cv2.line(frame, pts[a], pts[b], (0, 220, 100), 2)
            for x, y in pts:
                cv2.circle(frame, (x, y), 4, (0, 180, 255), -1)

        display = self.pipeline.display
        status = "DETECTING" if self.pipeline.running else "PAUSED"
        color = (0, 255, 0) if self.pipeline.running else (0, 165, 255)
        cv2.putText(frame, status, (20, 40), self.font, 0.9, color, 2)

        if self.pipeline.gate.in_flight:
            cv2.putText(frame, "Predicting...", (w - 180, 30), self.font, 0.5, (255, 255, 0), 1)

        cv2.putText(
            frame,
            f"Word: {display.word}  ({display.confidence})",
            (20, h - 100),
            self.font, 0.7, (255, 0, 0), 2
        )
        cv2.putText(
            frame,
            f"Words: {display.stacked_words}",
            (20, h - 70),
            self.font, 0.6, (0, 255, 255), 2
        )
        cv2.putText(
            frame,
            f"Sentence: {display.sentence}",
            (20, h - 40),
            self.font, 0.6, (255, 255, 255), 2
        )

        fg_stats = self.capture_gate.get_stats()
        if fg_stats['invalid_frames'] > 0:
            invalid_pct = fg_stats['invalid_frames'] / max(fg_stats['total_frames'], 1) * 100
            cv2.putText(
                frame,
                f"Frame errors: {invalid_pct:.1f}%",
                (w - 200, 55),
                self.font, 0.5, (0, 0, 255), 1
            )


async def main_async(config: ClientConfig) -> None:
    """Async main entry point."""
    client = SignClient(config)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Shutdown signal received")
        client.request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await client.start()
        await client.run()
    except Exception as e:
        logger.error(f"Client error: {e}")
    finally:
        await client.stop()


def build_config(args: argparse.Namespace) -> ClientConfig:
    """Translate parsed arguments into a ClientConfig."""
    return ClientConfig(
        predict_url=args.predict_url,
        sentence_url=args.sentence_url,
        request_timeout=args.request_timeout if args.request_timeout > 0 else None,
        camera_index=args.camera,
        stream_url=args.stream,
        model_path=args.model,
        rate=args.rate,
        mirror=args.mirror,
        show_preview=not args.no_preview,
        start_paused=args.paused,
        gap_timeout_ms=args.gap_timeout,
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments. Defaults come from the environment."""
    env = ClientConfig.from_env()
    parser = argparse.ArgumentParser(
        description="Sign Recognition Client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--predict-url",
        type=str,
        default=env.predict_url,
        help="Classification endpoint URL",
    )
    parser.add_argument(
        "--sentence-url",
        type=str,
        default=env.sentence_url,
        help="Sentence endpoint URL",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=env.request_timeout or 0.0,
        help="Seconds before a prediction request is abandoned (0 = never)",
    )
    parser.add_argument(
        "--camera",
        type=int,
        default=0,
        help="Camera device index",
    )
    parser.add_argument(
        "--stream",
        type=str,
        default=None,
        help="Video stream URL (overrides --camera if set)",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=env.model_path,
        help="Hand landmarker model path (downloaded if missing)",
    )
    parser.add_argument(
        "--rate",
        type=float,
        default=30.0,
        help="Frame loop rate (Hz)",
    )
    parser.add_argument(
        "--mirror",
        action="store_true",
        help="Flip frames horizontally before detection",
    )
    parser.add_argument(
        "--no-preview",
        action="store_true",
        help="Run without the preview window",
    )
    parser.add_argument(
        "--paused",
        action="store_true",
        help="Start with detection paused (press space to start)",
    )
    parser.add_argument(
        "--gap-timeout",
        type=int,
        default=500,
        help="Invalid-frame time (ms) after which the partial window is dropped",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)
    if args.paused and args.no_preview:
        # Keys are read from the preview window only
        parser.error("--paused requires the preview window to start detection")
    return args


def main() -> None:
    """Main entry point."""
    args = parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        asyncio.run(main_async(build_config(args)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
