import asyncio

import numpy as np
import pytest

from sign_client.api_client import ClassifierUnavailable
from sign_client.config import ClientConfig
from sign_client.hand_features import HandDetection
from sign_client.message import PredictionResult, SentenceResult
from sign_client.pipeline import (
    NO_SENTENCE_TEXT,
    NO_WORDS_TEXT,
    SENTENCE_FAILED_TEXT,
    RecognitionPipeline,
)
from sign_client.words import PLACEHOLDER

W, H = 640, 480


class FakeClassifier:
    """Stands in for ClassifierClient; optionally holds predictions until released."""

    def __init__(self, results=None):
        self.results = list(results or [])
        self.windows = []
        self.release = None
        self.sentence_calls = []
        self.sentence_reply = SentenceResult(sentence="Saya makan.")

    async def predict(self, window):
        self.windows.append(window)
        if self.release is not None:
            await self.release.wait()
        result = self.results.pop(0) if self.results else PredictionResult(word="halo", confidence=0.9)
        if isinstance(result, Exception):
            raise result
        return result

    async def sentence(self, words):
        self.sentence_calls.append(list(words))
        if isinstance(self.sentence_reply, Exception):
            raise self.sentence_reply
        return self.sentence_reply


def hand(seed=0):
    rng = np.random.default_rng(seed)
    pts = rng.uniform(0.3, 0.7, (21, 3))
    pts[:, 2] = 0.0
    return [HandDetection(pts, "Left")]


def feed(pipeline, n, detections=None):
    for i in range(n):
        pipeline.on_frame(hand(i) if detections is None else detections, W, H)


def started(classifier, **kwargs):
    pipeline = RecognitionPipeline(classifier, **kwargs)
    pipeline.on_start_requested()
    return pipeline


def test_paused_pipeline_ignores_frames():
    pipeline = RecognitionPipeline(FakeClassifier())
    assert pipeline.on_frame(hand(), W, H) is None
    assert len(pipeline.buffer) == 0


def test_full_window_dispatched_and_word_appended():
    async def scenario():
        classifier = FakeClassifier([PredictionResult(word="makan", confidence=0.9)])
        pipeline = started(classifier)
        feed(pipeline, 19)
        assert pipeline.gate.get_stats()["submitted"] == 0
        feed(pipeline, 1)
        assert len(pipeline.buffer) == 0
        await pipeline.gate.wait_idle()

        assert len(classifier.windows) == 1
        assert classifier.windows[0].shape == (20, 128)
        assert pipeline.words.words == ["makan"]
        assert pipeline.display.word == "makan"
        assert pipeline.display.confidence == "90.0%"
        assert pipeline.display.stacked_words == "makan"

    asyncio.run(scenario())


def test_window_ready_while_busy_is_dropped_not_queued():
    async def scenario():
        classifier = FakeClassifier()
        classifier.release = asyncio.Event()
        pipeline = started(classifier)

        feed(pipeline, 20)
        await asyncio.sleep(0)
        assert pipeline.gate.in_flight
        assert len(classifier.windows) == 1

        feed(pipeline, 20)
        assert len(pipeline.buffer) == 0
        assert pipeline.get_stats()["windows_dropped_busy"] == 1

        feed(pipeline, 1)
        assert len(pipeline.buffer) == 1

        classifier.release.set()
        await pipeline.gate.wait_idle()
        await asyncio.sleep(0)
        assert len(classifier.windows) == 1
        assert not pipeline.gate.in_flight

    asyncio.run(scenario())


def test_next_window_dispatched_after_request_resolves():
    async def scenario():
        classifier = FakeClassifier([
            PredictionResult(word="saya", confidence=0.8),
            PredictionResult(word="makan", confidence=0.8),
        ])
        pipeline = started(classifier)
        feed(pipeline, 20)
        await pipeline.gate.wait_idle()
        feed(pipeline, 20)
        await pipeline.gate.wait_idle()
        assert pipeline.words.words == ["saya", "makan"]

    asyncio.run(scenario())


def test_confidence_boundary():
    pipeline = RecognitionPipeline(FakeClassifier())
    pipeline.handle_prediction(PredictionResult(word="ya", confidence=0.95))

    assert not pipeline.handle_prediction(PredictionResult(word="tidak", confidence=0.69))
    assert pipeline.display.word == PLACEHOLDER
    assert pipeline.display.confidence == PLACEHOLDER
    assert pipeline.words.words == ["ya"]

    assert pipeline.handle_prediction(PredictionResult(word="tidak", confidence=0.70))
    assert pipeline.words.words == ["ya", "tidak"]
    assert pipeline.display.confidence == "70.0%"


def test_consecutive_duplicates_appended_once():
    pipeline = RecognitionPipeline(FakeClassifier())
    for word in ("a", "a", "b", "a"):
        pipeline.handle_prediction(PredictionResult(word=word, confidence=0.9))
    assert pipeline.words.words == ["a", "b", "a"]
    assert pipeline.display.stacked_words == "a b a"


def test_error_result_blanks_display():
    pipeline = RecognitionPipeline(FakeClassifier())
    pipeline.handle_prediction(PredictionResult(word="ya", confidence=0.9))
    pipeline.handle_prediction(PredictionResult(error="model failed"))
    assert pipeline.display.word == PLACEHOLDER
    assert pipeline.display.confidence == PLACEHOLDER
    assert pipeline.display.stacked_words == "ya"


def test_missing_confidence_is_no_prediction():
    pipeline = RecognitionPipeline(FakeClassifier())
    assert not pipeline.handle_prediction(PredictionResult(word="ya", confidence=None))
    assert pipeline.words.words == []


def test_transport_failure_leaves_display_unchanged():
    async def scenario():
        classifier = FakeClassifier([ClassifierUnavailable("timeout")])
        pipeline = started(classifier)
        pipeline.handle_prediction(PredictionResult(word="ya", confidence=0.9))
        feed(pipeline, 20)
        await pipeline.gate.wait_idle()
        assert pipeline.display.word == "ya"
        assert pipeline.display.confidence == "90.0%"
        assert not pipeline.gate.in_flight
        assert pipeline.gate.get_stats()["failed"] == 1

    asyncio.run(scenario())


def test_result_after_camera_stop_is_discarded():
    async def scenario():
        classifier = FakeClassifier()
        classifier.release = asyncio.Event()
        pipeline = started(classifier)
        feed(pipeline, 20)
        feed(pipeline, 5)
        await asyncio.sleep(0)

        pipeline.on_camera_stopped()
        assert not pipeline.running
        assert len(pipeline.buffer) == 0

        classifier.release.set()
        await pipeline.gate.wait_idle()
        assert pipeline.words.words == []
        assert pipeline.display.word == PLACEHOLDER

    asyncio.run(scenario())


def test_pause_keeps_partial_window():
    async def scenario():
        classifier = FakeClassifier()
        pipeline = started(classifier)
        feed(pipeline, 12)
        pipeline.on_pause_requested()
        feed(pipeline, 30)
        assert len(pipeline.buffer) == 12
        assert classifier.windows == []
        pipeline.on_start_requested()
        feed(pipeline, 8)
        await pipeline.gate.wait_idle()
        assert len(classifier.windows) == 1

    asyncio.run(scenario())


def test_clear_resets_words_buffer_and_display():
    pipeline = started(FakeClassifier())
    pipeline.handle_prediction(PredictionResult(word="ya", confidence=0.9))
    pipeline.display.sentence = "Ya."
    feed(pipeline, 5)

    pipeline.on_clear_requested()
    assert pipeline.words.words == []
    assert len(pipeline.buffer) == 0
    assert pipeline.display.word == PLACEHOLDER
    assert pipeline.display.stacked_words == PLACEHOLDER
    assert pipeline.display.sentence == PLACEHOLDER
    assert pipeline.running


def test_delete_last_word():
    pipeline = RecognitionPipeline(FakeClassifier())
    for word in ("saya", "makan"):
        pipeline.handle_prediction(PredictionResult(word=word, confidence=0.9))
    assert pipeline.on_delete_last_word() == "makan"
    assert pipeline.display.stacked_words == "saya"
    pipeline.on_delete_last_word()
    assert pipeline.display.stacked_words == PLACEHOLDER
    assert pipeline.on_delete_last_word() is None


def test_capture_gap_drops_partial_window():
    pipeline = started(FakeClassifier())
    feed(pipeline, 9)
    pipeline.on_capture_gap()
    assert len(pipeline.buffer) == 0


def test_invalid_window_is_not_sent():
    async def scenario():
        classifier = FakeClassifier()
        pipeline = started(classifier)
        bad = np.full((21, 3), np.nan)
        feed(pipeline, 20, detections=[HandDetection(bad, "Left")])
        await asyncio.sleep(0)
        assert classifier.windows == []
        assert pipeline.get_stats()["windows_dropped_invalid"] == 1
        assert len(pipeline.buffer) == 0

    asyncio.run(scenario())


def test_frames_without_hands_still_fill_windows():
    async def scenario():
        classifier = FakeClassifier()
        pipeline = started(classifier)
        feed(pipeline, 20, detections=[])
        await pipeline.gate.wait_idle()
        assert len(classifier.windows) == 1
        assert not classifier.windows[0].any()

    asyncio.run(scenario())


def test_unknown_frame_size_uses_default():
    pipeline = started(FakeClassifier())
    with_default = pipeline.on_frame(hand(1), 0, 0)
    explicit = pipeline.on_frame(hand(1), 640, 480)
    np.testing.assert_allclose(with_default, explicit)


def test_sentence_without_words_does_not_call_service():
    async def scenario():
        classifier = FakeClassifier()
        pipeline = RecognitionPipeline(classifier)
        assert await pipeline.request_sentence() == NO_WORDS_TEXT
        assert classifier.sentence_calls == []

    asyncio.run(scenario())


@pytest.mark.parametrize("reply, expected", [
    (SentenceResult(sentence="Saya makan."), "Saya makan."),
    (SentenceResult(error="quota exceeded"), "(Error: quota exceeded)"),
    (SentenceResult(), NO_SENTENCE_TEXT),
    (ClassifierUnavailable("offline"), SENTENCE_FAILED_TEXT),
])
def test_sentence_outcomes(reply, expected):
    async def scenario():
        classifier = FakeClassifier()
        classifier.sentence_reply = reply
        pipeline = RecognitionPipeline(classifier)
        pipeline.handle_prediction(PredictionResult(word="saya", confidence=0.9))
        pipeline.handle_prediction(PredictionResult(word="makan", confidence=0.9))
        text = await pipeline.request_sentence()
        assert text == expected
        assert pipeline.display.sentence == expected
        assert classifier.sentence_calls == [["saya", "makan"]]

    asyncio.run(scenario())


def test_dispose_refuses_restart():
    pipeline = RecognitionPipeline.create(FakeClassifier(), ClientConfig(request_timeout=None))
    pipeline.on_start_requested()
    pipeline.dispose()
    assert not pipeline.running
    with pytest.raises(RuntimeError):
        pipeline.on_start_requested()


def test_reset_returns_to_initial_state():
    pipeline = started(FakeClassifier())
    pipeline.handle_prediction(PredictionResult(word="ya", confidence=0.9))
    feed(pipeline, 3)
    pipeline.reset()
    assert not pipeline.running
    assert pipeline.words.words == []
    assert len(pipeline.buffer) == 0
    assert pipeline.display.stacked_words == PLACEHOLDER
