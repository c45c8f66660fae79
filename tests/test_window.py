import numpy as np
import pytest

from sign_client.window import WindowBuffer


def frame(value):
    return np.full(128, float(value))


def test_window_ready_only_after_twenty_frames():
    buf = WindowBuffer()
    for i in range(19):
        buf.append(frame(i))
        assert not buf.is_ready
    buf.append(frame(19))
    assert buf.is_ready
    assert len(buf) == 20


def test_drain_returns_oldest_first_and_empties_buffer():
    buf = WindowBuffer()
    for i in range(20):
        buf.append(frame(i))
    window = buf.drain()
    assert window.shape == (20, 128)
    assert window[0, 0] == 0.0
    assert window[-1, 0] == 19.0
    assert len(buf) == 0
    assert not buf.is_ready


def test_consecutive_windows_do_not_overlap():
    buf = WindowBuffer()
    windows = []
    for i in range(45):
        buf.append(frame(i))
        if buf.is_ready:
            windows.append(buf.drain())
    assert len(windows) == 2
    assert windows[1][0, 0] == 20.0
    assert len(buf) == 5


def test_drain_before_ready_raises():
    buf = WindowBuffer()
    buf.append(frame(0))
    with pytest.raises(RuntimeError):
        buf.drain()


def test_full_buffer_evicts_oldest():
    buf = WindowBuffer()
    for i in range(21):
        buf.append(frame(i))
    assert len(buf) == 20
    window = buf.drain()
    assert window[0, 0] == 1.0
    assert window[-1, 0] == 20.0
    assert buf.get_stats()["frames_evicted"] == 1


def test_clear_discards_partial_window():
    buf = WindowBuffer()
    for i in range(7):
        buf.append(frame(i))
    assert buf.clear() == 7
    assert len(buf) == 0
    stats = buf.get_stats()
    assert stats["frames_discarded"] == 7
    assert stats["windows_emitted"] == 0


def test_wrong_feature_length_rejected():
    buf = WindowBuffer()
    with pytest.raises(ValueError):
        buf.append(np.zeros(126))
    assert len(buf) == 0


def test_custom_sequence_length():
    buf = WindowBuffer(seq_len=3, feature_dim=4)
    for i in range(3):
        buf.append(np.full(4, i))
    assert buf.drain().shape == (3, 4)
