from sign_client.config import FEATURE_DIM, HAND_DIM, SEQ_LEN, ClientConfig


def test_feature_layout():
    assert HAND_DIM == 63
    assert FEATURE_DIM == 128
    assert SEQ_LEN == 20


def test_defaults_without_environment(monkeypatch):
    for name in ("PREDICT_URL", "SENTENCE_URL", "REQUEST_TIMEOUT", "HAND_MODEL_PATH"):
        monkeypatch.delenv(name, raising=False)
    config = ClientConfig.from_env()
    assert config == ClientConfig()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PREDICT_URL", "http://svc:9000/predict")
    monkeypatch.setenv("SENTENCE_URL", "http://svc:9000/sentence")
    monkeypatch.setenv("REQUEST_TIMEOUT", "2.5")
    monkeypatch.setenv("HAND_MODEL_PATH", "/models/hand.task")
    config = ClientConfig.from_env()
    assert config.predict_url == "http://svc:9000/predict"
    assert config.sentence_url == "http://svc:9000/sentence"
    assert config.request_timeout == 2.5
    assert config.model_path == "/models/hand.task"


def test_zero_timeout_disables_it(monkeypatch):
    monkeypatch.setenv("REQUEST_TIMEOUT", "0")
    assert ClientConfig.from_env().request_timeout is None
